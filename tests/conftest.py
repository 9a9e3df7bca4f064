"""Shared fixtures for the market digest tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from market_digest.config import Settings
from market_digest.email_service import EmailMessage, MailTransport
from market_digest.errors import TransportError


class FakeClock:
    """Clock that advances one second every time it is read."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


class RecordingTransport(MailTransport):
    """Transport that records messages and fails for selected recipients."""

    name = 'recording'

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []
        self.attempts = []

    async def send(self, message: EmailMessage) -> str:
        self.attempts.append(message)
        await asyncio.sleep(0)
        if message.to in self.fail_for:
            raise TransportError(f"Rejected {message.to}", diagnostic="550 mailbox unavailable")
        self.sent.append(message)
        return f"msg-{len(self.sent)}"


class HangingTransport(MailTransport):
    """Transport whose send never completes."""

    name = 'hanging'

    def __init__(self):
        self.started = 0

    async def send(self, message: EmailMessage) -> str:
        self.started += 1
        await asyncio.Event().wait()


@pytest.fixture
def settings(tmp_path):
    """Settings with fast delivery and no real transport credentials."""
    return Settings(
        email_service='sendgrid',
        sendgrid_api_key='SG.test',
        email_sender='digest@test.com',
        send_timeout=1.0,
        send_delay=0.0,
        subscribers_file=tmp_path / 'subscribers.json',
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_message():
    def _make(to, subject="Market Insights", html="<p>digest</p>"):
        return EmailMessage(to=to, subject=subject, html=html, text="digest")
    return _make


@pytest.fixture
def recording_transport_cls():
    return RecordingTransport


@pytest.fixture
def hanging_transport():
    return HangingTransport()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays without waiting."""
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
