"""Tests for the digest job and scheduler."""

import asyncio
import logging
import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from market_digest.data_sources import SimulatedMarketData
from market_digest.email_service import DeliveryEngine, InMemorySubscriberStore, SubscriptionService
from market_digest.errors import ConfigError, StorageError
from market_digest.newsletter_generator import DigestRenderer
from market_digest.scheduler import (
    DailyTrigger,
    DigestJob,
    DigestScheduler,
    ManualTrigger,
    SchedulerState,
    next_run_after,
)

FULL_RUN = [
    SchedulerState.TRIGGERED,
    SchedulerState.LOADING_SUBSCRIBERS,
    SchedulerState.RENDERING_CONTENT,
    SchedulerState.DELIVERING,
    SchedulerState.IDLE,
]


class BrokenMarketData:
    def fetch_snapshot(self):
        raise StorageError("snapshot feed unavailable")


class CannedNarrator:
    def __init__(self, text):
        self.text = text
        self.calls = 0

    def write(self, snapshot):
        self.calls += 1
        return self.text


@pytest.fixture
def subscriptions(clock):
    return SubscriptionService(InMemorySubscriberStore(), clock=clock)


@pytest.fixture
def make_job(subscriptions, settings, transport, clock):
    def _make(market_data=None, narrator=None):
        return DigestJob(
            subscriptions,
            market_data or SimulatedMarketData(),
            DigestRenderer("Market Insights"),
            DeliveryEngine(transport, settings),
            narrator=narrator,
            clock=clock,
        )
    return _make


@pytest.fixture
def utc_plus_ten():
    """Run the test with the process timezone set to UTC+10."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    previous = os.environ.get("TZ")
    os.environ["TZ"] = "AEST-10"
    time.tzset()
    yield
    if previous is None:
        del os.environ["TZ"]
    else:
        os.environ["TZ"] = previous
    time.tzset()


class FlakyTrigger:
    """Trigger whose first wait fails, then fires once and blocks."""

    def __init__(self):
        self.calls = 0

    async def wait(self):
        self.calls += 1
        if self.calls == 1:
            raise OSError("clock source unavailable")
        if self.calls == 2:
            return None
        await asyncio.Event().wait()


def add_subscribers(subscriptions, *emails):
    async def _add():
        for email in emails:
            await subscriptions.subscribe(email)
    asyncio.run(_add())


class TestDigestJob:
    """Tests for a single digest run."""

    def test_delivers_same_digest_to_every_active_subscriber(self, make_job, subscriptions, transport):
        add_subscribers(subscriptions, "a@b.com", "c@d.com", "e@f.com")
        asyncio.run(subscriptions.unsubscribe("c@d.com"))
        job = make_job(narrator=CannedNarrator("Calm session."))

        result = asyncio.run(job.run())

        assert result.succeeded == 2
        assert [m.to for m in transport.sent] == ["a@b.com", "e@f.com"]
        assert transport.sent[0].html == transport.sent[1].html
        assert "Calm session." in transport.sent[0].html
        assert job.history == FULL_RUN
        assert job.state == SchedulerState.IDLE

    def test_subject_uses_trigger_date(self, make_job, subscriptions, transport):
        add_subscribers(subscriptions, "a@b.com")

        asyncio.run(make_job().run(now=datetime(2024, 12, 24, 8, 0)))

        assert transport.sent[0].subject == "Market Insights - 2024-12-24"

    def test_digest_dated_in_local_time(self, make_job, subscriptions, transport, utc_plus_ten):
        add_subscribers(subscriptions, "a@b.com")

        # 22:00 UTC is 08:00 the next morning at UTC+10
        asyncio.run(make_job().run(now=datetime(2024, 6, 3, 22, 0, tzinfo=timezone.utc)))

        assert transport.sent[0].subject == "Market Insights - 2024-06-04"

    def test_no_subscribers_sends_nothing(self, make_job, transport):
        narrator = CannedNarrator("unused")
        job = make_job(narrator=narrator)

        result = asyncio.run(job.run())

        assert result.attempted == 0
        assert transport.attempts == []
        assert narrator.calls == 0
        assert job.history == [
            SchedulerState.TRIGGERED,
            SchedulerState.LOADING_SUBSCRIBERS,
            SchedulerState.IDLE,
        ]

    def test_failure_returns_to_idle(self, make_job, subscriptions, transport):
        add_subscribers(subscriptions, "a@b.com")
        job = make_job(market_data=BrokenMarketData())

        result = asyncio.run(job.run())

        assert result is None
        assert job.state == SchedulerState.IDLE
        assert job.history[-2:] == [SchedulerState.RENDERING_CONTENT, SchedulerState.IDLE]
        assert transport.attempts == []

    def test_only_email_restricts_delivery(self, make_job, subscriptions, transport):
        add_subscribers(subscriptions, "a@b.com", "c@d.com")

        result = asyncio.run(make_job().run(only_email="c@d.com"))

        assert result.succeeded == 1
        assert [m.to for m in transport.sent] == ["c@d.com"]

    def test_recipient_failures_reported_not_raised(self, subscriptions, settings, recording_transport_cls, clock):
        add_subscribers(subscriptions, "a@b.com", "bad@b.com", "c@d.com")
        transport = recording_transport_cls(fail_for={"bad@b.com"})
        job = DigestJob(subscriptions, SimulatedMarketData(), DigestRenderer(),
                        DeliveryEngine(transport, settings), clock=clock)

        result = asyncio.run(job.run())

        assert (result.succeeded, result.failed) == (2, 1)
        assert job.history == FULL_RUN


class TestNextRunAfter:

    def test_later_today(self):
        now = datetime(2024, 6, 3, 7, 30, tzinfo=timezone.utc)

        assert next_run_after(now, "08:00") == datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)

    def test_exactly_at_send_time_rolls_to_tomorrow(self):
        now = datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)

        assert next_run_after(now, "08:00") == datetime(2024, 6, 4, 8, 0, tzinfo=timezone.utc)

    def test_after_send_time_rolls_over_month_end(self):
        now = datetime(2024, 6, 30, 21, 15)

        assert next_run_after(now, "08:00") == datetime(2024, 7, 1, 8, 0)

    @pytest.mark.parametrize("value", ["8am", "24:00", "07:60", "", "7:5"])
    def test_invalid_send_time(self, value):
        with pytest.raises(ConfigError):
            next_run_after(datetime(2024, 6, 3), value)


class TestDailyTrigger:
    """Tests for the wall-clock trigger."""

    def test_registers_daily_job(self):
        trigger = DailyTrigger("08:00")

        assert len(trigger.jobs.jobs) == 1
        assert trigger.jobs.next_run is not None
        assert (trigger.jobs.next_run.hour, trigger.jobs.next_run.minute) == (8, 0)

    def test_invalid_time_rejected(self):
        with pytest.raises(ConfigError):
            DailyTrigger("25:00")

    def test_wait_polls_until_job_is_due(self, clock):
        trigger = DailyTrigger("08:00", poll_interval=5.0, clock=clock)
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)
            trigger.jobs.jobs[0].next_run = datetime.now() - timedelta(seconds=1)

        trigger._sleep = fake_sleep

        fired_at = asyncio.run(trigger.wait())

        assert len(delays) == 1 and 0 <= delays[0] <= 5.0
        assert fired_at == datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)
        assert trigger.jobs.next_run > datetime.now()


class TestDigestScheduler:
    """Tests for the scheduler loop."""

    def test_runs_job_each_time_trigger_fires(self, make_job, subscriptions, transport):
        add_subscribers(subscriptions, "a@b.com")
        trigger = ManualTrigger()
        scheduler = DigestScheduler(make_job(), trigger)

        async def scenario():
            scheduler.start()
            trigger.fire()
            trigger.fire()
            for _ in range(200):
                if scheduler.runs == 2:
                    break
                await asyncio.sleep(0.01)
            running = scheduler.is_running
            await scheduler.stop()
            return running

        was_running = asyncio.run(scenario())

        assert was_running is True
        assert scheduler.runs == 2
        assert scheduler.is_running is False
        assert len(transport.sent) == 2

    def test_start_twice_keeps_one_loop(self, make_job):
        scheduler = DigestScheduler(make_job(), ManualTrigger())

        async def scenario():
            scheduler.start()
            first = scheduler._task
            scheduler.start()
            second = scheduler._task
            await scheduler.stop()
            return first is second

        assert asyncio.run(scenario()) is True

    def test_stop_without_start_is_noop(self, make_job):
        asyncio.run(DigestScheduler(make_job(), ManualTrigger()).stop())

    def test_trigger_now_runs_immediately(self, make_job, subscriptions, transport):
        add_subscribers(subscriptions, "a@b.com", "c@d.com")
        scheduler = DigestScheduler(make_job(), ManualTrigger())

        result = asyncio.run(scheduler.trigger_now(only_email="a@b.com"))

        assert result.succeeded == 1
        assert scheduler.runs == 0

    def test_trigger_failure_does_not_stop_loop(self, make_job, subscriptions, transport, no_sleep):
        add_subscribers(subscriptions, "a@b.com")
        trigger = FlakyTrigger()
        scheduler = DigestScheduler(make_job(), trigger, retry_delay=5.0, sleep=no_sleep)

        async def scenario():
            scheduler.start()
            for _ in range(200):
                if scheduler.runs == 1:
                    break
                await asyncio.sleep(0.01)
            await scheduler.stop()

        asyncio.run(scenario())

        assert no_sleep.calls == [5.0]
        assert trigger.calls == 3
        assert scheduler.runs == 1
        assert len(transport.sent) == 1

    def test_start_logs_next_daily_run(self, make_job, caplog):
        caplog.set_level(logging.INFO, logger="market_digest.scheduler")
        now = datetime(2024, 6, 3, 7, 30, tzinfo=timezone.utc)
        scheduler = DigestScheduler(make_job(), DailyTrigger("08:00"), clock=lambda: now)

        async def scenario():
            scheduler.start()
            await scheduler.stop()

        asyncio.run(scenario())

        assert "scheduled daily at 08:00; next run at 2024-06-03T08:00:00+00:00" in caplog.text
