"""Tests for the SendGrid and SMTP transports."""

import asyncio
import smtplib
from unittest.mock import MagicMock

import pytest

from market_digest.email_service import SendGridTransport, SmtpTransport
from market_digest.email_service import transports
from market_digest.errors import ConfigError, TransportError


class ProviderError(Exception):
    def __init__(self, body):
        super().__init__("HTTP Error 400: Bad Request")
        self.body = body


@pytest.fixture
def sendgrid():
    transport = SendGridTransport("SG.test", "digest@test.com", "Market Digest")
    transport.client = MagicMock()
    return transport


class TestSendGridTransport:

    def test_returns_provider_message_id(self, sendgrid, make_message):
        sendgrid.client.send.return_value = MagicMock(status_code=202, headers={"X-Message-Id": "sg-123"})

        message_id = asyncio.run(sendgrid.send(make_message("a@b.com")))

        assert message_id == "sg-123"
        mail = sendgrid.client.send.call_args.args[0]
        payload = mail.get()
        assert payload["from"]["email"] == "digest@test.com"
        assert payload["personalizations"][0]["to"][0]["email"] == "a@b.com"

    def test_provider_exception_carries_body(self, sendgrid, make_message):
        sendgrid.client.send.side_effect = ProviderError(b'{"errors": [{"message": "invalid to"}]}')

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(sendgrid.send(make_message("a@b.com")))

        assert "invalid to" in excinfo.value.diagnostic

    def test_non_success_status_raises(self, sendgrid, make_message):
        sendgrid.client.send.return_value = MagicMock(status_code=401, body="unauthorized", headers={})

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(sendgrid.send(make_message("a@b.com")))

        assert excinfo.value.diagnostic == "unauthorized"

    @pytest.mark.parametrize("api_key,sender", [(None, "digest@test.com"), ("SG.test", None)])
    def test_missing_configuration(self, api_key, sender):
        with pytest.raises(ConfigError):
            SendGridTransport(api_key, sender)


class TestSmtpTransport:

    @pytest.fixture
    def server(self, monkeypatch):
        server = MagicMock()
        factory = MagicMock()
        factory.return_value.__enter__.return_value = server
        monkeypatch.setattr(transports.smtplib, "SMTP_SSL", factory)
        server.factory = factory
        return server

    def _transport(self, port=465):
        return SmtpTransport("smtp.gmail.com", port, "me@gmail.com", "app-pass", sender_name="Digest")

    def test_sends_over_implicit_tls(self, server, make_message):
        message_id = asyncio.run(self._transport().send(make_message("a@b.com")))

        server.factory.assert_called_once_with("smtp.gmail.com", 465, timeout=30.0)
        server.login.assert_called_once_with("me@gmail.com", "app-pass")
        sender, recipients, raw = server.sendmail.call_args.args
        assert sender == "me@gmail.com"
        assert recipients == ["a@b.com"]
        assert "Subject: Market Insights" in raw
        assert message_id.startswith("<")

    def test_starttls_on_other_ports(self, monkeypatch, make_message):
        plain = MagicMock()
        monkeypatch.setattr(transports.smtplib, "SMTP", MagicMock(return_value=plain))

        asyncio.run(self._transport(port=587).send(make_message("a@b.com")))

        plain.starttls.assert_called_once()
        plain.__enter__.return_value.sendmail.assert_called_once()

    def test_authentication_failure(self, server, make_message):
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(self._transport().send(make_message("a@b.com")))

        assert "bad credentials" in excinfo.value.diagnostic

    def test_refused_recipient(self, server, make_message):
        server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({"a@b.com": (550, b"no such user")})

        with pytest.raises(TransportError):
            asyncio.run(self._transport().send(make_message("a@b.com")))

    def test_missing_credentials(self):
        with pytest.raises(ConfigError):
            SmtpTransport("smtp.gmail.com", 465, "me@gmail.com", None)
