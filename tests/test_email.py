"""Tests for SMTP delivery of verification codes."""

import smtplib

import pytest

from muzee.service.email import VERIFICATION_SUBJECT, EmailService


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, from_addr, to_addr, message):
        self.sent.append((from_addr, to_addr, message))


class RefusingSMTP(FakeSMTP):
    def __init__(self, host, port, timeout=None):
        raise ConnectionRefusedError("connection refused")


class RejectingSMTP(FakeSMTP):
    def sendmail(self, from_addr, to_addr, message):
        raise smtplib.SMTPDataError(554, b"rejected")


def _configured(**kwargs):
    return EmailService(
        smtp_host="smtp.example.com",
        smtp_user="mailer",
        smtp_password="secret",
        from_email="no-reply@muzee.app",
        **kwargs,
    )


@pytest.fixture(autouse=True)
def _reset_instances():
    FakeSMTP.instances = []


class TestEmailService:
    def test_unconfigured_logs_instead_of_sending(self, monkeypatch):
        monkeypatch.setattr(smtplib, "SMTP", RefusingSMTP)
        service = EmailService()

        assert service.is_configured is False
        assert service.send_verification_code("a@x.com", "123456") is True

    def test_dev_mode_never_touches_smtp(self, monkeypatch):
        monkeypatch.setattr(smtplib, "SMTP", RefusingSMTP)

        assert _configured(dev_mode=True).send_verification_code("a@x.com", "123456") is True

    def test_sends_over_starttls(self, monkeypatch):
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

        assert _configured().send_verification_code("a@x.com", "123456") is True

        server = FakeSMTP.instances[0]
        assert server.host == "smtp.example.com"
        assert server.logged_in == ("mailer", "secret")
        from_addr, to_addr, message = server.sent[0]
        assert from_addr == "no-reply@muzee.app"
        assert to_addr == "a@x.com"
        assert VERIFICATION_SUBJECT in message
        assert "123456" in message

    def test_connection_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(smtplib, "SMTP", RefusingSMTP)

        assert _configured().send_verification_code("a@x.com", "123456") is False

    def test_smtp_error_returns_false(self, monkeypatch):
        monkeypatch.setattr(smtplib, "SMTP", RejectingSMTP)

        assert _configured().send("a@x.com", "hi", "<p>hi</p>") is False

    def test_redacts_address(self):
        assert EmailService()._redact_email("alice@x.com") == "al***@x.com"
        assert EmailService()._redact_email("garbage") == "redacted"
