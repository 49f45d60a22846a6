import logging

import pytest

from propertyhub import mailer
from propertyhub.mailer import EmailSendError, notify_safely, send_email, send_property_confirmation_email


def test_console_backend_logs(caplog, monkeypatch):
    monkeypatch.setenv("EMAIL_BACKEND", "console")
    with caplog.at_level(logging.INFO, logger="propertyhub.mailer"):
        send_property_confirmation_email(to_email="owner@example.com", name="Owner", title="Shop", property_id=7)
    assert "owner@example.com" in caplog.text
    assert "(#7)" in caplog.text


def test_invalid_recipient():
    with pytest.raises(EmailSendError):
        send_email(to_email="not-an-address", subject="s", text="t")


def test_brevo_requires_key(monkeypatch):
    monkeypatch.setenv("EMAIL_BACKEND", "brevo")
    monkeypatch.delenv("BREVO_API_KEY", raising=False)
    with pytest.raises(EmailSendError, match="BREVO_API_KEY"):
        send_email(to_email="a@example.com", subject="s", text="t")


def test_brevo_http_error(monkeypatch):
    class _Resp:
        ok = False
        status_code = 401

    monkeypatch.setenv("EMAIL_BACKEND", "brevo")
    monkeypatch.setenv("BREVO_API_KEY", "key")
    monkeypatch.setenv("BREVO_FROM", "noreply@example.com")
    monkeypatch.setattr(mailer.requests, "post", lambda *a, **kw: _Resp())
    with pytest.raises(EmailSendError, match="HTTP 401"):
        send_email(to_email="a@example.com", subject="s", text="t")


def test_notify_safely_logs_failures(caplog):
    def _fail(**kwargs):
        raise EmailSendError("provider down")

    with caplog.at_level(logging.ERROR, logger="propertyhub.mailer"):
        notify_safely(_fail, to_email="a@example.com")
    assert "Notification email failed" in caplog.text


def test_smtp_starttls_and_login(monkeypatch):
    sent = []

    class _FakeSMTP:
        def __init__(self, host, port, timeout):
            sent.append(("connect", host, port))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def ehlo(self):
            return (250, b"ok")

        def has_extn(self, name):
            return name == "starttls"

        def starttls(self, context):
            sent.append(("starttls",))

        def login(self, user, password):
            sent.append(("login", user))

        def send_message(self, msg):
            sent.append(("send", msg["To"], msg["Subject"]))

    monkeypatch.setenv("EMAIL_BACKEND", "smtp")
    monkeypatch.setenv("SMTP_HOST", "mail.example.com")
    monkeypatch.setenv("SMTP_FROM", "noreply@example.com")
    monkeypatch.setenv("SMTP_USER", "mailer")
    monkeypatch.setenv("SMTP_PASS", "secret")
    monkeypatch.setattr(mailer.smtplib, "SMTP", _FakeSMTP)

    send_email(to_email="a@example.com", subject="Hello", text="t")
    assert sent == [
        ("connect", "mail.example.com", 587),
        ("starttls",),
        ("login", "mailer"),
        ("send", "a@example.com", "Hello"),
    ]


def test_auto_without_provider_outside_local_dev(monkeypatch):
    monkeypatch.setenv("EMAIL_BACKEND", "auto")
    monkeypatch.setenv("DATABASE_URL", "postgresql://db.example.com/propertyhub")
    monkeypatch.delenv("BREVO_API_KEY", raising=False)
    monkeypatch.delenv("SMTP_HOST", raising=False)
    with pytest.raises(EmailSendError, match="No email provider configured"):
        send_email(to_email="a@example.com", subject="s", text="t")
