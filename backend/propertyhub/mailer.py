from __future__ import annotations

import logging
import smtplib
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage

import requests

from propertyhub.config import (
    brevo_api_key,
    brevo_from_email,
    brevo_sender_name,
    email_backend,
    is_local_dev,
    public_site_url,
    smtp_from_email,
    smtp_host,
    smtp_pass,
    smtp_port,
    smtp_user,
)

logger = logging.getLogger(__name__)

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"
SEND_TIMEOUT_SECONDS = 15


class EmailSendError(RuntimeError):
    pass


@dataclass(frozen=True)
class Email:
    to_email: str
    subject: str
    text: str


def _brevo_transport(mail: Email) -> None:
    key = brevo_api_key()
    sender = (brevo_from_email() or smtp_from_email()).strip()
    if not key or not sender:
        raise EmailSendError("Brevo needs BREVO_API_KEY and BREVO_FROM")
    try:
        resp = requests.post(
            BREVO_SEND_URL,
            headers={"api-key": key, "Accept": "application/json"},
            json={
                "sender": {"email": sender, "name": brevo_sender_name()},
                "to": [{"email": mail.to_email}],
                "subject": mail.subject,
                "textContent": mail.text,
            },
            timeout=SEND_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise EmailSendError(f"Brevo request failed: {e}") from e
    if not resp.ok:
        raise EmailSendError(f"Brevo rejected the message: HTTP {resp.status_code}")


def _smtp_transport(mail: Email) -> None:
    host, port, sender = smtp_host(), int(smtp_port()), smtp_from_email()
    if not host or not sender:
        raise EmailSendError("SMTP needs SMTP_HOST and SMTP_FROM")

    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = mail.to_email
    msg["Subject"] = mail.subject
    msg.set_content(mail.text)

    tls = ssl.create_default_context()
    try:
        if port == 465:
            conn = smtplib.SMTP_SSL(host, port, timeout=SEND_TIMEOUT_SECONDS, context=tls)
        else:
            conn = smtplib.SMTP(host, port, timeout=SEND_TIMEOUT_SECONDS)
        with conn:
            if port != 465:
                conn.ehlo()
                if conn.has_extn("starttls"):
                    conn.starttls(context=tls)
                    conn.ehlo()
            if smtp_user() and smtp_pass():
                conn.login(smtp_user(), smtp_pass())
            conn.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise EmailSendError(f"SMTP send failed: {e}") from e


def _console_transport(mail: Email) -> None:
    logger.info("Email to=%s subject=%s\n%s", mail.to_email, mail.subject, mail.text)


_TRANSPORTS: dict[str, Callable[[Email], None]] = {
    "console": _console_transport,
    "log": _console_transport,
    "brevo": _brevo_transport,
    "smtp": _smtp_transport,
}


def _auto_transport() -> Callable[[Email], None]:
    if brevo_api_key():
        return _brevo_transport
    if smtp_host():
        return _smtp_transport
    if is_local_dev():
        return _console_transport
    raise EmailSendError("No email provider configured (BREVO_API_KEY or SMTP_HOST)")


def send_email(*, to_email: str, subject: str, text: str) -> None:
    """Deliver through EMAIL_BACKEND; `auto` picks Brevo, then SMTP, then the log in local dev."""
    to_email = (to_email or "").strip()
    if "@" not in to_email:
        raise EmailSendError("Invalid recipient email")
    transport = _TRANSPORTS.get(email_backend()) or _auto_transport()
    transport(Email(to_email=to_email, subject=subject, text=text))


def send_property_confirmation_email(*, to_email: str, name: str, title: str, property_id: int) -> None:
    greeting = f"Hi {name}," if name else "Hi,"
    text = (
        f"{greeting}\n\n"
        f'Your listing "{title}" (#{property_id}) has been received and is awaiting review.\n'
        "We will let you know as soon as it is live.\n\n"
        f"{public_site_url()}/my-properties\n"
    )
    send_email(to_email=to_email, subject="Your listing is under review", text=text)


def send_property_approval_email(*, to_email: str, name: str, title: str, property_id: int) -> None:
    greeting = f"Hi {name}," if name else "Hi,"
    text = (
        f"{greeting}\n\n"
        f'Good news: your listing "{title}" has been approved and is now visible to everyone.\n\n'
        f"{public_site_url()}/properties/{property_id}\n"
    )
    send_email(to_email=to_email, subject="Your listing is live", text=text)


def notify_safely(send, **kwargs) -> None:
    """
    Run a notification from a background task. Delivery failures are logged;
    the request that triggered them has already succeeded.
    """
    try:
        send(**kwargs)
    except EmailSendError:
        logger.exception("Notification email failed: %s to=%s", getattr(send, "__name__", send), kwargs.get("to_email"))
