# broken_link_checker/notifier.py
"""
Message assembly and SMTP delivery.

`build_email` is pure and turns a CheckerReport into a Message. `send_email`
hands that message to an SMTP server over implicit TLS. Delivery failures are
logged and reported through the return value; nothing is retried.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

from broken_link_checker.models import CheckerReport, Message
from broken_link_checker.reports import (
    PRODUCT_LABEL,
    build_email_template,
    build_error_report,
)

log = logging.getLogger(__name__)

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 465


@dataclass(frozen=True)
class SenderDetails:
    """The account the report is sent from."""

    email: str
    password: str = ""

    def __repr__(self) -> str:
        return f"SenderDetails(email={self.email!r}, password='***')"


def build_email(
    sender: SenderDetails, recipient: str, report: CheckerReport
) -> Message:
    message = Message(
        from_=f"{PRODUCT_LABEL} <{sender.email}>",
        to=recipient,
        subject=f"Broken links found while parsing {report.base_url}",
        text_body=build_email_template(report),
        content_type="text/html; charset=UTF-8",
    )
    attachment = build_error_report(report)
    if attachment is not None:
        message.attachments.append(attachment)
    return message


def to_mime(message: Message) -> EmailMessage:
    """Convert a Message into a stdlib EmailMessage ready for smtplib."""
    mime = EmailMessage()
    mime["From"] = message.from_
    mime["To"] = message.to
    mime["Subject"] = message.subject

    maintype, _, rest = message.content_type.partition("/")
    subtype = rest.split(";", 1)[0].strip() or "html"
    if maintype == "text":
        mime.set_content(message.text_body, subtype=subtype, charset="utf-8")
    else:
        mime.set_content(message.text_body.encode("utf-8"), maintype=maintype, subtype=subtype)

    for att in message.attachments:
        att_main, _, att_sub = att.mime_type.partition("/")
        if att_main == "text":
            mime.add_attachment(
                att.data,
                subtype=att_sub or "plain",
                charset=att.charset,
                filename=att.name,
            )
        else:
            mime.add_attachment(
                att.data.encode(att.charset),
                maintype=att_main,
                subtype=att_sub,
                filename=att.name,
            )
    return mime


def send_email(
    sender: SenderDetails,
    recipient: str,
    report: CheckerReport,
    *,
    smtp_host: str = DEFAULT_SMTP_HOST,
    smtp_port: int = DEFAULT_SMTP_PORT,
    timeout: float = 30.0,
) -> bool:
    """
    Build and deliver the report. Returns True if the server accepted it.
    """
    message = build_email(sender, recipient, report)
    mime = to_mime(message)
    try:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(smtp_host, smtp_port, timeout=timeout, context=context) as client:
            if sender.password:
                client.login(sender.email, sender.password)
            client.send_message(mime)
    except (smtplib.SMTPException, OSError) as e:
        log.error("Failed to send report to %s via %s:%d: %s", recipient, smtp_host, smtp_port, e)
        return False
    log.info("Report for %s sent to %s", report.base_url, recipient)
    return True
