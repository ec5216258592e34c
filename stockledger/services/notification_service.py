import logging
import smtplib
from dataclasses import dataclass
from decimal import Decimal
from email.message import EmailMessage
from typing import Literal

from stockledger.core.config import settings
from stockledger.core.observability import log_event

logger = logging.getLogger("stockledger.notifications")

NotificationStatus = Literal["sent", "not_configured", "failed"]


@dataclass(frozen=True)
class NotificationResult:
    status: NotificationStatus
    detail: str | None = None


def _smtp_configured() -> bool:
    return bool(settings.smtp_host and settings.smtp_sender_email and settings.notification_recipients)


def _deliver(message: EmailMessage) -> None:
    if settings.smtp_use_ssl:
        with smtplib.SMTP_SSL(
            settings.smtp_host,
            settings.smtp_port,
            timeout=settings.smtp_timeout_seconds,
        ) as server:
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password or "")
            server.send_message(message)
    else:
        with smtplib.SMTP(
            settings.smtp_host,
            settings.smtp_port,
            timeout=settings.smtp_timeout_seconds,
        ) as server:
            if settings.smtp_use_starttls:
                server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password or "")
            server.send_message(message)


def send_notification(*, event: str, subject: str, body: str) -> NotificationResult:
    """Emit a notification. Never raises: the caller's transaction has already committed."""
    if not _smtp_configured():
        return NotificationResult(status="not_configured", detail="SMTP not configured")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.smtp_sender_email
    message["To"] = ", ".join(settings.notification_recipients)
    message.set_content(body)

    try:
        _deliver(message)
    except (smtplib.SMTPException, OSError) as exc:
        log_event(logger, "notification.failed", level=logging.WARNING, notification=event, error=str(exc))
        return NotificationResult(status="failed", detail=str(exc))

    log_event(logger, "notification.sent", notification=event)
    return NotificationResult(status="sent")


def notify_ncr_created(
    *,
    ncr_no: str,
    location_name: str,
    reason: str,
    value: Decimal,
    auto_generated: bool,
) -> NotificationResult:
    origin = "Automatically raised" if auto_generated else "Raised"
    lines = [
        f"{origin} non-conformance record {ncr_no} at {location_name}.",
        "",
        f"Reason: {reason}",
        f"Value: {value}",
    ]
    return send_notification(
        event="ncr.created",
        subject=f"NCR {ncr_no} raised at {location_name}",
        body="\n".join(lines),
    )


def notify_approval_decision(
    *,
    entity_type: str,
    entity_label: str,
    decision: str,
    reviewer_id: str,
    comments: str | None = None,
) -> NotificationResult:
    lines = [
        f"{entity_type} approval for {entity_label} was {decision.lower()} by {reviewer_id}.",
    ]
    if comments:
        lines.extend(["", f"Comments: {comments}"])
    return send_notification(
        event="approval.decided",
        subject=f"{entity_type} {entity_label}: {decision}",
        body="\n".join(lines),
    )
