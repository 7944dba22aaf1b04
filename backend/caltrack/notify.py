import logging
import os
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    try:
        with smtplib.SMTP(server) as s:
            s.send_message(msg)
    except (OSError, smtplib.SMTPException):
        # mail is a courtesy; the release itself is already recorded
        logger.warning("Could not deliver '%s' to %s", subject, to_email, exc_info=True)


def notify_ready_for_pickup(employee, recall_number: str | None, description: str | None):
    """Tell the submitting employee their item can be collected."""

    if employee is None or not employee.email:
        return
    label = recall_number or "(no recall number)"
    send_email(
        employee.email,
        f"Calibration complete: {label}",
        f"{description or 'Your equipment'} ({label}) has been calibrated and is ready for pickup.",
    )
