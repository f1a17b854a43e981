import logging
import os
import smtplib
from datetime import datetime
from email.message import EmailMessage

from celery import Celery

logger = logging.getLogger(__name__)

# Simple Celery app that delivers transactional email queued by the hiring API.
celery_app = Celery(
    "notifications",
    broker=os.getenv("REDIS_URL", "redis://redis:6379/0"),
)

# Listen on a dedicated queue so other workers ignore email jobs.
celery_app.conf.task_default_queue = os.getenv("EMAIL_QUEUE", "email")


def _smtp_settings() -> dict[str, object]:
    return {
        "host": os.getenv("SMTP_HOST", "localhost"),
        "port": int(os.getenv("SMTP_PORT", "587")),
        "username": os.getenv("SMTP_USERNAME", ""),
        "password": os.getenv("SMTP_PASSWORD", ""),
        "use_tls": os.getenv("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes"),
        "sender": os.getenv("SMTP_FROM", "no-reply@localhost"),
    }


def _format_expiry(expires_at: str | None) -> str | None:
    if not expires_at:
        return None
    try:
        return datetime.fromisoformat(expires_at).strftime("%B %d, %Y")
    except ValueError:
        return None


def build_invitation_message(
    sender: str,
    candidate_email: str,
    company_name: str,
    invitation_url: str,
    message: str | None = None,
    expires_at: str | None = None,
) -> EmailMessage:
    lines = [
        "Hello,",
        "",
        f"{company_name} would like you to complete a technical assessment.",
    ]
    if message:
        lines += ["", f'Message from {company_name}:', message.strip()]
    lines += ["", f"Accept the invitation: {invitation_url}"]
    expiry = _format_expiry(expires_at)
    if expiry:
        lines.append(f"This link expires on {expiry}.")

    email = EmailMessage()
    email["Subject"] = f"{company_name} invited you to join their hiring pipeline"
    email["From"] = sender
    email["To"] = candidate_email
    email.set_content("\n".join(lines))
    return email


def deliver(email: EmailMessage, smtp: dict[str, object]) -> None:
    with smtplib.SMTP(str(smtp["host"]), int(smtp["port"]), timeout=30) as client:
        if smtp["use_tls"]:
            client.starttls()
        if smtp["username"]:
            client.login(str(smtp["username"]), str(smtp["password"]))
        client.send_message(email)


@celery_app.task(name="email.send_invitation", bind=True, max_retries=3, default_retry_delay=60)
def send_invitation(
    self,
    candidate_email: str,
    company_name: str,
    invitation_url: str,
    message: str | None = None,
    expires_at: str | None = None,
) -> dict[str, object]:
    """
    Deliver an invitation email over SMTP. Retries on transport errors; the
    invitation stays valid whether or not the email ever arrives.
    """
    smtp = _smtp_settings()
    email = build_invitation_message(
        str(smtp["sender"]),
        candidate_email,
        company_name,
        invitation_url,
        message=message,
        expires_at=expires_at,
    )
    try:
        deliver(email, smtp)
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Failed to send invitation email from %s", company_name)
        raise self.retry(exc=exc)

    logger.info("Sent invitation email from %s", company_name)
    return {"status": "ok", "company_name": company_name}
