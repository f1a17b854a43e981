import logging
from datetime import datetime
from typing import Optional

from celery import Celery

from hiring_api.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "hiring",
    broker=settings.REDIS_URL,
)

# The API only enqueues; delivery runs in services/notifications/worker.py.
celery_app.conf.task_default_queue = settings.EMAIL_QUEUE

SEND_INVITATION_TASK = "email.send_invitation"


def build_invitation_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/invitations/{token}"


def request_invitation_email(
    candidate_email: str,
    company_name: str,
    token: Optional[str],
    message: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> bool:
    """
    Best-effort enqueue of an invitation email. Returns False when the broker
    refused the task; the invitation itself stays valid either way.
    """
    try:
        celery_app.send_task(
            SEND_INVITATION_TASK,
            args=[candidate_email, company_name],
            kwargs={
                "invitation_url": build_invitation_url(token) if token else settings.FRONTEND_URL,
                "message": message,
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
            queue=settings.EMAIL_QUEUE,
        )
    except Exception:  # noqa: BLE001
        logger.exception("Failed to enqueue invitation email for %s", candidate_email)
        return False
    logger.info("Queued invitation email for %s from %s", candidate_email, company_name)
    return True
