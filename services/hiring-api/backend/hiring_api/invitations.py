"""
Candidate invitations.

An invitation reserves a pipeline entry for an email address before any
developer account exists. Tokens are single-use and expire a fixed number of
days after creation; expiry is computed on read and never written back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hiring_api import auth, ledger, models, pipeline
from hiring_api.celery_app import request_invitation_email
from hiring_api.config import settings
from hiring_api.database import retry_transient_read, write_transaction
from hiring_api.errors import Conflict, InvalidState, InvalidToken, NotFound, ValidationFailure
from hiring_api.models import InvitationStatus, PipelineStage

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MIN_PASSWORD_LENGTH = 8
INVALID_LINK_MESSAGE = "This invitation link is invalid, expired or has already been used"


@dataclass
class InvitationInfo:
    valid: bool
    email: Optional[str] = None
    company_name: Optional[str] = None
    message: Optional[str] = None
    expired: bool = False
    error: Optional[str] = None


def _find_developer_by_email(session: Session, email: str) -> Optional[models.Developer]:
    return session.execute(select(models.Developer).where(models.Developer.email == email)).scalar_one_or_none()


def _find_entry(session: Session, company_id: str, email: str) -> Optional[models.PipelineEntry]:
    return session.execute(
        select(models.PipelineEntry).where(
            models.PipelineEntry.company_id == company_id,
            models.PipelineEntry.candidate_email == email,
        )
    ).scalar_one_or_none()


def create_invitation(
    session: Session,
    company_id: str,
    candidate_email: str,
    message: Optional[str] = None,
    send_email: bool = True,
    now: Optional[datetime] = None,
) -> models.Invitation:
    email = auth.normalize_email(candidate_email)
    if not email or "@" not in email:
        raise ValidationFailure("Invalid email address")
    now = now or datetime.utcnow()

    try:
        with write_transaction(session):
            # Held until commit: one company's invitations are created one at a time.
            company = ledger.lock_company(session, company_id)

            previous = session.execute(
                select(models.Invitation).where(
                    models.Invitation.company_id == company_id,
                    models.Invitation.candidate_email == email,
                )
            ).scalars().all()
            if any(inv.status_at(now) == InvitationStatus.PENDING for inv in previous):
                raise Conflict("An active invitation already exists for this email")

            developer = _find_developer_by_email(session, email)
            entry = _find_entry(session, company_id, email)
            if developer is not None:
                entry = session.execute(
                    select(models.PipelineEntry).where(
                        models.PipelineEntry.company_id == company_id,
                        models.PipelineEntry.developer_id == developer.id,
                    )
                ).scalar_one_or_none() or entry
                invitation = _track_registered_developer(session, company_id, developer, entry, previous)
            else:
                if entry is None:
                    entry = models.PipelineEntry(
                        company_id=company_id,
                        candidate_email=email,
                        stage=PipelineStage.INVITED,
                    )
                    session.add(entry)
                    session.flush()
                invitation = models.Invitation(
                    company_id=company_id,
                    pipeline_entry_id=entry.id,
                    candidate_email=email,
                    token=auth.generate_invitation_token(),
                    status=InvitationStatus.PENDING,
                    expires_at=now + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
                )
            invitation.message = message
            invitation.sent_at = now if send_email else None
            invitation.created_at = now
            session.add(invitation)
            session.flush()
    except IntegrityError as exc:
        raise Conflict("An active invitation already exists for this email") from exc

    logger.info(
        "Created %s invitation %s for company %s",
        invitation.status.value,
        invitation.id,
        company_id,
    )
    if send_email:
        request_invitation_email(email, company.name, invitation.token, message, invitation.expires_at)
    return invitation


def _track_registered_developer(
    session: Session,
    company_id: str,
    developer: models.Developer,
    entry: Optional[models.PipelineEntry],
    previous: list[models.Invitation],
) -> models.Invitation:
    if any(inv.status in (InvitationStatus.TRACKED, InvitationStatus.ACCEPTED) for inv in previous):
        raise Conflict("This developer is already tracked by your company")

    if entry is None:
        entry = models.PipelineEntry(
            company_id=company_id,
            developer_id=developer.id,
            candidate_email=developer.email,
            stage=pipeline.initial_stage(session, company_id, developer),
        )
        session.add(entry)
        session.flush()
    elif entry.developer_id is None:
        entry.developer_id = developer.id
        entry.stage = pipeline.initial_stage(session, company_id, developer)
    else:
        pipeline.sync_entry_stage(session, entry)

    return models.Invitation(
        company_id=company_id,
        pipeline_entry_id=entry.id,
        candidate_email=developer.email,
        token=None,
        status=InvitationStatus.TRACKED,
        expires_at=None,
        developer_id=developer.id,
    )


@retry_transient_read
def list_invitations(
    session: Session,
    company_id: str,
    status: Optional[InvitationStatus] = None,
    limit: int = 50,
    offset: int = 0,
    now: Optional[datetime] = None,
) -> tuple[list[models.Invitation], int]:
    now = now or datetime.utcnow()
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    filters = [models.Invitation.company_id == company_id]
    if status == InvitationStatus.EXPIRED:
        filters += [models.Invitation.status == InvitationStatus.PENDING, models.Invitation.expires_at < now]
    elif status == InvitationStatus.PENDING:
        filters += [models.Invitation.status == InvitationStatus.PENDING, models.Invitation.expires_at >= now]
    elif status is not None:
        filters.append(models.Invitation.status == status)

    invitations = (
        session.execute(
            select(models.Invitation)
            .where(*filters)
            .order_by(models.Invitation.created_at.desc(), models.Invitation.id)
            .limit(limit)
            .offset(offset)
        )
        .scalars()
        .all()
    )
    total = session.execute(select(func.count(models.Invitation.id)).where(*filters)).scalar_one()
    return list(invitations), total


def revoke_invitation(session: Session, company_id: str, invitation_id: str) -> None:
    """Delete a PENDING, EXPIRED or TRACKED invitation, along with its entry if still unbound."""
    with write_transaction(session):
        invitation = session.execute(
            select(models.Invitation)
            .where(models.Invitation.id == invitation_id, models.Invitation.company_id == company_id)
            .with_for_update()
        ).scalar_one_or_none()
        if invitation is None:
            raise NotFound("Invitation not found")
        if invitation.status == InvitationStatus.ACCEPTED:
            raise InvalidState("Cannot delete an accepted invitation")

        entry = invitation.pipeline_entry
        session.delete(invitation)
        if entry is not None and entry.is_pending_invitation:
            session.delete(entry)
    logger.info("Revoked invitation %s of company %s", invitation_id, company_id)


def get_invitation_info(session: Session, token: str, now: Optional[datetime] = None) -> InvitationInfo:
    """
    Public lookup behind the invitation link. Never raises for a bad token and
    answers unknown, used and expired tokens with the same message.
    """
    now = now or datetime.utcnow()
    invitation = None
    if token:
        invitation = session.execute(
            select(models.Invitation).where(models.Invitation.token == token)
        ).scalar_one_or_none()
    if invitation is None or invitation.status != InvitationStatus.PENDING:
        return InvitationInfo(valid=False, error=INVALID_LINK_MESSAGE)
    if _find_developer_by_email(session, invitation.candidate_email) is not None:
        return InvitationInfo(valid=False, error=INVALID_LINK_MESSAGE)
    if invitation.status_at(now) == InvitationStatus.EXPIRED:
        return InvitationInfo(valid=False, expired=True, error=INVALID_LINK_MESSAGE)

    return InvitationInfo(
        valid=True,
        email=auth.mask_email(invitation.candidate_email),
        company_name=invitation.company.name,
        message=invitation.message,
    )


def accept_invitation(
    session: Session,
    token: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.Developer:
    """
    Redeem an invitation: create the developer account and bind every pending
    pipeline entry for the invited email, across all companies, in one
    transaction.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    now = now or datetime.utcnow()

    try:
        with write_transaction(session):
            invitation = None
            if token:
                invitation = session.execute(
                    select(models.Invitation).where(models.Invitation.token == token).with_for_update()
                ).scalar_one_or_none()
            if invitation is None or invitation.status == InvitationStatus.TRACKED:
                raise InvalidToken("Invalid invitation token")
            if invitation.status == InvitationStatus.ACCEPTED:
                raise InvalidToken("This invitation has already been used", reason="already_used")
            if invitation.status_at(now) == InvitationStatus.EXPIRED:
                raise InvalidToken("This invitation has expired", reason="expired")

            email = invitation.candidate_email
            if _find_developer_by_email(session, email) is not None:
                raise Conflict("An account with this email already exists. Please sign in instead.")

            developer = models.Developer(
                email=email,
                password_hash=auth.hash_password(password),
                first_name=first_name,
                last_name=last_name,
                assessment_status=models.AssessmentStatus.REGISTERING,
                created_at=now,
                updated_at=now,
            )
            session.add(developer)
            session.flush()

            invitation.status = InvitationStatus.ACCEPTED
            invitation.accepted_at = now
            invitation.developer_id = developer.id

            pending_entries = session.execute(
                select(models.PipelineEntry)
                .where(
                    models.PipelineEntry.candidate_email == email,
                    models.PipelineEntry.developer_id.is_(None),
                )
                .with_for_update()
            ).scalars().all()
            for entry in pending_entries:
                entry.developer_id = developer.id
                entry.stage = PipelineStage.REGISTERING
            converted = _track_other_companies(session, invitation, developer)
    except IntegrityError as exc:
        raise Conflict("An account with this email already exists. Please sign in instead.") from exc

    logger.info(
        "Invitation %s accepted by developer %s, bound %s pipeline entr%s, %s invitation(s) now tracked",
        invitation.id,
        developer.id,
        len(pending_entries),
        "y" if len(pending_entries) == 1 else "ies",
        converted,
    )
    return developer


def _track_other_companies(
    session: Session,
    accepted: models.Invitation,
    developer: models.Developer,
) -> int:
    """
    Turn the latest PENDING invitation of every other company inviting the same
    email into a TRACKED one. Older PENDING rows are left to read as EXPIRED.
    """
    others = session.execute(
        select(models.Invitation)
        .where(
            models.Invitation.candidate_email == accepted.candidate_email,
            models.Invitation.status == InvitationStatus.PENDING,
            models.Invitation.company_id != accepted.company_id,
        )
        .order_by(models.Invitation.created_at.desc(), models.Invitation.id)
        .with_for_update()
    ).scalars().all()

    seen: set[str] = set()
    for other in others:
        if other.company_id in seen:
            continue
        seen.add(other.company_id)
        other.status = InvitationStatus.TRACKED
        other.developer_id = developer.id
        other.token = None
        other.expires_at = None
    return len(seen)


NOT_REGISTERED = "NOT_REGISTERED"


@dataclass
class DeveloperStatus:
    exists: bool
    status: str
    email: str
    developer_id: Optional[str] = None
    name: Optional[str] = None
    is_tracked: bool = False
    is_unlocked: bool = False
    overall_score: Optional[int] = None
    project_count: int = 0
    tech_stack: Optional[list[str]] = None


@retry_transient_read
def get_developer_status(session: Session, company_id: str, email: str) -> DeveloperStatus:
    """Where a candidate stands, for the company about to invite them."""
    email = auth.normalize_email(email)
    if not email or "@" not in email:
        raise ValidationFailure("Invalid email address")

    developer = _find_developer_by_email(session, email)
    entry_filter = models.PipelineEntry.candidate_email == email
    if developer is not None:
        entry_filter = entry_filter | (models.PipelineEntry.developer_id == developer.id)
    is_tracked = (
        session.execute(
            select(models.PipelineEntry.id).where(models.PipelineEntry.company_id == company_id, entry_filter)
        ).first()
        is not None
    )

    if developer is None:
        return DeveloperStatus(exists=False, status=NOT_REGISTERED, email=email, is_tracked=is_tracked)

    name = " ".join(part for part in (developer.first_name, developer.last_name) if part) or None
    return DeveloperStatus(
        exists=True,
        status=developer.assessment_status.value,
        email=developer.email,
        developer_id=developer.id,
        name=name,
        is_tracked=is_tracked,
        is_unlocked=pipeline.has_unlock(session, company_id, developer.id),
        overall_score=developer.overall_score,
        project_count=developer.project_count or 0,
        tech_stack=developer.tech_stack or None,
    )
