"""
Company hiring funnel.

Stages move forward only. Developer-side stages (REGISTERING .. ASSESSED) are
re-derived from the developer's assessment status; ASSESSED -> UNLOCKED belongs
to the unlock coordinator; HIRED and REJECTED are the only stages a company
sets by hand.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from hiring_api import models
from hiring_api.database import retry_transient_read, write_transaction
from hiring_api.errors import Conflict, InvalidState, InvalidTransition, NotFound, ValidationFailure
from hiring_api.models import PipelineStage

logger = logging.getLogger(__name__)

STAGE_ORDER = [
    PipelineStage.INVITED,
    PipelineStage.REGISTERING,
    PipelineStage.PROJECTS_SUBMITTED,
    PipelineStage.ANALYZING,
    PipelineStage.PENDING_ANALYSIS,
    PipelineStage.ASSESSED,
    PipelineStage.UNLOCKED,
    PipelineStage.HIRED,
    PipelineStage.REJECTED,
]
STAGE_RANK = {stage: index for index, stage in enumerate(STAGE_ORDER)}

# HIRED and REJECTED share a rank: neither follows the other.
STAGE_RANK[PipelineStage.REJECTED] = STAGE_RANK[PipelineStage.HIRED]

MANUAL_TARGETS = {PipelineStage.HIRED, PipelineStage.REJECTED}
MANUAL_SOURCES = {PipelineStage.ASSESSED, PipelineStage.UNLOCKED}
TERMINAL_STAGES = {PipelineStage.HIRED, PipelineStage.REJECTED}
# Stages owned by the company side; developer events never move them.
COMPANY_OWNED_STAGES = {PipelineStage.UNLOCKED, PipelineStage.HIRED, PipelineStage.REJECTED}

MAX_PAGE_SIZE = 100
SORT_COLUMNS = {
    "created_at": models.PipelineEntry.created_at,
    "updated_at": models.PipelineEntry.updated_at,
    "stage": models.PipelineEntry.stage,
    "candidate_email": models.PipelineEntry.candidate_email,
}


def stage_for_assessment(status: models.AssessmentStatus) -> PipelineStage:
    return PipelineStage(status.value)


def is_at_least(stage: PipelineStage, floor: PipelineStage) -> bool:
    return STAGE_RANK[stage] >= STAGE_RANK[floor]


def has_unlock(session: Session, company_id: str, developer_id: str) -> bool:
    return (
        session.execute(
            select(models.UnlockedReport.id).where(
                models.UnlockedReport.company_id == company_id,
                models.UnlockedReport.developer_id == developer_id,
            )
        ).first()
        is not None
    )


def unlocked_developer_ids(session: Session, company_id: str, developer_ids: Iterable[Optional[str]]) -> set[str]:
    ids = [developer_id for developer_id in developer_ids if developer_id]
    if not ids:
        return set()
    rows = session.execute(
        select(models.UnlockedReport.developer_id).where(
            models.UnlockedReport.company_id == company_id,
            models.UnlockedReport.developer_id.in_(ids),
        )
    )
    return {row[0] for row in rows}


def initial_stage(session: Session, company_id: str, developer: models.Developer) -> PipelineStage:
    if has_unlock(session, company_id, developer.id):
        return PipelineStage.UNLOCKED
    return stage_for_assessment(developer.assessment_status)


def sync_entry_stage(session: Session, entry: models.PipelineEntry) -> bool:
    """
    Move ``entry`` forward to the stage implied by its developer's assessment
    status. Runs inside the caller's transaction. Returns True when the stage
    changed.
    """
    if entry.developer_id is None:
        return False
    if entry.stage in COMPANY_OWNED_STAGES:
        return False

    developer = entry.developer or session.get(models.Developer, entry.developer_id)
    if developer is None:
        return False

    target = stage_for_assessment(developer.assessment_status)
    if STAGE_RANK[target] > STAGE_RANK[entry.stage]:
        logger.info("Pipeline entry %s advanced %s -> %s", entry.id, entry.stage.value, target.value)
        entry.stage = target
        return True
    if STAGE_RANK[target] < STAGE_RANK[entry.stage]:
        logger.warning(
            "Assessment status regression ignored for entry=%s developer=%s: stage=%s status=%s",
            entry.id,
            developer.id,
            entry.stage.value,
            developer.assessment_status.value,
        )
    return False


def _load_entry(
    session: Session,
    company_id: str,
    entry_id: str,
    for_update: bool = False,
) -> models.PipelineEntry:
    stmt = select(models.PipelineEntry).where(
        models.PipelineEntry.id == entry_id,
        models.PipelineEntry.company_id == company_id,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    entry = session.execute(stmt).scalar_one_or_none()
    if entry is None:
        raise NotFound("Pipeline entry not found")
    return entry


def sync_stage_from_developer_status(session: Session, company_id: str, entry_id: str) -> models.PipelineEntry:
    with write_transaction(session):
        entry = _load_entry(session, company_id, entry_id, for_update=True)
        sync_entry_stage(session, entry)
    return entry


def add_developer(
    session: Session,
    company_id: str,
    developer_id: str,
    notes: Optional[str] = None,
) -> models.PipelineEntry:
    notes = _clean_notes(notes)
    try:
        with write_transaction(session):
            if session.get(models.Company, company_id) is None:
                raise NotFound("Company not found")
            developer = session.get(models.Developer, developer_id)
            if developer is None:
                raise NotFound("Developer not found")

            existing = session.execute(
                select(models.PipelineEntry).where(
                    models.PipelineEntry.company_id == company_id,
                    (models.PipelineEntry.developer_id == developer_id)
                    | (models.PipelineEntry.candidate_email == developer.email),
                )
            ).scalars().first()
            if existing is not None:
                raise Conflict("Developer is already in your pipeline")

            entry = models.PipelineEntry(
                company_id=company_id,
                developer_id=developer.id,
                candidate_email=developer.email,
                stage=initial_stage(session, company_id, developer),
                notes=notes,
            )
            session.add(entry)
            session.flush()
    except IntegrityError as exc:
        raise Conflict("Developer is already in your pipeline") from exc

    logger.info("Added developer %s to pipeline of company %s at %s", developer_id, company_id, entry.stage.value)
    return entry


@retry_transient_read
def list_pipeline_entries(
    session: Session,
    company_id: str,
    stage: Optional[PipelineStage] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    sort_by: str = "updated_at",
    sort_order: str = "desc",
) -> tuple[list[models.PipelineEntry], int]:
    if sort_by not in SORT_COLUMNS:
        raise ValidationFailure(f"Cannot sort by {sort_by}", details={"allowed": sorted(SORT_COLUMNS)})
    if sort_order not in ("asc", "desc"):
        raise ValidationFailure("sort_order must be 'asc' or 'desc'")
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    filters = [models.PipelineEntry.company_id == company_id]
    if stage is not None:
        filters.append(models.PipelineEntry.stage == stage)
    if search:
        filters.append(models.PipelineEntry.candidate_email.ilike(f"%{search.strip()}%"))

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()
    entries = (
        session.execute(
            select(models.PipelineEntry)
            .options(selectinload(models.PipelineEntry.developer))
            .where(*filters)
            .order_by(ordering, models.PipelineEntry.id)
            .limit(limit)
            .offset(offset)
        )
        .scalars()
        .all()
    )
    total = session.execute(select(func.count(models.PipelineEntry.id)).where(*filters)).scalar_one()
    return list(entries), total


def get_pipeline_entry(session: Session, company_id: str, entry_id: str) -> models.PipelineEntry:
    """Read one entry, bringing its stage up to date with the developer first."""
    return sync_stage_from_developer_status(session, company_id, entry_id)


def update_pipeline_stage(
    session: Session,
    company_id: str,
    entry_id: str,
    stage: PipelineStage,
) -> models.PipelineEntry:
    if stage not in MANUAL_TARGETS:
        raise InvalidTransition(
            f"Stage {stage.value} cannot be set manually",
            details={"allowed": sorted(target.value for target in MANUAL_TARGETS)},
        )

    with write_transaction(session):
        entry = _load_entry(session, company_id, entry_id, for_update=True)
        if entry.is_pending_invitation:
            raise InvalidState("Candidate has not registered yet")
        sync_entry_stage(session, entry)
        if entry.stage in TERMINAL_STAGES:
            raise InvalidState(f"Candidate is already {entry.stage.value}")
        if entry.stage not in MANUAL_SOURCES:
            raise InvalidState(f"Candidate must be assessed before moving to {stage.value}")
        previous = entry.stage
        entry.stage = stage

    logger.info("Pipeline entry %s moved %s -> %s", entry.id, previous.value, stage.value)
    return entry


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    if len(notes) > models.NOTES_MAX_LENGTH:
        raise ValidationFailure(f"Notes must be at most {models.NOTES_MAX_LENGTH} characters")
    return notes or None


def update_pipeline_notes(
    session: Session,
    company_id: str,
    entry_id: str,
    notes: Optional[str],
) -> models.PipelineEntry:
    notes = _clean_notes(notes)
    with write_transaction(session):
        entry = _load_entry(session, company_id, entry_id, for_update=True)
        entry.notes = notes
    return entry


def remove_pipeline_entry(session: Session, company_id: str, entry_id: str) -> None:
    with write_transaction(session):
        entry = _load_entry(session, company_id, entry_id, for_update=True)
        if entry.developer_id and has_unlock(session, company_id, entry.developer_id):
            raise InvalidState("Cannot remove a candidate whose report has been unlocked")
        session.delete(entry)
    logger.info("Removed pipeline entry %s from company %s", entry_id, company_id)


@retry_transient_read
def get_pipeline_stats(session: Session, company_id: str) -> dict[str, int]:
    counts = {stage.value: 0 for stage in STAGE_ORDER}
    rows = session.execute(
        select(models.PipelineEntry.stage, func.count(models.PipelineEntry.id))
        .where(models.PipelineEntry.company_id == company_id)
        .group_by(models.PipelineEntry.stage)
    )
    for stage, count in rows:
        counts[stage.value] = count
    counts["total"] = sum(counts.values())
    return counts


def record_assessment_update(
    session: Session,
    developer_id: str,
    status: models.AssessmentStatus,
    overall_score: Optional[int] = None,
    tech_stack: Optional[list[str]] = None,
    project_count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> models.Developer:
    """
    Store facts reported by the analysis engine and reconcile every pipeline
    entry of the developer across all companies.
    """
    with write_transaction(session):
        developer = session.get(models.Developer, developer_id, with_for_update=True)
        if developer is None:
            raise NotFound("Developer not found")
        developer.assessment_status = status
        if overall_score is not None:
            developer.overall_score = overall_score
        if tech_stack is not None:
            developer.tech_stack = list(tech_stack)
        if project_count is not None:
            developer.project_count = project_count
        developer.updated_at = now or datetime.utcnow()
        session.flush()

        entries = session.execute(
            select(models.PipelineEntry).where(models.PipelineEntry.developer_id == developer_id).with_for_update()
        ).scalars()
        changed = sum(1 for entry in entries if sync_entry_stage(session, entry))

    logger.info(
        "Assessment update for developer=%s status=%s synced %s pipeline entr%s",
        developer_id,
        status.value,
        changed,
        "y" if changed == 1 else "ies",
    )
    return developer
