from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from hiring_api import models, pipeline
from hiring_api.database import get_session
from hiring_api.dependencies import get_current_company
from hiring_api.models import PipelineStage
from hiring_api.schemas_pipeline import (
    NotesUpdate,
    PipelineAdd,
    PipelineDeveloperOut,
    PipelineEntryOut,
    PipelineList,
    StageUpdate,
)

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


def _build_entry_out(entry: models.PipelineEntry, is_unlocked: bool) -> PipelineEntryOut:
    developer = entry.developer
    if developer is None:
        summary = PipelineDeveloperOut(email=entry.candidate_email)
    else:
        summary = PipelineDeveloperOut(
            id=developer.id,
            email=developer.email,
            first_name=developer.first_name,
            last_name=developer.last_name,
            assessment_status=developer.assessment_status,
            overall_score=developer.overall_score,
            tech_stack=developer.tech_stack or [],
            project_count=developer.project_count or 0,
        )
    return PipelineEntryOut(
        id=entry.id,
        company_id=entry.company_id,
        developer_id=entry.developer_id,
        stage=PipelineStage.INVITED if entry.is_pending_invitation else entry.stage,
        notes=entry.notes,
        is_unlocked=is_unlocked,
        is_pending_invitation=entry.is_pending_invitation,
        developer=summary,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _entry_out(session: Session, entry: models.PipelineEntry) -> PipelineEntryOut:
    unlocked = bool(entry.developer_id) and pipeline.has_unlock(session, entry.company_id, entry.developer_id)
    return _build_entry_out(entry, unlocked)


@router.get("", response_model=PipelineList)
def list_pipeline(
    stage: Optional[PipelineStage] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive match on candidate email"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: str = Query("updated_at"),
    sort_order: str = Query("desc"),
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> PipelineList:
    entries, total = pipeline.list_pipeline_entries(
        session,
        company.id,
        stage=stage,
        search=search,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    unlocked = pipeline.unlocked_developer_ids(session, company.id, (entry.developer_id for entry in entries))
    return PipelineList(
        entries=[_build_entry_out(entry, entry.developer_id in unlocked) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=dict[str, int])
def pipeline_stats(
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> dict[str, int]:
    return pipeline.get_pipeline_stats(session, company.id)


@router.post("", response_model=PipelineEntryOut, status_code=status.HTTP_201_CREATED)
def add_to_pipeline(
    payload: PipelineAdd,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> PipelineEntryOut:
    entry = pipeline.add_developer(session, company.id, payload.developer_id, notes=payload.notes)
    return _entry_out(session, entry)


@router.get("/{entry_id}", response_model=PipelineEntryOut)
def get_pipeline_entry(
    entry_id: str,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> PipelineEntryOut:
    entry = pipeline.get_pipeline_entry(session, company.id, entry_id)
    return _entry_out(session, entry)


@router.patch("/{entry_id}/stage", response_model=PipelineEntryOut)
def update_stage(
    entry_id: str,
    payload: StageUpdate,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> PipelineEntryOut:
    entry = pipeline.update_pipeline_stage(session, company.id, entry_id, payload.stage)
    return _entry_out(session, entry)


@router.patch("/{entry_id}/notes", response_model=PipelineEntryOut)
def update_notes(
    entry_id: str,
    payload: NotesUpdate,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> PipelineEntryOut:
    entry = pipeline.update_pipeline_notes(session, company.id, entry_id, payload.notes)
    return _entry_out(session, entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_from_pipeline(
    entry_id: str,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> Response:
    pipeline.remove_pipeline_entry(session, company.id, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
