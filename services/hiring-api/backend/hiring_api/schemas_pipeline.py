from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from hiring_api.models import NOTES_MAX_LENGTH, AssessmentStatus, PipelineStage


class PipelineDeveloperOut(BaseModel):
    id: Optional[str] = None
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    # None while the candidate has not registered.
    assessment_status: Optional[AssessmentStatus] = None
    overall_score: Optional[int] = None
    tech_stack: list[str] = []
    project_count: int = 0


class PipelineEntryOut(BaseModel):
    id: str
    company_id: str
    developer_id: Optional[str] = None
    stage: PipelineStage
    notes: Optional[str] = None
    is_unlocked: bool
    is_pending_invitation: bool
    developer: PipelineDeveloperOut
    created_at: datetime
    updated_at: datetime


class PipelineList(BaseModel):
    entries: list[PipelineEntryOut]
    total: int
    limit: int
    offset: int


class PipelineAdd(BaseModel):
    developer_id: str
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)


class StageUpdate(BaseModel):
    stage: PipelineStage = Field(..., description="HIRED or REJECTED.")


class NotesUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH, description="Null clears the notes.")
