from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from hiring_api.models import AssessmentStatus


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Company name")
    website: Optional[str] = Field(None, max_length=255, description="Company website")


class CompanyOut(BaseModel):
    id: str
    name: str
    website: Optional[str] = None
    credit_balance: int
    created_at: datetime

    class Config:
        from_attributes = True


class DeveloperOut(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    assessment_status: AssessmentStatus
    overall_score: Optional[int] = None
    tech_stack: Optional[list[str]] = None
    project_count: int = 0

    class Config:
        from_attributes = True


class AssessmentUpdate(BaseModel):
    status: AssessmentStatus = Field(..., description="Assessment status reported by the analysis engine.")
    overall_score: Optional[int] = Field(None, ge=0, le=100)
    tech_stack: Optional[list[str]] = None
    project_count: Optional[int] = Field(None, ge=0)
