from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from hiring_api.models import InvitationStatus


class InvitationCreate(BaseModel):
    candidate_email: str = Field(..., min_length=3, max_length=255, description="Email address to invite.")
    message: Optional[str] = Field(None, max_length=1000, description="Personal note shown with the invitation.")
    send_email: bool = Field(True, description="Queue an invitation email after creating the invitation.")


class InvitationOut(BaseModel):
    id: str
    candidate_email: str
    # Computed at read time; EXPIRED is never stored.
    status: InvitationStatus
    message: Optional[str] = None
    expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    created_at: datetime
    developer_id: Optional[str] = None
    pipeline_entry_id: Optional[str] = None


class InvitationList(BaseModel):
    invitations: list[InvitationOut]
    total: int


class InvitationInfoOut(BaseModel):
    valid: bool
    email: Optional[str] = None
    company_name: Optional[str] = None
    message: Optional[str] = None
    expired: bool = False
    error: Optional[str] = None

    class Config:
        from_attributes = True


class InvitationAccept(BaseModel):
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class InvitationAccepted(BaseModel):
    developer_id: str
    email: str


class DeveloperStatusOut(BaseModel):
    exists: bool
    status: str = Field(..., description="NOT_REGISTERED or the developer's assessment status.")
    email: str
    developer_id: Optional[str] = None
    name: Optional[str] = None
    is_tracked: bool
    is_unlocked: bool
    overall_score: Optional[int] = None
    project_count: int = 0
    tech_stack: Optional[list[str]] = None
