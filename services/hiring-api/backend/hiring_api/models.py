import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return uuid.uuid4().hex


NOTES_MAX_LENGTH = 2000


class Base(DeclarativeBase):
    pass


class AssessmentStatus(str, Enum):
    REGISTERING = "REGISTERING"
    PROJECTS_SUBMITTED = "PROJECTS_SUBMITTED"
    ANALYZING = "ANALYZING"
    PENDING_ANALYSIS = "PENDING_ANALYSIS"
    ASSESSED = "ASSESSED"


class PipelineStage(str, Enum):
    INVITED = "INVITED"
    REGISTERING = "REGISTERING"
    PROJECTS_SUBMITTED = "PROJECTS_SUBMITTED"
    ANALYZING = "ANALYZING"
    PENDING_ANALYSIS = "PENDING_ANALYSIS"
    ASSESSED = "ASSESSED"
    UNLOCKED = "UNLOCKED"
    HIRED = "HIRED"
    REJECTED = "REJECTED"


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"
    TRACKED = "TRACKED"


class CreditTransactionType(str, Enum):
    INITIAL = "INITIAL"
    PURCHASE = "PURCHASE"
    UNLOCK_DEBIT = "UNLOCK_DEBIT"
    ADJUSTMENT = "ADJUSTMENT"


class Company(Base):
    __tablename__ = "companies"
    __table_args__ = (CheckConstraint("credit_balance >= 0", name="ck_companies_credit_balance_non_negative"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Written only through hiring_api.ledger.
    credit_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pipeline_entries: Mapped[list["PipelineEntry"]] = relationship(back_populates="company")
    invitations: Mapped[list["Invitation"]] = relationship(back_populates="company")


class Developer(Base):
    __tablename__ = "developers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Facts supplied by the analysis engine; never computed here.
    assessment_status: Mapped[AssessmentStatus] = mapped_column(
        SAEnum(AssessmentStatus), default=AssessmentStatus.REGISTERING, index=True
    )
    overall_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tech_stack: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    project_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pipeline_entries: Mapped[list["PipelineEntry"]] = relationship(back_populates="developer")


class PipelineEntry(Base):
    __tablename__ = "pipeline_entries"
    __table_args__ = (
        UniqueConstraint("company_id", "developer_id", name="uq_pipeline_entry_company_developer"),
        UniqueConstraint("company_id", "candidate_email", name="uq_pipeline_entry_company_email"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), index=True)
    developer_id: Mapped[str | None] = mapped_column(ForeignKey("developers.id"), nullable=True, index=True)
    candidate_email: Mapped[str] = mapped_column(String(255), index=True)
    stage: Mapped[PipelineStage] = mapped_column(SAEnum(PipelineStage), default=PipelineStage.INVITED, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company: Mapped[Company] = relationship(back_populates="pipeline_entries")
    developer: Mapped[Optional[Developer]] = relationship(back_populates="pipeline_entries")
    invitations: Mapped[list["Invitation"]] = relationship(back_populates="pipeline_entry")

    @property
    def is_pending_invitation(self) -> bool:
        return self.developer_id is None


class Invitation(Base):
    __tablename__ = "invitations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), index=True)
    pipeline_entry_id: Mapped[str | None] = mapped_column(
        ForeignKey("pipeline_entries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    candidate_email: Mapped[str] = mapped_column(String(255), index=True)
    token: Mapped[str | None] = mapped_column(String(128), unique=True, index=True, nullable=True)
    # PENDING, ACCEPTED or TRACKED. EXPIRED is derived from expires_at and never stored.
    status: Mapped[InvitationStatus] = mapped_column(SAEnum(InvitationStatus), default=InvitationStatus.PENDING)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    developer_id: Mapped[str | None] = mapped_column(ForeignKey("developers.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company: Mapped[Company] = relationship(back_populates="invitations")
    pipeline_entry: Mapped[Optional[PipelineEntry]] = relationship(back_populates="invitations")

    def status_at(self, now: datetime) -> InvitationStatus:
        if self.status != InvitationStatus.PENDING:
            return self.status
        if self.expires_at is not None and now > self.expires_at:
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), index=True)
    type: Mapped[CreditTransactionType] = mapped_column(SAEnum(CreditTransactionType), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    balance_after: Mapped[int] = mapped_column(Integer)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    related_developer_id: Mapped[str | None] = mapped_column(ForeignKey("developers.id"), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)


class UnlockedReport(Base):
    __tablename__ = "unlocked_reports"
    __table_args__ = (
        UniqueConstraint("company_id", "developer_id", name="uq_unlocked_report_company_developer"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), index=True)
    developer_id: Mapped[str] = mapped_column(ForeignKey("developers.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
