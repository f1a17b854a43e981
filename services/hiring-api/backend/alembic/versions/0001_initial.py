"""Initial tables for companies, developers, pipeline, invitations and the credit ledger.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    assessment_status = sa.Enum(
        "REGISTERING",
        "PROJECTS_SUBMITTED",
        "ANALYZING",
        "PENDING_ANALYSIS",
        "ASSESSED",
        name="assessmentstatus",
    )
    pipeline_stage = sa.Enum(
        "INVITED",
        "REGISTERING",
        "PROJECTS_SUBMITTED",
        "ANALYZING",
        "PENDING_ANALYSIS",
        "ASSESSED",
        "UNLOCKED",
        "HIRED",
        "REJECTED",
        name="pipelinestage",
    )
    invitation_status = sa.Enum("PENDING", "ACCEPTED", "EXPIRED", "TRACKED", name="invitationstatus")
    transaction_type = sa.Enum("INITIAL", "PURCHASE", "UNLOCK_DEBIT", "ADJUSTMENT", name="credittransactiontype")

    op.create_table(
        "companies",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True, index=True),
        sa.Column("website", sa.String(length=255), nullable=True),
        sa.Column("credit_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("credit_balance >= 0", name="ck_companies_credit_balance_non_negative"),
    )

    op.create_table(
        "developers",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True, index=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("assessment_status", assessment_status, nullable=False, server_default="REGISTERING", index=True),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("tech_stack", sa.JSON(), nullable=True),
        sa.Column("project_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "pipeline_entries",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("company_id", sa.String(length=32), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column("developer_id", sa.String(length=32), sa.ForeignKey("developers.id"), nullable=True, index=True),
        sa.Column("candidate_email", sa.String(length=255), nullable=False, index=True),
        sa.Column("stage", pipeline_stage, nullable=False, server_default="INVITED", index=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("company_id", "developer_id", name="uq_pipeline_entry_company_developer"),
        sa.UniqueConstraint("company_id", "candidate_email", name="uq_pipeline_entry_company_email"),
    )

    op.create_table(
        "invitations",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("company_id", sa.String(length=32), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column(
            "pipeline_entry_id",
            sa.String(length=32),
            sa.ForeignKey("pipeline_entries.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("candidate_email", sa.String(length=255), nullable=False, index=True),
        sa.Column("token", sa.String(length=128), nullable=True, unique=True, index=True),
        sa.Column("status", invitation_status, nullable=False, server_default="PENDING"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("developer_id", sa.String(length=32), sa.ForeignKey("developers.id"), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("company_id", sa.String(length=32), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column("type", transaction_type, nullable=False, index=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("related_developer_id", sa.String(length=32), sa.ForeignKey("developers.id"), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
    )

    op.create_table(
        "unlocked_reports",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("company_id", sa.String(length=32), sa.ForeignKey("companies.id"), nullable=False, index=True),
        sa.Column("developer_id", sa.String(length=32), sa.ForeignKey("developers.id"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("company_id", "developer_id", name="uq_unlocked_report_company_developer"),
    )


def downgrade() -> None:
    op.drop_table("unlocked_reports")
    op.drop_table("credit_transactions")
    op.drop_table("invitations")
    op.drop_table("pipeline_entries")
    op.drop_table("developers")
    op.drop_table("companies")
    op.execute("DROP TYPE IF EXISTS credittransactiontype")
    op.execute("DROP TYPE IF EXISTS invitationstatus")
    op.execute("DROP TYPE IF EXISTS pipelinestage")
    op.execute("DROP TYPE IF EXISTS assessmentstatus")
