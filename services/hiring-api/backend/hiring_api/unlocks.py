"""
Report unlocking: spend one credit, record the unlock, advance the pipeline.

A company pays at most once per developer. The company row lock serializes
unlocks of one company, and the unique (company, developer) constraint on
``unlocked_reports`` settles any race that gets past it: the loser rolls back
and answers as a repeat unlock.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hiring_api import ledger, models, pipeline
from hiring_api.database import write_transaction
from hiring_api.errors import NotFound
from hiring_api.models import PipelineStage

logger = logging.getLogger(__name__)

UNLOCK_COST = 1


@dataclass
class UnlockResult:
    developer_id: str
    new_balance: int
    already_unlocked: bool
    unlocked_at: datetime


def _find_unlock(session: Session, company_id: str, developer_id: str) -> Optional[models.UnlockedReport]:
    return session.execute(
        select(models.UnlockedReport).where(
            models.UnlockedReport.company_id == company_id,
            models.UnlockedReport.developer_id == developer_id,
        )
    ).scalar_one_or_none()


def _repeat_result(session: Session, company_id: str, unlock: models.UnlockedReport) -> UnlockResult:
    return UnlockResult(
        developer_id=unlock.developer_id,
        new_balance=ledger.get_balance(session, company_id),
        already_unlocked=True,
        unlocked_at=unlock.created_at,
    )


def unlock_report(
    session: Session,
    company_id: str,
    developer_id: str,
    now: Optional[datetime] = None,
) -> UnlockResult:
    now = now or datetime.utcnow()
    try:
        with write_transaction(session):
            company = ledger.lock_company(session, company_id)
            entry = session.execute(
                select(models.PipelineEntry)
                .where(
                    models.PipelineEntry.company_id == company_id,
                    models.PipelineEntry.developer_id == developer_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if entry is None:
                raise NotFound("Developer not found in your pipeline")

            existing = _find_unlock(session, company_id, developer_id)
            if existing is not None:
                result = UnlockResult(
                    developer_id=developer_id,
                    new_balance=company.credit_balance,
                    already_unlocked=True,
                    unlocked_at=existing.created_at,
                )
            else:
                pipeline.sync_entry_stage(session, entry)
                if not pipeline.is_at_least(entry.stage, PipelineStage.ASSESSED):
                    raise NotFound("Report is not available until the developer has been assessed")

                transaction = ledger.append_transaction(
                    session,
                    company,
                    models.CreditTransactionType.UNLOCK_DEBIT,
                    -UNLOCK_COST,
                    description="Unlocked developer report",
                    related_developer_id=developer_id,
                )
                unlock = models.UnlockedReport(company_id=company_id, developer_id=developer_id, created_at=now)
                session.add(unlock)
                session.flush()
                if entry.stage == PipelineStage.ASSESSED:
                    entry.stage = PipelineStage.UNLOCKED
                result = UnlockResult(
                    developer_id=developer_id,
                    new_balance=transaction.balance_after,
                    already_unlocked=False,
                    unlocked_at=unlock.created_at,
                )
    except IntegrityError:
        # A concurrent unlock for the same pair committed first; nothing of ours was kept.
        existing = _find_unlock(session, company_id, developer_id)
        if existing is None:
            raise
        logger.info("Concurrent unlock of developer %s by company %s resolved as repeat", developer_id, company_id)
        return _repeat_result(session, company_id, existing)

    if result.already_unlocked:
        logger.info("Developer %s already unlocked by company %s, no charge", developer_id, company_id)
    else:
        logger.info(
            "Company %s unlocked developer %s, balance now %s",
            company_id,
            developer_id,
            result.new_balance,
        )
    return result
