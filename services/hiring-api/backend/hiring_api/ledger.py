"""
Credit ledger: the only code that writes ``Company.credit_balance``.

Every balance change appends a ``CreditTransaction`` row carrying the signed
amount and the balance snapshot after it, inside the same transaction as the
balance write. Rows are never updated or deleted, so the sum of ``amount`` for
a company always equals its current balance.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hiring_api import models
from hiring_api.database import retry_transient_read, write_transaction
from hiring_api.errors import InsufficientCredits, NotFound, ValidationFailure

logger = logging.getLogger(__name__)

MAX_HISTORY_PAGE = 100


def lock_company(session: Session, company_id: str) -> models.Company:
    """
    Load the company row for update. The row lock serializes every balance
    change of one company; other companies are never blocked.
    """
    stmt = (
        select(models.Company)
        .where(models.Company.id == company_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    company = session.execute(stmt).scalar_one_or_none()
    if company is None:
        raise NotFound("Company not found")
    return company


def append_transaction(
    session: Session,
    company: models.Company,
    transaction_type: models.CreditTransactionType,
    amount: int,
    *,
    description: Optional[str] = None,
    related_developer_id: Optional[str] = None,
    payment_reference: Optional[str] = None,
) -> models.CreditTransaction:
    """
    Apply ``amount`` to a company locked with ``lock_company`` and append the
    ledger row. Runs inside the caller's transaction and never commits.
    """
    if amount == 0:
        raise ValidationFailure("Ledger amount must be non-zero")
    new_balance = company.credit_balance + amount
    if new_balance < 0:
        raise InsufficientCredits(
            "Insufficient credits. Purchase more credits to continue.",
            details={"balance": company.credit_balance, "required": -amount},
        )

    company.credit_balance = new_balance
    transaction = models.CreditTransaction(
        company_id=company.id,
        type=transaction_type,
        amount=amount,
        balance_after=new_balance,
        description=description,
        related_developer_id=related_developer_id,
        payment_reference=payment_reference,
    )
    session.add(transaction)
    session.flush()
    logger.info(
        "Ledger %s for company=%s amount=%s balance_after=%s",
        transaction_type.value,
        company.id,
        amount,
        new_balance,
    )
    return transaction


def grant_initial_credits(session: Session, company: models.Company, credits: int) -> Optional[models.CreditTransaction]:
    if credits <= 0:
        return None
    return append_transaction(
        session,
        company,
        models.CreditTransactionType.INITIAL,
        credits,
        description=f"Welcome bonus - {credits} free credit{'s' if credits > 1 else ''}",
    )


def _find_by_payment_reference(session: Session, payment_reference: str) -> Optional[models.CreditTransaction]:
    return session.execute(
        select(models.CreditTransaction).where(models.CreditTransaction.payment_reference == payment_reference)
    ).scalar_one_or_none()


def record_purchase(
    session: Session,
    company_id: str,
    credits: int,
    payment_reference: str,
) -> tuple[models.CreditTransaction, bool]:
    """
    Credit a confirmed payment exactly once per ``payment_reference``.

    Returns the ledger row and whether it was created by this call. A duplicate
    delivery of the same payment returns the existing row untouched.
    """
    if credits <= 0:
        raise ValidationFailure("Purchased credits must be positive")
    if not payment_reference:
        raise ValidationFailure("Payment reference is required")

    try:
        with write_transaction(session):
            existing = _find_by_payment_reference(session, payment_reference)
            if existing is not None:
                logger.info("Payment %s already credited, skipping duplicate", payment_reference)
                return existing, False
            company = lock_company(session, company_id)
            transaction = append_transaction(
                session,
                company,
                models.CreditTransactionType.PURCHASE,
                credits,
                description=f"Purchased {credits} credit{'s' if credits > 1 else ''}",
                payment_reference=payment_reference,
            )
    except IntegrityError:
        # A concurrent delivery of the same payment committed first.
        existing = _find_by_payment_reference(session, payment_reference)
        if existing is None:
            raise
        session.commit()
        logger.info("Payment %s credited concurrently, skipping duplicate", payment_reference)
        return existing, False
    return transaction, True


@retry_transient_read
def get_balance(session: Session, company_id: str) -> int:
    balance = session.execute(
        select(models.Company.credit_balance).where(models.Company.id == company_id)
    ).scalar_one_or_none()
    if balance is None:
        raise NotFound("Company not found")
    return balance


@retry_transient_read
def get_transaction_history(
    session: Session,
    company_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[models.CreditTransaction], int]:
    limit = max(1, min(limit, MAX_HISTORY_PAGE))
    offset = max(0, offset)
    transactions = (
        session.execute(
            select(models.CreditTransaction)
            .where(models.CreditTransaction.company_id == company_id)
            .order_by(models.CreditTransaction.created_at.desc(), models.CreditTransaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        .scalars()
        .all()
    )
    total = session.execute(
        select(func.count(models.CreditTransaction.id)).where(models.CreditTransaction.company_id == company_id)
    ).scalar_one()
    return list(transactions), total


def ledger_sum(session: Session, company_id: str) -> int:
    return session.execute(
        select(func.coalesce(func.sum(models.CreditTransaction.amount), 0)).where(
            models.CreditTransaction.company_id == company_id
        )
    ).scalar_one()


def verify_balance(session: Session, company_id: str) -> bool:
    """Audit check: the ledger sum must equal the stored balance."""
    balance = get_balance(session, company_id)
    total = ledger_sum(session, company_id)
    if total != balance:
        logger.error("Ledger drift for company=%s: balance=%s ledger_sum=%s", company_id, balance, total)
        return False
    return True
