from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session

from hiring_api import ledger, models, payments, reports, unlocks
from hiring_api.config import settings
from hiring_api.database import get_session
from hiring_api.dependencies import get_current_company
from hiring_api.schemas_credits import (
    BalanceOut,
    CheckoutCreate,
    CheckoutOut,
    CreditTransactionOut,
    ReportOut,
    TransactionHistory,
    UnlockOut,
)

router = APIRouter(prefix="/credits", tags=["credits"])
reports_router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/balance", response_model=BalanceOut)
def get_balance(
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> BalanceOut:
    return BalanceOut(
        balance=ledger.get_balance(session, company.id),
        price_per_credit_eur=settings.PRICE_PER_CREDIT_EUR,
    )


@router.get("/history", response_model=TransactionHistory)
def get_history(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> TransactionHistory:
    transactions, total = ledger.get_transaction_history(session, company.id, limit=limit, offset=offset)
    return TransactionHistory(
        transactions=[CreditTransactionOut.model_validate(txn) for txn in transactions],
        total=total,
    )


@router.post("/checkout", response_model=CheckoutOut)
def create_checkout(
    payload: CheckoutCreate,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> CheckoutOut:
    return CheckoutOut(**payments.create_checkout(session, company.id, payload.credits))


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    session: Session = Depends(get_session),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> dict:
    # Signature verification needs the raw body, not a parsed model.
    payload = await request.body()
    return payments.handle_webhook(session, payload, stripe_signature)


@reports_router.post("/{developer_id}/unlock", response_model=UnlockOut)
def unlock_report(
    developer_id: str,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> UnlockOut:
    return unlocks.unlock_report(session, company.id, developer_id)


@reports_router.get("/{developer_id}", response_model=ReportOut)
def get_report(
    developer_id: str,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> ReportOut:
    """Preview until the company unlocks the developer, full report afterwards."""
    return reports.get_report(session, company.id, developer_id)
