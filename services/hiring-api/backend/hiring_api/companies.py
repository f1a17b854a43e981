import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hiring_api import ledger, models
from hiring_api.config import settings
from hiring_api.database import write_transaction
from hiring_api.errors import Conflict, ValidationFailure

logger = logging.getLogger(__name__)


def create_company(
    session: Session,
    name: str,
    website: Optional[str] = None,
    initial_credits: Optional[int] = None,
) -> models.Company:
    """Create a company and grant its welcome credits in the same transaction."""
    name = (name or "").strip()
    if not name:
        raise ValidationFailure("Company name is required")
    credits = settings.INITIAL_CREDIT_GRANT if initial_credits is None else initial_credits

    try:
        with write_transaction(session):
            existing = session.execute(select(models.Company.id).where(models.Company.name == name)).first()
            if existing is not None:
                raise Conflict("Company with that name already exists")
            company = models.Company(name=name, website=website, credit_balance=0)
            session.add(company)
            session.flush()
            ledger.grant_initial_credits(session, company, credits)
    except IntegrityError as exc:
        raise Conflict("Company with that name already exists") from exc

    logger.info("Created company %s with %s welcome credits", company.id, company.credit_balance)
    return company
