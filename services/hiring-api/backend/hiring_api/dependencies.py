from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from hiring_api import models
from hiring_api.database import get_session
from hiring_api.errors import Unauthorized


def get_current_company(
    session: Session = Depends(get_session),
    company_id: Optional[str] = Header(None, alias="X-Company-Id"),
) -> models.Company:
    """
    Header-based identity supplied by the gateway that owns sessions. The id is
    trusted as-is; it only has to name an existing company.
    """
    if not company_id:
        raise Unauthorized("Missing X-Company-Id header")
    company = session.get(models.Company, company_id)
    if company is None:
        raise Unauthorized("Unknown company")
    return company


def get_current_developer(
    session: Session = Depends(get_session),
    developer_id: Optional[str] = Header(None, alias="X-Developer-Id"),
) -> models.Developer:
    if not developer_id:
        raise Unauthorized("Missing X-Developer-Id header")
    developer = session.get(models.Developer, developer_id)
    if developer is None:
        raise Unauthorized("Unknown developer")
    return developer
