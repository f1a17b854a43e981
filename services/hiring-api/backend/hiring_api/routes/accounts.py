from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hiring_api import companies, models, pipeline
from hiring_api.database import get_session
from hiring_api.dependencies import get_current_company, get_current_developer
from hiring_api.schemas_accounts import AssessmentUpdate, CompanyCreate, CompanyOut, DeveloperOut

router = APIRouter(tags=["accounts"])


@router.post("/companies", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
def create_company(
    payload: CompanyCreate,
    session: Session = Depends(get_session),
) -> CompanyOut:
    return companies.create_company(session, payload.name, website=payload.website)


@router.get("/companies/me", response_model=CompanyOut)
def get_my_company(company: models.Company = Depends(get_current_company)) -> CompanyOut:
    return company


@router.get("/developers/me", response_model=DeveloperOut)
def get_my_developer(developer: models.Developer = Depends(get_current_developer)) -> DeveloperOut:
    return developer


@router.post("/developers/{developer_id}/assessment", response_model=DeveloperOut)
def record_assessment(
    developer_id: str,
    payload: AssessmentUpdate,
    session: Session = Depends(get_session),
) -> DeveloperOut:
    """
    Called by the analysis engine whenever a developer's assessment changes.
    Every pipeline entry of the developer is reconciled in the same transaction.
    """
    return pipeline.record_assessment_update(
        session,
        developer_id,
        payload.status,
        overall_score=payload.overall_score,
        tech_stack=payload.tech_stack,
        project_count=payload.project_count,
    )
