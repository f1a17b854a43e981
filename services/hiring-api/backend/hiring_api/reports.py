"""
Developer report reads, gated by unlocks.

A company sees a preview of any assessed developer in its pipeline. Contact
details and the rest of the report are only returned once the company holds
an ``UnlockedReport`` for the developer. Reading never charges credits.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from hiring_api import models
from hiring_api.database import retry_transient_read
from hiring_api.errors import NotFound
from hiring_api.models import AssessmentStatus

logger = logging.getLogger(__name__)

PREVIEW = "preview"
FULL = "full"


def _preview_data(developer: models.Developer) -> dict[str, Any]:
    return {
        "developer_id": developer.id,
        "first_name": developer.first_name,
        "overall_score": developer.overall_score,
        "project_count": developer.project_count or 0,
        "tech_stack": developer.tech_stack or [],
        "is_unlocked": False,
    }


def _full_data(developer: models.Developer, unlock: models.UnlockedReport) -> dict[str, Any]:
    data = _preview_data(developer)
    data.update(
        email=developer.email,
        last_name=developer.last_name,
        is_unlocked=True,
        assessed_at=developer.updated_at,
        unlocked_at=unlock.created_at,
    )
    return data


@retry_transient_read
def get_report(session: Session, company_id: str, developer_id: str) -> dict[str, Any]:
    entry = session.execute(
        select(models.PipelineEntry.id).where(
            models.PipelineEntry.company_id == company_id,
            models.PipelineEntry.developer_id == developer_id,
        )
    ).first()
    developer = session.get(models.Developer, developer_id)
    if entry is None or developer is None:
        raise NotFound("Developer not found in your pipeline")
    if developer.assessment_status != AssessmentStatus.ASSESSED:
        raise NotFound("Report is not available until the developer has been assessed")

    unlock = session.execute(
        select(models.UnlockedReport).where(
            models.UnlockedReport.company_id == company_id,
            models.UnlockedReport.developer_id == developer_id,
        )
    ).scalar_one_or_none()
    if unlock is None:
        return {"type": PREVIEW, "data": _preview_data(developer)}

    logger.info("Company %s read full report of developer %s", company_id, developer_id)
    return {"type": FULL, "data": _full_data(developer, unlock)}
