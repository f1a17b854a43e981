from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from hiring_api import invitations, models
from hiring_api.database import get_session
from hiring_api.dependencies import get_current_company
from hiring_api.schemas_invitations import (
    DeveloperStatusOut,
    InvitationAccept,
    InvitationAccepted,
    InvitationCreate,
    InvitationInfoOut,
    InvitationList,
    InvitationOut,
)

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _build_invitation_out(invitation: models.Invitation, now: datetime) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        candidate_email=invitation.candidate_email,
        status=invitation.status_at(now),
        message=invitation.message,
        expires_at=invitation.expires_at,
        sent_at=invitation.sent_at,
        accepted_at=invitation.accepted_at,
        created_at=invitation.created_at,
        developer_id=invitation.developer_id,
        pipeline_entry_id=invitation.pipeline_entry_id,
    )


@router.post("", response_model=InvitationOut, status_code=status.HTTP_201_CREATED)
def create_invitation(
    payload: InvitationCreate,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> InvitationOut:
    invitation = invitations.create_invitation(
        session,
        company.id,
        payload.candidate_email,
        message=payload.message,
        send_email=payload.send_email,
    )
    return _build_invitation_out(invitation, datetime.utcnow())


@router.get("", response_model=InvitationList)
def list_invitations(
    status_filter: Optional[models.InvitationStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> InvitationList:
    now = datetime.utcnow()
    rows, total = invitations.list_invitations(
        session, company.id, status=status_filter, limit=limit, offset=offset, now=now
    )
    return InvitationList(invitations=[_build_invitation_out(inv, now) for inv in rows], total=total)


@router.get("/status/{email}", response_model=DeveloperStatusOut)
def get_developer_status(
    email: str,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> DeveloperStatusOut:
    return invitations.get_developer_status(session, company.id, email)


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_invitation(
    invitation_id: str,
    session: Session = Depends(get_session),
    company: models.Company = Depends(get_current_company),
) -> Response:
    invitations.revoke_invitation(session, company.id, invitation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/public/{token}", response_model=InvitationInfoOut)
def get_invitation_info(token: str, session: Session = Depends(get_session)) -> InvitationInfoOut:
    return invitations.get_invitation_info(session, token)


@router.post("/public/{token}/accept", response_model=InvitationAccepted, status_code=status.HTTP_201_CREATED)
def accept_invitation(
    token: str,
    payload: InvitationAccept,
    session: Session = Depends(get_session),
) -> InvitationAccepted:
    developer = invitations.accept_invitation(
        session,
        token,
        payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return InvitationAccepted(developer_id=developer.id, email=developer.email)
