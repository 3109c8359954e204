from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from typing import List, Optional
from constants import MemberRoles
from models.user import UserModel
from routes.deps import get_current_user, get_engine
from services.engine import ExpenseWorkflowEngine
from logging_config import get_logger

router = APIRouter(prefix="/api", tags=["Invitations"])
logger = get_logger("invitations")


class InvitationCreate(BaseModel):
    member_role: str = MemberRoles.LABOUR
    invited_email: Optional[str] = None
    expiry_days: Optional[int] = None


def _invitation_payload(engine: ExpenseWorkflowEngine, invitation) -> dict:
    data = invitation.model_dump()
    data["link"] = engine.invitations.invite_url(invitation)
    data["is_valid"] = invitation.is_valid(engine.ctx.clock())
    return data


@router.post("/projects/{project_id}/invitations", status_code=201)
async def create_invitation(
    project_id: str,
    payload: InvitationCreate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Admin creates a shareable, single-use invitation (optionally emailed)"""
    invitation = await engine.invitations.create_invitation(project_id, current_user, **payload.model_dump())
    return _invitation_payload(engine, invitation)


@router.get("/projects/{project_id}/invitations", response_model=List[dict])
async def list_pending_invitations(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    invitations = await engine.invitations.list_pending_invitations(project_id, current_user.id)
    return [_invitation_payload(engine, i) for i in invitations]


@router.get("/invitations/{invitation_id}")
async def get_invitation(
    invitation_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Preview an invitation before accepting it"""
    invitation = await engine.invitations.get_invitation(invitation_id)
    return _invitation_payload(engine, invitation)


@router.post("/invitations/{invitation_id}/accept")
async def accept_invitation(
    invitation_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    project, member = await engine.invitations.accept_invitation(invitation_id, current_user.id)
    return {
        "message": f"Joined {project.name} as {member.role}",
        "project": engine.projects.project_view(project, current_user.id),
    }


@router.post("/invitations/{invitation_id}/cancel")
async def cancel_invitation(
    invitation_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    invitation = await engine.invitations.cancel_invitation(invitation_id, current_user.id)
    return _invitation_payload(engine, invitation)
