from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime
from models.user import UserModel
from routes.deps import get_current_user, get_engine
from services.engine import ExpenseWorkflowEngine
from logging_config import get_logger

router = APIRouter(prefix="/api/projects", tags=["Projects"])
logger = get_logger("projects")


class ProjectCreate(BaseModel):
    name: str
    budget: float = 0.0
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    image_url: Optional[str] = None


class ProjectUpdate(BaseModel):
    """Partial update; only the fields sent are changed"""
    name: Optional[str] = None
    budget: Optional[float] = None
    description: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    image_url: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class DirectorPermissionsUpdate(BaseModel):
    can_delete_expenses: Optional[bool] = None
    can_delete_members: Optional[bool] = None


# --- CORE ENDPOINTS ---

@router.post("", status_code=201)
async def create_project(
    payload: ProjectCreate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """CREATE: the current user becomes the project's admin"""
    project = await engine.projects.create_project(current_user, **payload.model_dump())
    return engine.projects.project_view(project, current_user.id)


@router.get("", response_model=List[dict])
async def list_projects(
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """READ: every project the user administers or belongs to, most recently updated first"""
    projects = await engine.projects.list_projects_for_user(current_user.id)
    return [engine.projects.project_view(p, current_user.id) for p in projects]


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """READ: single project; budget figures are hidden from labour"""
    project = await engine.projects.get_project(project_id, current_user.id)
    return engine.projects.project_view(project, current_user.id)


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    payload: ProjectUpdate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """UPDATE: admin only"""
    project = await engine.projects.update_project(project_id, current_user.id, **payload.model_dump(exclude_unset=True))
    return engine.projects.project_view(project, current_user.id)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """DELETE: admin only; removes the project's expenses and invitations too"""
    counts = await engine.projects.delete_project(project_id, current_user.id)
    return {"message": "Project deleted", "deleted": counts}


# --- MEMBERS ---

@router.put("/{project_id}/directors/{user_id}/permissions")
async def update_director_permissions(
    project_id: str,
    user_id: str,
    payload: DirectorPermissionsUpdate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    permissions = await engine.projects.update_director_permissions(
        project_id, current_user.id, user_id, **payload.model_dump()
    )
    return permissions.model_dump()


@router.delete("/{project_id}/members/{member_id}")
async def remove_member(
    project_id: str,
    member_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    await engine.projects.remove_member(project_id, current_user, member_id)
    return {"message": "Member removed"}


# --- REPORTS ---

@router.get("/{project_id}/summary")
async def get_summary(
    project_id: str,
    start_date: Optional[datetime] = Query(None, description="Only expenses on or after this date"),
    end_date: Optional[datetime] = Query(None, description="Only expenses on or before this date"),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    summary = await engine.expenses.summary(project_id, current_user.id, start_date, end_date)
    return summary.model_dump()


@router.get("/{project_id}/monthly-totals")
async def get_monthly_totals(
    project_id: str,
    months: int = Query(6, ge=1, le=36),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    return await engine.expenses.monthly_totals(project_id, current_user.id, months)


@router.post("/{project_id}/recalculate")
async def recalculate_total_spent(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Recompute total_spent from approved expenses (admin only)"""
    total = await engine.expenses.recalculate_total_spent(project_id, current_user.id)
    return {"total_spent": total}
