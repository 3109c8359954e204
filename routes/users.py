from fastapi import APIRouter, Depends, HTTPException, Body
from typing import List, Optional
from datetime import datetime
from constants import Collections
from models.user import UserModel
from routes.deps import get_current_user, get_engine
from services.engine import ExpenseWorkflowEngine
from logging_config import get_logger

router = APIRouter(prefix="/api/users", tags=["Users"])
logger = get_logger("users")

# Profile fields a user may change on themselves
EDITABLE_FIELDS = {"name", "phone_number", "photo_url"}


@router.get("/me")
async def get_me(current_user: UserModel = Depends(get_current_user)):
    """Current user's profile"""
    return current_user.model_dump()


@router.patch("/me")
async def update_me(
    updates: dict = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Update name / phone / photo of the current user"""
    clean = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}
    if not clean:
        raise HTTPException(status_code=400, detail=f"Only {', '.join(sorted(EDITABLE_FIELDS))} can be updated")
    if "name" in clean and not (clean["name"] or "").strip():
        raise HTTPException(status_code=400, detail="Name cannot be empty")

    clean["updated_at"] = datetime.now()
    await engine.store.update(Collections.USERS, current_user.id, set_fields=clean)
    logger.info(f"Profile updated", extra={"data": {"user_id": current_user.id, "fields": sorted(clean)}})
    return current_user.model_copy(update=clean).model_dump()


@router.get("/me/expenses", response_model=List[dict])
async def get_my_expenses(
    limit: Optional[int] = None,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Expenses submitted by (or on behalf of) the current user across all projects"""
    expenses = await engine.expenses.list_user_expenses(current_user.id, limit=limit)
    return [e.model_dump() for e in expenses]
