from fastapi import APIRouter, Depends, HTTPException
from typing import List
from constants import Collections
from models.user import UserModel
from routes.deps import get_current_user, get_engine
from services.engine import ExpenseWorkflowEngine
from logging_config import get_logger

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])
logger = get_logger("notifications")


@router.get("", response_model=List[dict])
async def get_notifications(
    unread_only: bool = False,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Get the latest notifications for the current user."""
    filters = [("user_id", "==", current_user.id)]
    if unread_only:
        filters.append(("read", "==", False))

    return await engine.store.query(
        Collections.NOTIFICATIONS, filters, order_by="created_at", descending=True, limit=50
    )


@router.get("/unread-count")
async def get_unread_count(
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Get count of unread notifications."""
    count = await engine.store.count(
        Collections.NOTIFICATIONS, [("user_id", "==", current_user.id), ("read", "==", False)]
    )
    return {"count": count}


@router.patch("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Mark a notification as read."""
    matched = await engine.store.update_where(
        Collections.NOTIFICATIONS,
        [("id", "==", notification_id), ("user_id", "==", current_user.id)],
        set_fields={"read": True},
    )
    if matched == 0:
        notification = await engine.store.get(Collections.NOTIFICATIONS, notification_id)
        if not notification or notification.get("user_id") != current_user.id:
            logger.warning(f"Notification not found for mark-as-read", extra={"data": {"notification_id": notification_id}})
            raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Marked as read"}


@router.post("/mark-all-read")
async def mark_all_read(
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Mark all notifications as read for the current user."""
    await engine.store.update_where(
        Collections.NOTIFICATIONS,
        [("user_id", "==", current_user.id), ("read", "==", False)],
        set_fields={"read": True},
    )
    return {"message": "All notifications marked as read"}
