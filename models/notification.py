from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Literal
from datetime import datetime
import uuid


class NotificationModel(BaseModel):
    """In-app notification for expense and membership events."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str  # Who receives the notification
    type: Literal[
        'expense_created', 'expense_approved', 'expense_rejected', 'payment_received',
        'project_invite', 'budget_warning', 'expense_deleted', 'member_removed',
    ]

    # Content
    title: str
    message: str

    # Typed payload (project_id, expense_id, can_restore, ...)
    data: Optional[dict] = None

    # State
    read: bool = False
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(populate_by_name=True)
