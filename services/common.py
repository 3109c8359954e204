"""
Shared plumbing for the workflow services: injected collaborators, record
loaders and the best-effort wrapper used for post-commit side effects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from constants import Collections
from exceptions import NotFoundError, PermissionDeniedError
from logging_config import get_logger
from models.expense import ExpenseModel
from models.invitation import InvitationModel
from models.project import ProjectModel
from models.user import UserModel

if TYPE_CHECKING:
    from database import DocumentStore
    from services.notifier import Notifier
    from utils.receipts import ReceiptStorage

logger = get_logger("services")


@dataclass
class ServiceContext:
    store: "DocumentStore"
    notifier: "Notifier"
    receipts: "ReceiptStorage"
    clock: Callable[[], datetime] = field(default=datetime.now)
    frontend_url: str = "http://localhost:5173"
    invitation_expiry_days: int = 7
    max_receipt_bytes: int = 5 * 1024 * 1024


async def load_project(store, project_id: str, session=None) -> ProjectModel:
    doc = await store.get(Collections.PROJECTS, project_id, session=session)
    if not doc:
        raise NotFoundError(f"Project {project_id} not found")
    return ProjectModel(**doc)


async def load_expense(store, expense_id: str, session=None) -> ExpenseModel:
    doc = await store.get(Collections.EXPENSES, expense_id, session=session)
    if not doc:
        raise NotFoundError(f"Expense {expense_id} not found")
    return ExpenseModel(**doc)


async def load_invitation(store, invitation_id: str, session=None) -> InvitationModel:
    doc = await store.get(Collections.INVITATIONS, invitation_id, session=session)
    if not doc:
        raise NotFoundError(f"Invitation {invitation_id} not found")
    return InvitationModel(**doc)


async def load_user(store, user_id: str, session=None) -> UserModel:
    doc = await store.get(Collections.USERS, user_id, session=session)
    if not doc:
        raise NotFoundError(f"User {user_id} not found")
    return UserModel(**doc)


def require(allowed: bool, message: str) -> None:
    if not allowed:
        raise PermissionDeniedError(message)


def require_access(project: ProjectModel, user_id: str) -> None:
    require(project.has_access(user_id), "You are not a member of this project")


async def best_effort(action: str, coro: Awaitable, **context) -> Optional[object]:
    """Await a side effect whose failure must not undo committed state."""
    try:
        return await coro
    except Exception as e:
        logger.warning(f"{action} failed: {e}", exc_info=True, extra={"data": context})
        return None
