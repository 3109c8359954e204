"""
In-app and push notifications for workflow events.

Delivery is best-effort: callers in the engine invoke these after the state
change has committed and never let a failure here undo it.
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from config import config
from constants import Collections, NotificationTypes
from logging_config import get_logger
from models.notification import NotificationModel
from services.common import best_effort
from utils.push import send_push_notification

logger = get_logger("notifier")

PushSender = Callable[..., Awaitable[int]]


def _money(amount: float) -> str:
    return f"{config.CURRENCY_SYMBOL} {amount:,.0f}"


class Notifier:
    def __init__(self, store, push_sender: PushSender = send_push_notification):
        self._store = store
        self._push = push_sender

    async def notify(self, user_id: str, title: str, body: str, type: str, data: Optional[Dict[str, Any]] = None) -> NotificationModel:
        notification = NotificationModel(user_id=user_id, type=type, title=title, message=body, data=data)
        await self._store.set(Collections.NOTIFICATIONS, notification.id, notification.model_dump())

        url = f"/projects/{data['project_id']}" if data and data.get("project_id") else "/"
        await best_effort(
            "push delivery",
            self._push(self._store, user_id=user_id, title=title, message=body, url=url),
            user_id=user_id,
            type=type,
        )

        logger.debug("Notification queued", extra={"data": {"user_id": user_id, "type": type}})
        return notification

    # --- Expense events ---

    async def expense_created(self, recipients: Iterable[str], project, expense) -> None:
        title = "New Expense Added"
        body = f'{expense.created_by_name} added "{expense.title}" ({_money(expense.amount)}) to {project.name}'
        payload = {"project_id": project.id, "expense_id": expense.id}
        # A failure skips only that recipient
        for user_id in recipients:
            await best_effort(
                "expense created notification",
                self.notify(user_id, title, body, NotificationTypes.EXPENSE_CREATED, payload),
                user_id=user_id,
                expense_id=expense.id,
            )

    async def expense_approved(self, project, expense) -> None:
        await self.notify(
            expense.created_by,
            "Expense Approved",
            f'Your expense "{expense.title}" in {project.name} has been approved',
            NotificationTypes.EXPENSE_APPROVED,
            {"project_id": project.id, "expense_id": expense.id},
        )

    async def expense_rejected(self, project, expense) -> None:
        await self.notify(
            expense.created_by,
            "Expense Rejected",
            f'Your expense "{expense.title}" in {project.name} was rejected: {expense.rejection_reason}',
            NotificationTypes.EXPENSE_REJECTED,
            {"project_id": project.id, "expense_id": expense.id},
        )

    async def payment_recorded(self, project, expense, amount: float) -> None:
        await self.notify(
            expense.display_user_id,
            "Payment Recorded",
            f'Payment of {_money(amount)} recorded for "{expense.title}"',
            NotificationTypes.PAYMENT_RECEIVED,
            {"project_id": project.id, "expense_id": expense.id},
        )

    async def expense_deleted_by_director(self, project, expense, deleted_by_name: str) -> None:
        await self.notify(
            project.admin_id,
            "Expense Deleted",
            f'{deleted_by_name} (Director) deleted expense "{expense.title}" from {project.name}. You can restore it if needed.',
            NotificationTypes.EXPENSE_DELETED,
            {
                "project_id": project.id,
                "expense_id": expense.id,
                "deleted_by": deleted_by_name,
                "can_restore": True,
            },
        )

    async def budget_exceeded(self, project) -> None:
        await self.notify(
            project.admin_id,
            "Budget Exceeded",
            f"{project.name} has spent {_money(project.total_spent)} of its {_money(project.budget)} budget",
            NotificationTypes.BUDGET_WARNING,
            {"project_id": project.id},
        )

    # --- Membership events ---

    async def member_removed_by_director(self, project, member, removed_by_name: str) -> None:
        # The admin restores by re-inviting with the same email and role
        await self.notify(
            project.admin_id,
            "Member Removed",
            f"{removed_by_name} (Director) removed {member.name} from {project.name}. You can restore them if needed.",
            NotificationTypes.MEMBER_REMOVED,
            {
                "project_id": project.id,
                "member_id": member.id,
                "member_user_id": member.user_id,
                "member_email": member.email,
                "member_role": member.role,
                "removed_by": removed_by_name,
                "can_restore": True,
            },
        )

    async def project_invite(self, user_id: str, invitation, invite_url: str) -> None:
        await self.notify(
            user_id,
            "Project Invitation",
            f"{invitation.invited_by_name} invited you to join {invitation.project_name} as {invitation.member_role}",
            NotificationTypes.PROJECT_INVITE,
            {"project_id": invitation.project_id, "invitation_id": invitation.id, "url": invite_url},
        )
