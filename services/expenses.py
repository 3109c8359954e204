"""
Expense lifecycle: creation, approval, rejection, soft delete/restore,
payments, receipts and reporting.

Every change to ``projects.total_spent`` is an ``$inc`` applied in the same
transaction as the expense write that causes it, so the running total always
equals the sum of approved, non-deleted expenses.
"""

from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from constants import Collections, ExpenseCategories, ExpenseStatus, PaymentMethods, PaymentStatus
from exceptions import ConflictError, ValidationError
from logging_config import get_logger
from models.expense import ExpenseModel, ExpenseSummary
from models.project import ProjectModel
from models.user import UserModel
from services.common import (
    ServiceContext,
    best_effort,
    load_expense,
    load_project,
    require,
    require_access,
)
from services.validators import amount_error, date_error, expense_errors, raise_for, resolve_paid_amount

logger = get_logger("expenses")

RECEIPT_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/heic", "application/pdf")

_EDITABLE_FIELDS = ("title", "description", "amount", "category", "payment_method", "expense_date")

_NOT_DELETED = ("is_deleted", "!=", True)


def can_view_expense(project: ProjectModel, expense: ExpenseModel, user_id: str) -> bool:
    """Admin and directors see every expense; labour sees only their own."""
    if project.can_see_details(user_id):
        return True
    return project.has_access(user_id) and user_id in (expense.created_by, expense.display_user_id)


def month_key(value: datetime) -> str:
    return f"{value.year}-{value.month:02d}"


def shift_month(value: datetime, months: int) -> datetime:
    """First day of the month ``months`` months after ``value`` (negative goes back)."""
    index = value.year * 12 + (value.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


class ExpenseService:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.store = ctx.store

    # --- CREATE ---

    async def create_expense(
        self,
        project_id: str,
        actor: UserModel,
        title: str,
        amount: float,
        category: str = ExpenseCategories.MISCELLANEOUS,
        payment_method: str = PaymentMethods.CASH,
        payment_status: str = PaymentStatus.PAID,
        paid_amount: Optional[float] = None,
        description: Optional[str] = None,
        receipt_ref: Optional[str] = None,
        expense_date: Optional[datetime] = None,
        expense_for_user_id: Optional[str] = None,
    ) -> ExpenseModel:
        project = await load_project(self.store, project_id)
        require_access(project, actor.id)

        raise_for(
            expense_errors(
                title=title,
                amount=amount,
                category=category,
                payment_method=payment_method,
                description=description,
            ),
            "Invalid expense",
        )
        paid = resolve_paid_amount(float(amount), payment_status, paid_amount)

        now = self.ctx.clock()
        fields = {}
        if expense_for_user_id and expense_for_user_id != actor.id:
            require(project.has_admin_control(actor.id), "Only the admin or a director can add expenses for other members")
            if project.is_admin(expense_for_user_id):
                for_name = project.admin_name
            else:
                member = project.get_member(expense_for_user_id)
                if not member:
                    raise ValidationError.for_field("expense_for_user_id", "That user is not part of this project")
                for_name = member.name
            fields.update(
                added_by_admin=True,
                added_by_admin_id=actor.id,
                added_by_admin_name=actor.name,
                expense_for_user_id=expense_for_user_id,
                expense_for_user_name=for_name,
            )

        auto_approve = project.is_admin(actor.id)
        if auto_approve:
            fields.update(
                status=ExpenseStatus.APPROVED,
                approved_by=actor.id,
                approved_by_name=actor.name,
                approved_at=now,
            )

        expense = ExpenseModel(
            project_id=project_id,
            title=title.strip(),
            description=description.strip() if description else None,
            amount=float(amount),
            category=category,
            payment_method=payment_method,
            payment_status=payment_status,
            paid_amount=paid,
            receipt_ref=receipt_ref,
            created_by=actor.id,
            created_by_name=actor.name,
            expense_date=expense_date or now,
            created_at=now,
            updated_at=now,
            **fields,
        )

        async def txn(session):
            await self.store.set(Collections.EXPENSES, expense.id, expense.model_dump(), session=session)
            if auto_approve:
                await self._adjust_total(project_id, expense.amount, now, session)

        await self.store.run_transaction(txn)
        logger.info(
            f"Expense created: {expense.title}",
            extra={"data": {"expense_id": expense.id, "project_id": project_id, "amount": expense.amount, "status": expense.status}},
        )

        if auto_approve:
            await self._check_budget(project_id, expense.amount)
        else:
            recipients = [project.admin_id] + [
                m.user_id for m in project.members if m.is_director and m.user_id != actor.id
            ]
            await best_effort(
                "expense created notification",
                self.ctx.notifier.expense_created(recipients, project, expense),
                expense_id=expense.id,
            )
        return expense

    # --- READ ---

    async def get_expense(self, expense_id: str, user_id: str) -> ExpenseModel:
        expense = await load_expense(self.store, expense_id)
        project = await load_project(self.store, expense.project_id)
        require(can_view_expense(project, expense, user_id), "You do not have access to this expense")
        return expense

    async def list_expenses(
        self,
        project_id: str,
        user_id: str,
        status: Optional[str] = None,
        category: Optional[str] = None,
        payment_status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ExpenseModel]:
        """Non-deleted expenses visible to the user, newest expense_date first."""
        project = await load_project(self.store, project_id)
        require_access(project, user_id)

        filters = [("project_id", "==", project_id), _NOT_DELETED]
        if status:
            filters.append(("status", "==", status))
        if category:
            filters.append(("category", "==", category))
        if payment_status:
            filters.append(("payment_status", "==", payment_status))
        if start_date:
            filters.append(("expense_date", ">=", start_date))
        if end_date:
            filters.append(("expense_date", "<=", end_date))

        docs = await self.store.query(Collections.EXPENSES, filters)
        expenses = self._visible(project, docs, user_id)
        return expenses[:limit] if limit else expenses

    async def list_pending(self, project_id: str, user_id: str) -> List[ExpenseModel]:
        return await self.list_expenses(project_id, user_id, status=ExpenseStatus.PENDING)

    async def list_credit(self, project_id: str, user_id: str) -> List[ExpenseModel]:
        """Expenses with money still owed (credit or partial)."""
        project = await load_project(self.store, project_id)
        require_access(project, user_id)
        docs = await self.store.query(
            Collections.EXPENSES,
            [
                ("project_id", "==", project_id),
                _NOT_DELETED,
                ("payment_status", "in", [PaymentStatus.CREDIT, PaymentStatus.PARTIAL]),
            ],
        )
        return self._visible(project, docs, user_id)

    async def list_deleted(self, project_id: str, user_id: str) -> List[ExpenseModel]:
        project = await load_project(self.store, project_id)
        require(project.can_delete_expenses(user_id), "You do not have permission to view deleted expenses")
        docs = await self.store.query(
            Collections.EXPENSES,
            [("project_id", "==", project_id), ("is_deleted", "==", True)],
            order_by="deleted_at",
            descending=True,
        )
        return [ExpenseModel(**doc) for doc in docs]

    async def list_user_expenses(self, user_id: str, limit: Optional[int] = None) -> List[ExpenseModel]:
        """Expenses the user submitted or that were added on their behalf, across projects."""
        created = await self.store.query(Collections.EXPENSES, [("created_by", "==", user_id), _NOT_DELETED])
        on_behalf = await self.store.query(Collections.EXPENSES, [("expense_for_user_id", "==", user_id), _NOT_DELETED])
        merged = {doc["id"]: doc for doc in [*created, *on_behalf]}
        expenses = sorted((ExpenseModel(**doc) for doc in merged.values()), key=lambda e: e.created_at, reverse=True)
        return expenses[:limit] if limit else expenses

    async def stream_expenses(self, project_id: str, user_id: str) -> AsyncIterator[List[ExpenseModel]]:
        """Live view of the project's expenses; yields a fresh list after every change."""
        project = await load_project(self.store, project_id)
        require_access(project, user_id)
        async for docs in self.store.subscribe(Collections.EXPENSES, [("project_id", "==", project_id), _NOT_DELETED]):
            yield self._visible(project, docs, user_id)

    def _visible(self, project: ProjectModel, docs: List[dict], user_id: str) -> List[ExpenseModel]:
        expenses = [ExpenseModel(**doc) for doc in docs]
        expenses = [e for e in expenses if can_view_expense(project, e, user_id)]
        return sorted(expenses, key=lambda e: e.expense_date, reverse=True)

    # --- EDIT ---

    async def update_expense(self, expense_id: str, actor: UserModel, **changes) -> ExpenseModel:
        """
        Edit an expense. Admin/directors may edit any live expense; the creator
        only while it is pending. Amount changes on approved expenses move
        total_spent by the difference.
        """
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        errors = expense_errors(**{k: v for k, v in changes.items() if k != "expense_date"})
        if "expense_date" in changes:
            message = date_error(changes["expense_date"], "Expense date", required=True)
            if message:
                errors["expense_date"] = message
        raise_for(errors, "Invalid expense")

        now = self.ctx.clock()

        async def txn(session):
            expense = await load_expense(self.store, expense_id, session=session)
            project = await load_project(self.store, expense.project_id, session=session)
            own_pending = expense.created_by == actor.id and expense.is_pending and project.has_access(actor.id)
            require(
                project.has_admin_control(actor.id) or own_pending,
                "You do not have permission to edit this expense",
            )
            if expense.is_deleted:
                raise ConflictError("Deleted expenses cannot be edited")
            if expense.is_rejected:
                raise ConflictError("Rejected expenses cannot be edited")

            updates = dict(changes)
            for key in ("title", "description"):
                if isinstance(updates.get(key), str):
                    updates[key] = updates[key].strip() or None
            if "amount" in updates:
                updates["amount"] = float(updates["amount"])
                if expense.payment_status == PaymentStatus.PARTIAL:
                    updates["paid_amount"] = resolve_paid_amount(
                        updates["amount"], expense.payment_status, expense.paid_amount
                    )
                else:
                    updates["paid_amount"] = resolve_paid_amount(updates["amount"], expense.payment_status, None)
            updates["updated_at"] = now

            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            delta = updates.get("amount", expense.amount) - expense.amount
            if expense.is_approved and delta:
                await self._adjust_total(project.id, delta, now, session)
            return expense.model_copy(update=updates), delta

        updated, delta = await self.store.run_transaction(txn)
        logger.info(
            "Expense updated",
            extra={"data": {"expense_id": expense_id, "fields": sorted(changes), "total_delta": delta if updated.is_approved else 0}},
        )
        if updated.is_approved and delta > 0:
            await self._check_budget(updated.project_id, delta)
        return updated

    # --- APPROVAL ---

    async def approve_expense(self, expense_id: str, actor: UserModel) -> ExpenseModel:
        now = self.ctx.clock()

        async def txn(session):
            expense = await load_expense(self.store, expense_id, session=session)
            project = await load_project(self.store, expense.project_id, session=session)
            require(project.can_manage_expenses(actor.id), "Only the admin or a director can approve expenses")
            self._require_pending(expense)

            updates = {
                "status": ExpenseStatus.APPROVED,
                "approved_by": actor.id,
                "approved_by_name": actor.name,
                "approved_at": now,
                "updated_at": now,
            }
            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            await self._adjust_total(project.id, expense.amount, now, session)
            return project, expense.model_copy(update=updates)

        project, expense = await self.store.run_transaction(txn)
        logger.info(
            f"Expense approved: {expense.title}",
            extra={"data": {"expense_id": expense_id, "project_id": project.id, "amount": expense.amount, "approved_by": actor.id}},
        )

        if expense.created_by != actor.id:
            await best_effort(
                "approval notification", self.ctx.notifier.expense_approved(project, expense), expense_id=expense_id
            )
        await self._check_budget(project.id, expense.amount)
        return expense

    async def reject_expense(self, expense_id: str, actor: UserModel, reason: str) -> ExpenseModel:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError.for_field("rejection_reason", "Please provide a reason for rejection")
        now = self.ctx.clock()

        async def txn(session):
            expense = await load_expense(self.store, expense_id, session=session)
            project = await load_project(self.store, expense.project_id, session=session)
            require(project.can_manage_expenses(actor.id), "Only the admin or a director can reject expenses")
            self._require_pending(expense)

            updates = {
                "status": ExpenseStatus.REJECTED,
                "rejected_by": actor.id,
                "rejected_by_name": actor.name,
                "rejected_at": now,
                "rejection_reason": reason,
                "updated_at": now,
            }
            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            return project, expense.model_copy(update=updates)

        project, expense = await self.store.run_transaction(txn)
        logger.info(f"Expense rejected: {expense.title}", extra={"data": {"expense_id": expense_id, "rejected_by": actor.id}})

        if expense.created_by != actor.id:
            await best_effort(
                "rejection notification", self.ctx.notifier.expense_rejected(project, expense), expense_id=expense_id
            )
        return expense

    @staticmethod
    def _require_pending(expense: ExpenseModel) -> None:
        if expense.is_deleted:
            raise ConflictError("This expense has been deleted")
        if not expense.is_pending:
            raise ConflictError(f"This expense has already been {expense.status}")

    # --- SOFT DELETE ---

    async def delete_expense(self, expense_id: str, actor: UserModel) -> ExpenseModel:
        now = self.ctx.clock()

        async def txn(session):
            expense = await load_expense(self.store, expense_id, session=session)
            project = await load_project(self.store, expense.project_id, session=session)
            own_pending = expense.created_by == actor.id and expense.is_pending and project.has_access(actor.id)
            require(
                project.can_delete_expenses(actor.id) or own_pending,
                "You do not have permission to delete this expense",
            )
            if expense.is_deleted:
                raise ConflictError("This expense is already deleted")

            updates = {
                "is_deleted": True,
                "deleted_by": actor.id,
                "deleted_by_name": actor.name,
                "deleted_at": now,
                "updated_at": now,
            }
            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            if expense.is_approved:
                await self._adjust_total(project.id, -expense.amount, now, session)
            return project, expense.model_copy(update=updates)

        project, expense = await self.store.run_transaction(txn)
        logger.info(
            f"Expense deleted: {expense.title}",
            extra={"data": {"expense_id": expense_id, "deleted_by": actor.id, "was_approved": expense.is_approved}},
        )

        if project.is_director(actor.id):
            await best_effort(
                "expense deleted notification",
                self.ctx.notifier.expense_deleted_by_director(project, expense, actor.name),
                expense_id=expense_id,
            )
        return expense

    async def restore_expense(self, expense_id: str, actor: UserModel) -> ExpenseModel:
        now = self.ctx.clock()

        async def txn(session):
            expense = await load_expense(self.store, expense_id, session=session)
            project = await load_project(self.store, expense.project_id, session=session)
            require(project.can_delete_expenses(actor.id), "You do not have permission to restore expenses")
            if not expense.is_deleted:
                raise ConflictError("This expense is not deleted")

            updates = {
                "is_deleted": False,
                "deleted_by": None,
                "deleted_by_name": None,
                "deleted_at": None,
                "updated_at": now,
            }
            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            if expense.is_approved:
                await self._adjust_total(project.id, expense.amount, now, session)
            return expense.model_copy(update=updates)

        expense = await self.store.run_transaction(txn)
        logger.info(f"Expense restored: {expense.title}", extra={"data": {"expense_id": expense_id, "restored_by": actor.id}})
        if expense.is_approved:
            await self._check_budget(expense.project_id, expense.amount)
        return expense

    # --- PAYMENTS ---

    async def update_payment_status(
        self,
        expense_id: str,
        actor: UserModel,
        payment_status: str,
        paid_amount: Optional[float] = None,
    ) -> ExpenseModel:
        now = self.ctx.clock()

        async def txn(session):
            expense, project = await self._load_for_payment(expense_id, actor, session)
            if payment_status == PaymentStatus.PAID and expense.is_fully_paid:
                raise ConflictError("This expense is already fully paid")
            paid = resolve_paid_amount(expense.amount, payment_status, paid_amount)
            updates = {"payment_status": payment_status, "paid_amount": paid, "updated_at": now}
            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            return project, expense.model_copy(update=updates), paid - expense.paid_amount

        return await self._after_payment(await self.store.run_transaction(txn), actor)

    async def mark_as_paid(self, expense_id: str, actor: UserModel) -> ExpenseModel:
        return await self.update_payment_status(expense_id, actor, PaymentStatus.PAID)

    async def add_partial_payment(self, expense_id: str, actor: UserModel, payment_amount: float) -> ExpenseModel:
        """Record a payment towards the balance; the total paid is capped at the amount."""
        message = amount_error(payment_amount, "payment_amount")
        if message:
            raise ValidationError.for_field("payment_amount", message)
        now = self.ctx.clock()

        async def txn(session):
            expense, project = await self._load_for_payment(expense_id, actor, session)
            if expense.is_fully_paid:
                raise ConflictError("This expense is already fully paid")
            paid = min(expense.paid_amount + float(payment_amount), expense.amount)
            status = PaymentStatus.PAID if paid >= expense.amount else PaymentStatus.PARTIAL
            updates = {"payment_status": status, "paid_amount": paid, "updated_at": now}
            await self.store.update(Collections.EXPENSES, expense_id, set_fields=updates, session=session)
            return project, expense.model_copy(update=updates), paid - expense.paid_amount

        return await self._after_payment(await self.store.run_transaction(txn), actor)

    async def _load_for_payment(self, expense_id: str, actor: UserModel, session) -> Tuple[ExpenseModel, ProjectModel]:
        expense = await load_expense(self.store, expense_id, session=session)
        project = await load_project(self.store, expense.project_id, session=session)
        require(project.has_admin_control(actor.id), "Only the admin or a director can record payments")
        if expense.is_deleted:
            raise ConflictError("This expense has been deleted")
        return expense, project

    async def _after_payment(self, result, actor: UserModel) -> ExpenseModel:
        project, expense, paid_delta = result
        logger.info(
            "Expense payment updated",
            extra={"data": {"expense_id": expense.id, "payment_status": expense.payment_status, "paid_amount": expense.paid_amount}},
        )
        if paid_delta > 0 and expense.display_user_id != actor.id:
            await best_effort(
                "payment notification",
                self.ctx.notifier.payment_recorded(project, expense, paid_delta),
                expense_id=expense.id,
            )
        return expense

    # --- RECEIPTS ---

    async def attach_receipt(
        self,
        expense_id: str,
        actor: UserModel,
        data: bytes,
        filename: str,
        content_type: str,
    ) -> ExpenseModel:
        if not data:
            raise ValidationError.for_field("receipt", "Receipt file is empty")
        if len(data) > self.ctx.max_receipt_bytes:
            limit_mb = self.ctx.max_receipt_bytes // (1024 * 1024)
            raise ValidationError.for_field("receipt", f"Receipt must be smaller than {limit_mb} MB")
        if content_type not in RECEIPT_CONTENT_TYPES:
            raise ValidationError.for_field("receipt", "Receipt must be an image or a PDF")

        expense = await load_expense(self.store, expense_id)
        project = await load_project(self.store, expense.project_id)
        own = expense.created_by == actor.id and project.has_access(actor.id)
        require(project.has_admin_control(actor.id) or own, "You do not have permission to change this receipt")
        if expense.is_deleted:
            raise ConflictError("This expense has been deleted")

        reference = await self.ctx.receipts.store(data, f"{project.id}/{expense.id}/{filename}", content_type)
        now = self.ctx.clock()
        try:
            await self.store.update(Collections.EXPENSES, expense_id, set_fields={"receipt_ref": reference, "updated_at": now})
        except Exception:
            await best_effort("orphaned receipt cleanup", self.ctx.receipts.delete(reference), receipt_ref=reference)
            raise

        if expense.receipt_ref:
            await best_effort("old receipt cleanup", self.ctx.receipts.delete(expense.receipt_ref), receipt_ref=expense.receipt_ref)
        logger.info("Receipt attached", extra={"data": {"expense_id": expense_id, "bytes": len(data)}})
        return expense.model_copy(update={"receipt_ref": reference, "updated_at": now})

    async def open_receipt(self, expense_id: str, user_id: str) -> bytes:
        expense = await self.get_expense(expense_id, user_id)
        if not expense.receipt_ref:
            raise ValidationError.for_field("receipt", "This expense has no receipt")
        return await self.ctx.receipts.open(expense.receipt_ref)

    async def remove_receipt(self, expense_id: str, actor: UserModel) -> ExpenseModel:
        expense = await load_expense(self.store, expense_id)
        project = await load_project(self.store, expense.project_id)
        own = expense.created_by == actor.id and project.has_access(actor.id)
        require(project.has_admin_control(actor.id) or own, "You do not have permission to change this receipt")
        if expense.is_deleted:
            raise ConflictError("This expense has been deleted")
        if not expense.receipt_ref:
            return expense

        now = self.ctx.clock()
        await self.store.update(Collections.EXPENSES, expense_id, set_fields={"receipt_ref": None, "updated_at": now})
        await best_effort("receipt delete", self.ctx.receipts.delete(expense.receipt_ref), receipt_ref=expense.receipt_ref)
        return expense.model_copy(update={"receipt_ref": None, "updated_at": now})

    # --- REPORTS ---

    async def _approved_expenses(self, project_id: str, session=None) -> List[ExpenseModel]:
        docs = await self.store.query(
            Collections.EXPENSES,
            [("project_id", "==", project_id), ("status", "==", ExpenseStatus.APPROVED), _NOT_DELETED],
            session=session,
        )
        return [ExpenseModel(**doc) for doc in docs]

    async def summary(
        self,
        project_id: str,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> ExpenseSummary:
        project = await load_project(self.store, project_id)
        require(project.can_see_details(user_id), "Only the admin or a director can view project totals")
        expenses = await self._approved_expenses(project_id)
        if start_date:
            expenses = [e for e in expenses if e.expense_date >= start_date]
        if end_date:
            expenses = [e for e in expenses if e.expense_date <= end_date]
        return ExpenseSummary.from_expenses(expenses)

    async def monthly_totals(self, project_id: str, user_id: str, months: int = 6) -> Dict[str, float]:
        """Approved spend per month (``YYYY-MM``) for the last ``months`` months, oldest first."""
        if months < 1:
            raise ValidationError.for_field("months", "Months must be at least 1")
        project = await load_project(self.store, project_id)
        require(project.can_see_details(user_id), "Only the admin or a director can view project totals")

        start = shift_month(self.ctx.clock(), -(months - 1))
        totals = {month_key(shift_month(start, i)): 0.0 for i in range(months)}
        for expense in await self._approved_expenses(project_id):
            key = month_key(expense.expense_date)
            if expense.expense_date >= start and key in totals:
                totals[key] += expense.amount
        return totals

    async def recalculate_total_spent(self, project_id: str, actor_id: Optional[str] = None) -> float:
        """Recompute total_spent from approved, non-deleted expenses. ``actor_id=None`` is the maintenance path."""
        now = self.ctx.clock()

        async def txn(session):
            project = await load_project(self.store, project_id, session=session)
            if actor_id is not None:
                require(project.is_admin(actor_id), "Only the project admin can recalculate totals")
            total = sum(e.amount for e in await self._approved_expenses(project_id, session=session))
            await self.store.update(
                Collections.PROJECTS, project_id,
                set_fields={"total_spent": total, "updated_at": now},
                session=session,
            )
            return project.total_spent, total

        previous, total = await self.store.run_transaction(txn)
        if previous != total:
            logger.warning(
                "Project total_spent corrected",
                extra={"data": {"project_id": project_id, "previous": previous, "recalculated": total}},
            )
        return total

    # --- BUDGET ---

    async def _adjust_total(self, project_id: str, delta: float, now: datetime, session) -> None:
        matched = await self.store.update(
            Collections.PROJECTS, project_id,
            inc={"total_spent": delta},
            set_fields={"updated_at": now},
            session=session,
        )
        if not matched:
            raise ConflictError(f"Project {project_id} no longer exists")

    async def _check_budget(self, project_id: str, added: float) -> None:
        """Warn the admin when the latest increase is the one that crossed the budget."""
        project = await best_effort("budget check", load_project(self.store, project_id), project_id=project_id)
        if project and project.is_over_budget and project.total_spent - added <= project.budget:
            await best_effort("budget warning", self.ctx.notifier.budget_exceeded(project), project_id=project_id)
