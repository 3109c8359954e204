from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Literal, Dict, List, Any
from datetime import datetime
import uuid

from constants import ExpenseCategories, ExpenseStatus, PaymentMethods, PaymentStatus


# -----------------------------------------------------------------------------
# Expense
# -----------------------------------------------------------------------------
class ExpenseModel(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    title: str
    description: Optional[str] = None
    amount: float
    # Stored as plain strings so legacy values still load; writes are checked in the service
    category: str = ExpenseCategories.MISCELLANEOUS
    payment_method: str = PaymentMethods.CASH

    status: Literal['pending', 'approved', 'rejected'] = ExpenseStatus.PENDING
    payment_status: Literal['paid', 'credit', 'partial'] = PaymentStatus.PAID
    paid_amount: float = 0.0
    receipt_ref: Optional[str] = None

    created_by: str
    created_by_name: str = ""
    approved_by: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_by_name: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    expense_date: datetime = Field(default_factory=datetime.now)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    # Soft delete
    is_deleted: bool = False
    deleted_by: Optional[str] = None
    deleted_by_name: Optional[str] = None
    deleted_at: Optional[datetime] = None

    # Added by an admin/director on behalf of another user
    added_by_admin: bool = False
    added_by_admin_id: Optional[str] = None
    added_by_admin_name: Optional[str] = None
    expense_for_user_id: Optional[str] = None
    expense_for_user_name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def default_paid_amount(cls, data: Any):
        # Records written before payment tracking have no paid_amount
        if isinstance(data, dict) and data.get("paid_amount") is None:
            data = dict(data)
            paid = data.get("payment_status", PaymentStatus.PAID) == PaymentStatus.PAID
            data["paid_amount"] = data.get("amount", 0.0) if paid else 0.0
        return data

    @property
    def is_pending(self) -> bool:
        return self.status == ExpenseStatus.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status == ExpenseStatus.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.status == ExpenseStatus.REJECTED

    @property
    def has_receipt(self) -> bool:
        return bool(self.receipt_ref)

    @property
    def pending_amount(self) -> float:
        return self.amount - self.paid_amount

    @property
    def is_fully_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID or self.paid_amount >= self.amount

    @property
    def is_credit(self) -> bool:
        return self.payment_status == PaymentStatus.CREDIT

    @property
    def is_partial_payment(self) -> bool:
        return self.payment_status == PaymentStatus.PARTIAL

    @property
    def counts_toward_budget(self) -> bool:
        return self.is_approved and not self.is_deleted

    @property
    def display_name(self) -> str:
        return self.expense_for_user_name or self.created_by_name

    @property
    def display_user_id(self) -> str:
        return self.expense_for_user_id or self.created_by


# -----------------------------------------------------------------------------
# Summary
# -----------------------------------------------------------------------------
class ExpenseSummary(BaseModel):
    total_amount: float = 0.0
    count: int = 0
    by_category: Dict[str, float] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_expenses(cls, expenses: List[ExpenseModel]) -> "ExpenseSummary":
        summary = cls()
        for expense in expenses:
            summary.total_amount += expense.amount
            summary.count += 1
            summary.by_category[expense.category] = summary.by_category.get(expense.category, 0.0) + expense.amount
            summary.by_status[expense.status] = summary.by_status.get(expense.status, 0) + 1
        return summary
