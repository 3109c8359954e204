"""
Input checks shared by the workflow services.

Each ``*_errors`` helper returns a field -> message map; callers raise a
single ValidationError carrying every problem found.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from constants import (
    MAX_AMOUNT,
    ExpenseCategories,
    MemberRoles,
    PaymentMethods,
    PaymentStatus,
    ProjectStatus,
)
from exceptions import ValidationError

_email_adapter = TypeAdapter(EmailStr)

_UNSET = object()


def raise_for(errors: Dict[str, str], message: str) -> None:
    if errors:
        raise ValidationError(message, errors)


def amount_error(amount, field: str = "amount") -> Optional[str]:
    if amount is None:
        return f"{field.replace('_', ' ').capitalize()} is required"
    if not isinstance(amount, (int, float)) or isinstance(amount, bool):
        return "Please enter a valid amount"
    if amount <= 0:
        return "Amount must be greater than 0"
    if amount > MAX_AMOUNT:
        return "Amount is too large"
    return None


def text_error(value, label: str, required: bool, min_length: int = 1, max_length: int = 200) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        return f"{label} must be text"
    if value is None or not value.strip():
        return f"{label} is required" if required else None
    length = len(value.strip())
    if length < min_length:
        return f"{label} must be at least {min_length} characters"
    if length > max_length:
        return f"{label} must be less than {max_length} characters"
    return None


def date_error(value, label: str, required: bool) -> Optional[str]:
    if value is None:
        return f"{label} is required" if required else None
    if not isinstance(value, datetime):
        return f"{label} must be a valid date"
    return None


def expense_errors(
    title=_UNSET,
    amount=_UNSET,
    category=_UNSET,
    payment_method=_UNSET,
    description=_UNSET,
) -> Dict[str, str]:
    """Check only the fields passed in, so edits can validate a subset."""
    errors: Dict[str, str] = {}
    checks = {
        "title": lambda v: text_error(v, "Title", required=True),
        "amount": amount_error,
        "category": lambda v: None if v in ExpenseCategories.ALL else "Please select a valid category",
        "payment_method": lambda v: None if v in PaymentMethods.ALL else "Please select a valid payment method",
        "description": lambda v: text_error(v, "Description", required=False, max_length=500),
    }
    values = {
        "title": title,
        "amount": amount,
        "category": category,
        "payment_method": payment_method,
        "description": description,
    }
    for field, value in values.items():
        if value is _UNSET:
            continue
        message = checks[field](value)
        if message:
            errors[field] = message
    return errors


def resolve_paid_amount(amount: float, payment_status: str, paid_amount: Optional[float]) -> float:
    """
    Normalise paid_amount for a payment status.

    paid forces the full amount, credit forces zero, partial must sit strictly
    between zero and the amount.
    """
    if payment_status not in PaymentStatus.ALL:
        raise ValidationError.for_field("payment_status", "Please select a valid payment status")
    if payment_status == PaymentStatus.PAID:
        return amount
    if payment_status == PaymentStatus.CREDIT:
        return 0.0
    if paid_amount is None or paid_amount <= 0:
        raise ValidationError.for_field("paid_amount", "Paid amount must be greater than 0 for a partial payment")
    if paid_amount >= amount:
        raise ValidationError.for_field("paid_amount", "Paid amount must be less than the total for a partial payment")
    return float(paid_amount)


def project_errors(
    name=_UNSET,
    budget=_UNSET,
    description=_UNSET,
    status=_UNSET,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if name is not _UNSET:
        message = text_error(name, "Project name", required=True, min_length=3, max_length=100)
        if message:
            errors["name"] = message
    if budget is not _UNSET:
        if budget is None or not isinstance(budget, (int, float)) or isinstance(budget, bool):
            errors["budget"] = "Budget is required"
        elif budget < 0:
            errors["budget"] = "Budget cannot be negative"
        elif budget > MAX_AMOUNT:
            errors["budget"] = "Budget is too large"
    if description is not _UNSET:
        message = text_error(description, "Description", required=False, max_length=500)
        if message:
            errors["description"] = message
    if status is not _UNSET and status not in ProjectStatus.ALL:
        errors["status"] = "Please select a valid status"
    if start_date and end_date and end_date < start_date:
        errors["end_date"] = "End date must be after start date"
    return errors


def member_role_error(role) -> Optional[str]:
    return None if role in MemberRoles.ALL else "Role must be director or labour"


def normalize_email(email: str) -> str:
    try:
        return str(_email_adapter.validate_python(email.strip())).lower()
    except (PydanticValidationError, AttributeError):
        raise ValidationError.for_field("invited_email", "Please enter a valid email")
