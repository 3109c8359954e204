from fastapi import APIRouter, Body, Depends, File, Query, UploadFile
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime
import json
from constants import ExpenseCategories, PaymentMethods, PaymentStatus
from models.user import UserModel
from routes.deps import get_current_user, get_engine
from services.engine import ExpenseWorkflowEngine
from logging_config import get_logger

router = APIRouter(prefix="/api", tags=["Expenses"])
logger = get_logger("expenses")


class ExpenseCreate(BaseModel):
    title: str
    amount: float
    category: str = ExpenseCategories.MISCELLANEOUS
    payment_method: str = PaymentMethods.CASH
    payment_status: str = PaymentStatus.PAID
    paid_amount: Optional[float] = None
    description: Optional[str] = None
    expense_date: Optional[datetime] = None
    expense_for_user_id: Optional[str] = None


class ExpenseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None
    expense_date: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class ExpenseRejection(BaseModel):
    reason: str = ""


class PaymentStatusUpdate(BaseModel):
    payment_status: str
    paid_amount: Optional[float] = None


class PartialPayment(BaseModel):
    amount: float


def _dump(expenses) -> List[dict]:
    return [e.model_dump() for e in expenses]


# --- PROJECT EXPENSES ---

@router.post("/projects/{project_id}/expenses", status_code=201)
async def create_expense(
    project_id: str,
    payload: ExpenseCreate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """CREATE: auto-approved for the admin, pending for everyone else"""
    expense = await engine.expenses.create_expense(project_id, current_user, **payload.model_dump())
    return expense.model_dump()


@router.get("/projects/{project_id}/expenses", response_model=List[dict])
async def list_expenses(
    project_id: str,
    status: Optional[str] = Query(None, description="pending, approved or rejected"),
    category: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, description="paid, credit or partial"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """READ: labour members only ever see their own expenses"""
    expenses = await engine.expenses.list_expenses(
        project_id, current_user.id,
        status=status, category=category, payment_status=payment_status,
        start_date=start_date, end_date=end_date, limit=limit,
    )
    return _dump(expenses)


@router.get("/projects/{project_id}/expenses/pending", response_model=List[dict])
async def list_pending_expenses(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    return _dump(await engine.expenses.list_pending(project_id, current_user.id))


@router.get("/projects/{project_id}/expenses/deleted", response_model=List[dict])
async def list_deleted_expenses(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    return _dump(await engine.expenses.list_deleted(project_id, current_user.id))


@router.get("/projects/{project_id}/expenses/credit", response_model=List[dict])
async def list_credit_expenses(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    return _dump(await engine.expenses.list_credit(project_id, current_user.id))


@router.get("/projects/{project_id}/expenses/stream")
async def stream_expenses(
    project_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Server-sent events: the full visible expense list after every change"""
    updates = engine.expenses.stream_expenses(project_id, current_user.id)
    # Surface 403/404 before the response starts streaming
    first = await updates.__anext__()

    async def events():
        batch = first
        while True:
            yield f"data: {json.dumps([e.model_dump(mode='json') for e in batch])}\n\n"
            try:
                batch = await updates.__anext__()
            except StopAsyncIteration:
                return

    return StreamingResponse(events(), media_type="text/event-stream")


# --- SINGLE EXPENSE ---

@router.get("/expenses/{expense_id}")
async def get_expense(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.get_expense(expense_id, current_user.id)
    return expense.model_dump()


@router.patch("/expenses/{expense_id}")
async def update_expense(
    expense_id: str,
    payload: ExpenseUpdate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """UPDATE: only the fields sent are changed"""
    expense = await engine.expenses.update_expense(expense_id, current_user, **payload.model_dump(exclude_unset=True))
    return expense.model_dump()


@router.post("/expenses/{expense_id}/approve")
async def approve_expense(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.approve_expense(expense_id, current_user)
    return expense.model_dump()


@router.post("/expenses/{expense_id}/reject")
async def reject_expense(
    expense_id: str,
    payload: ExpenseRejection = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.reject_expense(expense_id, current_user, payload.reason)
    return expense.model_dump()


@router.delete("/expenses/{expense_id}")
async def delete_expense(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    """Soft delete; approved amounts are taken off the project total"""
    expense = await engine.expenses.delete_expense(expense_id, current_user)
    return expense.model_dump()


@router.post("/expenses/{expense_id}/restore")
async def restore_expense(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.restore_expense(expense_id, current_user)
    return expense.model_dump()


# --- PAYMENTS ---

@router.put("/expenses/{expense_id}/payment")
async def update_payment_status(
    expense_id: str,
    payload: PaymentStatusUpdate = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.update_payment_status(
        expense_id, current_user, payload.payment_status, payload.paid_amount
    )
    return expense.model_dump()


@router.post("/expenses/{expense_id}/mark-paid")
async def mark_as_paid(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.mark_as_paid(expense_id, current_user)
    return expense.model_dump()


@router.post("/expenses/{expense_id}/payments")
async def add_partial_payment(
    expense_id: str,
    payload: PartialPayment = Body(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.add_partial_payment(expense_id, current_user, payload.amount)
    return expense.model_dump()


# --- RECEIPTS ---

@router.put("/expenses/{expense_id}/receipt")
async def upload_receipt(
    expense_id: str,
    file: UploadFile = File(...),
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    data = await file.read()
    expense = await engine.expenses.attach_receipt(
        expense_id, current_user, data, file.filename or "receipt", file.content_type or ""
    )
    return expense.model_dump()


@router.get("/expenses/{expense_id}/receipt")
async def download_receipt(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    data = await engine.expenses.open_receipt(expense_id, current_user.id)
    return Response(content=data, media_type="application/octet-stream")


@router.delete("/expenses/{expense_id}/receipt")
async def delete_receipt(
    expense_id: str,
    current_user: UserModel = Depends(get_current_user),
    engine: ExpenseWorkflowEngine = Depends(get_engine)
):
    expense = await engine.expenses.remove_receipt(expense_id, current_user)
    return expense.model_dump()
