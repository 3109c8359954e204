from datetime import datetime
from typing import Callable, Optional

from config import config
from database import DocumentStore
from logging_config import get_logger
from services.common import ServiceContext
from services.expenses import ExpenseService
from services.invitations import InvitationService
from services.notifier import Notifier
from services.projects import ProjectService
from utils.receipts import ReceiptStorage

logger = get_logger("engine")


class ExpenseWorkflowEngine:
    """
    Entry point for every workflow operation.

    Collaborators are passed in explicitly; routes reach the engine through
    ``app.state.engine`` so tests can swap in a different store.
    """

    def __init__(
        self,
        store,
        notifier: Optional[Notifier] = None,
        receipts=None,
        clock: Callable[[], datetime] = datetime.now,
        frontend_url: Optional[str] = None,
        invitation_expiry_days: Optional[int] = None,
        max_receipt_bytes: Optional[int] = None,
    ):
        self.ctx = ServiceContext(
            store=store,
            notifier=notifier or Notifier(store),
            receipts=receipts or ReceiptStorage(store),
            clock=clock,
            frontend_url=frontend_url or config.FRONTEND_URL,
            invitation_expiry_days=invitation_expiry_days or config.INVITATION_EXPIRY_DAYS,
            max_receipt_bytes=max_receipt_bytes or config.MAX_RECEIPT_BYTES,
        )
        self.projects = ProjectService(self.ctx)
        self.invitations = InvitationService(self.ctx)
        self.expenses = ExpenseService(self.ctx)

    @property
    def store(self):
        return self.ctx.store

    @property
    def notifier(self) -> Notifier:
        return self.ctx.notifier


def build_engine() -> ExpenseWorkflowEngine:
    """Engine wired to MongoDB, GridFS and web push from configuration."""
    store = DocumentStore()
    logger.info("Workflow engine initialised", extra={"data": {"db": config.DB_NAME}})
    return ExpenseWorkflowEngine(store)
