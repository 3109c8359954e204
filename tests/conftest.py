import pytest
from httpx import AsyncClient, ASGITransport
import os
from datetime import datetime, timedelta

# Set up test environment variables before anything else
os.environ["ENV"] = "testing"
os.environ["SECRET_KEY"] = "test_secret_key_12345"

from config import config
config.ENV = "testing"

from main import app
from constants import Collections, MemberRoles
from models.user import UserModel
from routes.deps import create_access_token
from services.engine import ExpenseWorkflowEngine
from services.notifier import Notifier
from tests.fakes import FakeClock, FakeReceiptStorage, InMemoryDocumentStore, PushRecorder

FRONTEND_URL = "https://app.costify.test"
START = datetime(2026, 3, 15, 10, 0)


@pytest.fixture
def store():
    return InMemoryDocumentStore()

@pytest.fixture
def clock():
    return FakeClock(START)

@pytest.fixture
def push():
    return PushRecorder()

@pytest.fixture
def receipts():
    return FakeReceiptStorage()

@pytest.fixture
def engine(store, clock, push, receipts):
    return ExpenseWorkflowEngine(
        store,
        notifier=Notifier(store, push_sender=push),
        receipts=receipts,
        clock=clock,
        frontend_url=FRONTEND_URL,
    )


def _seed_user(store, name: str, email: str) -> UserModel:
    user = UserModel(id=f"{name.lower()}_id", email=email, name=name, created_at=START, updated_at=START)
    store.seed(Collections.USERS, user.model_dump())
    return user

@pytest.fixture
def alice(store):
    return _seed_user(store, "Alice", "alice@example.com")

@pytest.fixture
def bob(store):
    return _seed_user(store, "Bob", "bob@example.com")

@pytest.fixture
def carl(store):
    return _seed_user(store, "Carl", "carl@example.com")

@pytest.fixture
def dana(store):
    """Registered user with no project membership."""
    return _seed_user(store, "Dana", "dana@example.com")


async def join(engine, project, admin, user, role):
    invitation = await engine.invitations.create_invitation(project.id, admin, role)
    await engine.invitations.accept_invitation(invitation.id, user.id)


@pytest.fixture
async def site_a(engine, alice, bob, carl):
    """Alice's project with Bob as director and Carl as labour."""
    project = await engine.projects.create_project(alice, "Site A", 100000)
    await join(engine, project, alice, bob, MemberRoles.DIRECTOR)
    await join(engine, project, alice, carl, MemberRoles.LABOUR)
    return await engine.projects.get_project(project.id, alice.id)


# --- HTTP ---

@pytest.fixture
async def async_client(engine):
    previous = app.state.engine
    app.state.engine = engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.state.engine = previous

def _headers(user: UserModel) -> dict:
    token = create_access_token(data={"sub": user.id}, expires_delta=timedelta(minutes=60))
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def alice_headers(alice):
    return _headers(alice)

@pytest.fixture
def bob_headers(bob):
    return _headers(bob)

@pytest.fixture
def carl_headers(carl):
    return _headers(carl)

@pytest.fixture
def dana_headers(dana):
    return _headers(dana)
