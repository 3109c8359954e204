import pytest
from httpx import AsyncClient

from constants import Collections

pytestmark = pytest.mark.asyncio


async def test_get_me(async_client: AsyncClient, site_a, carl_headers: dict):
    resp = await async_client.get("/api/users/me", headers=carl_headers)
    assert resp.status_code == 200
    me = resp.json()
    assert me["id"] == "carl_id"
    assert me["project_ids"] == [site_a.id]


async def test_get_me_unauthorized(async_client: AsyncClient):
    """Unauthenticated request returns 401."""
    resp = await async_client.get("/api/users/me")
    assert resp.status_code == 401


async def test_update_profile(async_client: AsyncClient, store, alice_headers: dict):
    resp = await async_client.patch(
        "/api/users/me", json={"name": "Alice Mason", "phone_number": "+91 98765 43210"}, headers=alice_headers
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "Alice Mason"
    assert store.doc(Collections.USERS, "alice_id")["phone_number"] == "+91 98765 43210"


async def test_profile_ignores_protected_fields(async_client: AsyncClient, store, alice_headers: dict):
    resp = await async_client.patch("/api/users/me", json={"role": "admin", "email": "x@example.com"}, headers=alice_headers)
    assert resp.status_code == 400
    assert store.doc(Collections.USERS, "alice_id")["email"] == "alice@example.com"


async def test_blank_name_rejected(async_client: AsyncClient, alice_headers: dict):
    resp = await async_client.patch("/api/users/me", json={"name": "   "}, headers=alice_headers)
    assert resp.status_code == 400


async def test_my_expenses_across_projects(async_client: AsyncClient, engine, site_a, alice, carl, carl_headers):
    other = await engine.projects.create_project(alice, "Site B", 5000)
    invitation = await engine.invitations.create_invitation(other.id, alice, "labour")
    await engine.invitations.accept_invitation(invitation.id, carl.id)

    await engine.expenses.create_expense(site_a.id, carl, title="Tea", amount=40)
    await engine.expenses.create_expense(other.id, alice, title="Wages", amount=800, category="Labor", expense_for_user_id=carl.id)
    deleted = await engine.expenses.create_expense(other.id, carl, title="Typo", amount=1)
    await engine.expenses.delete_expense(deleted.id, carl)

    resp = await async_client.get("/api/users/me/expenses", headers=carl_headers)
    assert resp.status_code == 200
    assert sorted(e["title"] for e in resp.json()) == ["Tea", "Wages"]
