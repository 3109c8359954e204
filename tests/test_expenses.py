import asyncio
import random
from datetime import datetime

import pytest

from constants import Collections, NotificationTypes
from exceptions import ConflictError, NotFoundError, PermissionDeniedError, StorageError, ValidationError, WorkflowError

pytestmark = pytest.mark.asyncio


# ── Helpers ───────────────────────────────────────────────────────────────────

def total_spent(store, project_id: str) -> float:
    return store.doc(Collections.PROJECTS, project_id)["total_spent"]


def expected_total(store, project_id: str) -> float:
    return sum(
        e["amount"] for e in store.docs(Collections.EXPENSES)
        if e["project_id"] == project_id and e["status"] == "approved" and not e.get("is_deleted")
    )


def notifications_for(store, user_id: str, type: str = None) -> list:
    return [
        n for n in store.docs(Collections.NOTIFICATIONS)
        if n["user_id"] == user_id and (type is None or n["type"] == type)
    ]


async def add(engine, project, user, amount=5000, **kwargs):
    kwargs.setdefault("category", "Materials")
    kwargs.setdefault("payment_method", "Cash")
    return await engine.expenses.create_expense(project.id, user, title=kwargs.pop("title", "Cement bags"), amount=amount, **kwargs)


# ── CREATE ────────────────────────────────────────────────────────────────────

async def test_admin_expense_is_auto_approved(engine, store, site_a, alice):
    expense = await add(engine, site_a, alice, amount=12000)
    assert expense.status == "approved"
    assert expense.approved_by == alice.id
    assert expense.approved_at is not None
    assert total_spent(store, site_a.id) == 12000


@pytest.mark.parametrize("creator", ["bob", "carl"])
async def test_member_expense_is_pending(engine, store, site_a, creator, request):
    user = request.getfixturevalue(creator)
    expense = await add(engine, site_a, user, amount=3000)
    assert expense.status == "pending"
    assert expense.approved_by is None
    assert total_spent(store, site_a.id) == 0


async def test_member_expense_notifies_admin_and_other_directors(engine, store, site_a, alice, bob, carl, push):
    await add(engine, site_a, carl)
    assert len(notifications_for(store, alice.id, NotificationTypes.EXPENSE_CREATED)) == 1
    assert len(notifications_for(store, bob.id, NotificationTypes.EXPENSE_CREATED)) == 1
    assert notifications_for(store, carl.id) == []
    assert {p["user_id"] for p in push.sent} == {alice.id, bob.id}
    assert push.sent[0]["url"] == f"/projects/{site_a.id}"


async def test_director_expense_does_not_notify_themselves(engine, store, site_a, alice, bob):
    await add(engine, site_a, bob)
    assert len(notifications_for(store, alice.id, NotificationTypes.EXPENSE_CREATED)) == 1
    assert notifications_for(store, bob.id) == []


async def test_non_member_cannot_add_expense(engine, site_a, dana):
    with pytest.raises(PermissionDeniedError):
        await add(engine, site_a, dana)


async def test_invalid_fields_reported_together(engine, site_a, carl):
    with pytest.raises(ValidationError) as exc:
        await engine.expenses.create_expense(
            site_a.id, carl, title="  ", amount=-5, category="Food", payment_method="Barter"
        )
    assert set(exc.value.field_errors) == {"title", "amount", "category", "payment_method"}


async def test_amount_upper_bound(engine, site_a, carl):
    with pytest.raises(ValidationError) as exc:
        await add(engine, site_a, carl, amount=1_000_000_000_000)
    assert "amount" in exc.value.field_errors


async def test_partial_payment_must_be_below_amount(engine, store, site_a, carl):
    with pytest.raises(ValidationError) as exc:
        await add(engine, site_a, carl, amount=1000, payment_status="partial", paid_amount=1000)
    assert "paid_amount" in exc.value.field_errors
    assert store.docs(Collections.EXPENSES) == []

    expense = await add(engine, site_a, carl, amount=1000, payment_status="partial", paid_amount=500)
    assert expense.paid_amount == 500
    assert expense.pending_amount == 500


async def test_paid_and_credit_force_paid_amount(engine, site_a, carl):
    paid = await add(engine, site_a, carl, amount=1000, payment_status="paid", paid_amount=10)
    credit = await add(engine, site_a, carl, amount=1000, payment_status="credit", paid_amount=10)
    assert paid.paid_amount == 1000
    assert credit.paid_amount == 0


async def test_expense_on_behalf_of_member(engine, site_a, bob, carl):
    expense = await add(engine, site_a, bob, expense_for_user_id=carl.id)
    assert expense.added_by_admin
    assert expense.added_by_admin_id == bob.id
    assert expense.display_user_id == carl.id
    assert expense.display_name == "Carl"

    # Carl sees it as their own
    assert [e.id for e in await engine.expenses.list_expenses(site_a.id, carl.id)] == [expense.id]


async def test_labour_cannot_add_on_behalf(engine, site_a, bob, carl):
    with pytest.raises(PermissionDeniedError):
        await add(engine, site_a, carl, expense_for_user_id=bob.id)


async def test_on_behalf_target_must_be_in_project(engine, site_a, alice, dana):
    with pytest.raises(ValidationError) as exc:
        await add(engine, site_a, alice, expense_for_user_id=dana.id)
    assert "expense_for_user_id" in exc.value.field_errors


async def test_failed_budget_write_leaves_no_expense(engine, store, site_a, alice):
    store.fail_on("update", Collections.PROJECTS)
    with pytest.raises(StorageError):
        await add(engine, site_a, alice)
    store.clear_failures()
    assert store.docs(Collections.EXPENSES) == []
    assert total_spent(store, site_a.id) == 0


# ── APPROVE / REJECT ──────────────────────────────────────────────────────────

async def test_director_approves(engine, store, site_a, bob, carl):
    expense = await add(engine, site_a, carl, amount=5000)
    approved = await engine.expenses.approve_expense(expense.id, bob)
    assert approved.status == "approved"
    assert approved.approved_by_name == "Bob"
    assert total_spent(store, site_a.id) == 5000
    assert len(notifications_for(store, carl.id, NotificationTypes.EXPENSE_APPROVED)) == 1


async def test_labour_cannot_approve(engine, site_a, carl):
    expense = await add(engine, site_a, carl)
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.approve_expense(expense.id, carl)


async def test_reapproval_is_rejected(engine, store, site_a, alice, carl):
    expense = await add(engine, site_a, carl, amount=5000)
    await engine.expenses.approve_expense(expense.id, alice)
    with pytest.raises(ConflictError):
        await engine.expenses.approve_expense(expense.id, alice)
    assert total_spent(store, site_a.id) == 5000


async def test_approve_unknown_expense(engine, site_a, alice):
    with pytest.raises(NotFoundError):
        await engine.expenses.approve_expense("missing", alice)


async def test_reject_requires_reason(engine, site_a, bob, carl):
    expense = await add(engine, site_a, carl)
    with pytest.raises(ValidationError) as exc:
        await engine.expenses.reject_expense(expense.id, bob, "   ")
    assert "rejection_reason" in exc.value.field_errors


async def test_reject_keeps_total_and_notifies(engine, store, site_a, bob, carl):
    expense = await add(engine, site_a, carl)
    rejected = await engine.expenses.reject_expense(expense.id, bob, "Duplicate bill")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Duplicate bill"
    assert rejected.rejected_by == bob.id
    assert total_spent(store, site_a.id) == 0

    [notification] = notifications_for(store, carl.id, NotificationTypes.EXPENSE_REJECTED)
    assert "Duplicate bill" in notification["message"]

    with pytest.raises(ConflictError):
        await engine.expenses.approve_expense(expense.id, bob)


async def test_failed_total_update_rolls_back_approval(engine, store, site_a, alice, carl):
    expense = await add(engine, site_a, carl)
    store.fail_on("update", Collections.PROJECTS)
    with pytest.raises(StorageError):
        await engine.expenses.approve_expense(expense.id, alice)
    store.clear_failures()

    assert store.doc(Collections.EXPENSES, expense.id)["status"] == "pending"
    assert total_spent(store, site_a.id) == 0
    assert store.rollbacks == 1


async def test_notification_failure_does_not_undo_approval(engine, store, site_a, alice, carl, push):
    expense = await add(engine, site_a, carl)
    push.fail = True
    approved = await engine.expenses.approve_expense(expense.id, alice)
    assert approved.status == "approved"
    assert store.doc(Collections.EXPENSES, expense.id)["status"] == "approved"
    assert total_spent(store, site_a.id) == 5000


async def test_budget_warning_when_approval_crosses_budget(engine, store, site_a, alice, bob, carl):
    await add(engine, site_a, alice, amount=99000)
    assert notifications_for(store, alice.id, NotificationTypes.BUDGET_WARNING) == []

    expense = await add(engine, site_a, carl, amount=5000)
    await engine.expenses.approve_expense(expense.id, bob)
    assert len(notifications_for(store, alice.id, NotificationTypes.BUDGET_WARNING)) == 1

    # Already over budget: no repeat warning
    another = await add(engine, site_a, carl, amount=100)
    await engine.expenses.approve_expense(another.id, bob)
    assert len(notifications_for(store, alice.id, NotificationTypes.BUDGET_WARNING)) == 1


# ── CONCURRENCY ───────────────────────────────────────────────────────────────

async def test_concurrent_approvals_lose_no_updates(engine, store, site_a, alice, bob, carl):
    amounts = [1000, 2500, 400, 7300, 999, 50, 12000, 3333]
    expenses = [await add(engine, site_a, carl, amount=a) for a in amounts]

    approvers = [alice, bob]
    await asyncio.gather(*[
        engine.expenses.approve_expense(e.id, approvers[i % 2]) for i, e in enumerate(expenses)
    ])
    assert total_spent(store, site_a.id) == sum(amounts)


async def test_concurrent_double_approval_counts_once(engine, store, site_a, alice, bob, carl):
    expense = await add(engine, site_a, carl, amount=5000)
    results = await asyncio.gather(
        engine.expenses.approve_expense(expense.id, alice),
        engine.expenses.approve_expense(expense.id, bob),
        return_exceptions=True,
    )
    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert total_spent(store, site_a.id) == 5000


# ── TOTAL SPENT INVARIANT ─────────────────────────────────────────────────────

async def test_total_tracks_any_transition_sequence(engine, store, site_a, alice, bob, carl):
    rng = random.Random(7)
    expenses = [await add(engine, site_a, carl, amount=rng.randint(1, 9000)) for _ in range(6)]
    expenses.append(await add(engine, site_a, alice, amount=4200))

    actions = [
        lambda e: engine.expenses.approve_expense(e.id, bob),
        lambda e: engine.expenses.reject_expense(e.id, bob, "Not needed"),
        lambda e: engine.expenses.delete_expense(e.id, alice),
        lambda e: engine.expenses.restore_expense(e.id, alice),
        lambda e: engine.expenses.update_expense(e.id, alice, amount=rng.randint(1, 9000)),
    ]
    for _ in range(80):
        try:
            await rng.choice(actions)(rng.choice(expenses))
        except WorkflowError:
            pass
        assert total_spent(store, site_a.id) == pytest.approx(expected_total(store, site_a.id))


# ── SOFT DELETE / RESTORE ─────────────────────────────────────────────────────

async def test_creator_deletes_own_pending(engine, store, site_a, carl):
    expense = await add(engine, site_a, carl)
    deleted = await engine.expenses.delete_expense(expense.id, carl)
    assert deleted.is_deleted
    assert deleted.deleted_by == carl.id
    assert total_spent(store, site_a.id) == 0


async def test_creator_cannot_delete_approved(engine, site_a, alice, carl):
    expense = await add(engine, site_a, carl)
    await engine.expenses.approve_expense(expense.id, alice)
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.delete_expense(expense.id, carl)


async def test_director_without_permission_cannot_delete(engine, site_a, alice, bob):
    expense = await add(engine, site_a, alice)
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.delete_expense(expense.id, bob)


async def test_delete_and_restore_approved(engine, store, site_a, alice):
    expense = await add(engine, site_a, alice, amount=8000)
    await engine.expenses.delete_expense(expense.id, alice)
    assert total_spent(store, site_a.id) == 0

    with pytest.raises(ConflictError):
        await engine.expenses.delete_expense(expense.id, alice)

    restored = await engine.expenses.restore_expense(expense.id, alice)
    assert not restored.is_deleted
    assert restored.deleted_by is None
    assert total_spent(store, site_a.id) == 8000

    with pytest.raises(ConflictError):
        await engine.expenses.restore_expense(expense.id, alice)


async def test_director_delete_notifies_admin(engine, store, site_a, alice, bob):
    await engine.projects.update_director_permissions(site_a.id, alice.id, bob.id, can_delete_expenses=True)
    expense = await add(engine, site_a, alice, amount=2000)

    await engine.expenses.delete_expense(expense.id, bob)
    assert total_spent(store, site_a.id) == 0

    [notification] = notifications_for(store, alice.id, NotificationTypes.EXPENSE_DELETED)
    assert notification["data"]["can_restore"] is True
    assert notification["data"]["expense_id"] == expense.id

    # The same permission allows restoring
    await engine.expenses.restore_expense(expense.id, bob)
    assert total_spent(store, site_a.id) == 2000


async def test_restore_needs_delete_permission(engine, site_a, alice, bob):
    expense = await add(engine, site_a, alice)
    await engine.expenses.delete_expense(expense.id, alice)
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.restore_expense(expense.id, bob)


async def test_deleted_expenses_hidden_from_listing(engine, site_a, alice, carl):
    keep = await add(engine, site_a, carl, title="Keep")
    gone = await add(engine, site_a, carl, title="Gone")
    await engine.expenses.delete_expense(gone.id, alice)

    assert [e.id for e in await engine.expenses.list_expenses(site_a.id, alice.id)] == [keep.id]
    assert [e.id for e in await engine.expenses.list_deleted(site_a.id, alice.id)] == [gone.id]


async def test_deleted_list_requires_delete_permission(engine, site_a, bob):
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.list_deleted(site_a.id, bob.id)


# ── EDIT ──────────────────────────────────────────────────────────────────────

async def test_editing_approved_amount_moves_total_by_delta(engine, store, site_a, alice):
    expense = await add(engine, site_a, alice, amount=5000)
    updated = await engine.expenses.update_expense(expense.id, alice, amount=7000)
    assert updated.amount == 7000
    assert updated.paid_amount == 7000
    assert total_spent(store, site_a.id) == 7000

    await engine.expenses.update_expense(expense.id, alice, amount=1000)
    assert total_spent(store, site_a.id) == 1000


async def test_creator_edits_only_while_pending(engine, store, site_a, alice, carl):
    expense = await add(engine, site_a, carl)
    updated = await engine.expenses.update_expense(expense.id, carl, title="Cement (50kg)", category="Equipment")
    assert updated.title == "Cement (50kg)"
    assert store.doc(Collections.EXPENSES, expense.id)["category"] == "Equipment"

    await engine.expenses.approve_expense(expense.id, alice)
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.update_expense(expense.id, carl, title="Changed")


async def test_edit_rejects_unknown_category(engine, site_a, carl):
    expense = await add(engine, site_a, carl)
    with pytest.raises(ValidationError) as exc:
        await engine.expenses.update_expense(expense.id, carl, category="Food")
    assert "category" in exc.value.field_errors


async def test_edit_amount_below_partial_payment(engine, site_a, carl):
    expense = await add(engine, site_a, carl, amount=1000, payment_status="partial", paid_amount=600)
    with pytest.raises(ValidationError):
        await engine.expenses.update_expense(expense.id, carl, amount=500)


async def test_rejected_expense_cannot_be_edited(engine, site_a, bob, carl):
    expense = await add(engine, site_a, carl)
    await engine.expenses.reject_expense(expense.id, bob, "Wrong project")
    with pytest.raises(ConflictError):
        await engine.expenses.update_expense(expense.id, bob, title="Fixed")


async def test_edit_rejects_wrong_types_and_nulls(engine, store, site_a, carl):
    expense = await add(engine, site_a, carl)
    with pytest.raises(ValidationError) as exc:
        await engine.expenses.update_expense(expense.id, carl, title=5)
    assert "title" in exc.value.field_errors
    with pytest.raises(ValidationError) as exc:
        await engine.expenses.update_expense(expense.id, carl, expense_date="2026-03-01")
    assert "expense_date" in exc.value.field_errors
    with pytest.raises(ValidationError) as exc:
        await engine.expenses.update_expense(expense.id, carl, expense_date=None, description=7)
    assert set(exc.value.field_errors) == {"expense_date", "description"}

    assert store.doc(Collections.EXPENSES, expense.id)["title"] == expense.title
    assert (await engine.expenses.get_expense(expense.id, carl.id)).expense_date == expense.expense_date


# ── PAYMENTS ──────────────────────────────────────────────────────────────────

async def test_partial_payments_accumulate_and_clamp(engine, store, site_a, alice, carl):
    expense = await add(engine, site_a, carl, amount=1000, payment_status="credit")

    first = await engine.expenses.add_partial_payment(expense.id, alice, 300)
    assert first.payment_status == "partial"
    assert first.paid_amount == 300

    second = await engine.expenses.add_partial_payment(expense.id, alice, 900)
    assert second.payment_status == "paid"
    assert second.paid_amount == 1000

    with pytest.raises(ConflictError):
        await engine.expenses.add_partial_payment(expense.id, alice, 1)

    payments = notifications_for(store, carl.id, NotificationTypes.PAYMENT_RECEIVED)
    assert len(payments) == 2


async def test_mark_as_paid(engine, site_a, bob, carl):
    expense = await add(engine, site_a, carl, amount=1000, payment_status="partial", paid_amount=200)
    paid = await engine.expenses.mark_as_paid(expense.id, bob)
    assert paid.is_fully_paid
    assert paid.paid_amount == 1000


async def test_paying_a_paid_expense_conflicts(engine, store, site_a, bob, carl):
    expense = await add(engine, site_a, carl, amount=1000, payment_status="credit")
    await engine.expenses.mark_as_paid(expense.id, bob)
    with pytest.raises(ConflictError):
        await engine.expenses.mark_as_paid(expense.id, bob)
    with pytest.raises(ConflictError):
        await engine.expenses.update_payment_status(expense.id, bob, "paid")
    assert len(notifications_for(store, carl.id, NotificationTypes.PAYMENT_RECEIVED)) == 1


async def test_payment_status_validation(engine, site_a, alice, carl):
    expense = await add(engine, site_a, carl, amount=1000)
    with pytest.raises(ValidationError):
        await engine.expenses.update_payment_status(expense.id, alice, "partial", 1500)
    with pytest.raises(ValidationError):
        await engine.expenses.update_payment_status(expense.id, alice, "bartered")

    credit = await engine.expenses.update_payment_status(expense.id, alice, "credit")
    assert credit.paid_amount == 0


async def test_labour_cannot_record_payments(engine, site_a, carl):
    expense = await add(engine, site_a, carl, payment_status="credit")
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.mark_as_paid(expense.id, carl)


async def test_non_positive_payment(engine, site_a, alice, carl):
    expense = await add(engine, site_a, carl, payment_status="credit")
    with pytest.raises(ValidationError):
        await engine.expenses.add_partial_payment(expense.id, alice, 0)


async def test_credit_listing(engine, site_a, alice, carl):
    owed = await add(engine, site_a, carl, amount=1000, payment_status="credit")
    partly = await add(engine, site_a, carl, amount=1000, payment_status="partial", paid_amount=10)
    await add(engine, site_a, carl, amount=1000)
    ids = {e.id for e in await engine.expenses.list_credit(site_a.id, alice.id)}
    assert ids == {owed.id, partly.id}


# ── VISIBILITY ────────────────────────────────────────────────────────────────

async def test_labour_sees_only_own_expenses(engine, site_a, alice, bob, carl):
    mine = await add(engine, site_a, carl)
    theirs = await add(engine, site_a, alice)

    assert [e.id for e in await engine.expenses.list_expenses(site_a.id, carl.id)] == [mine.id]
    assert {e.id for e in await engine.expenses.list_expenses(site_a.id, bob.id)} == {mine.id, theirs.id}

    with pytest.raises(PermissionDeniedError):
        await engine.expenses.get_expense(theirs.id, carl.id)


async def test_listing_filters_and_order(engine, clock, site_a, alice, carl):
    older = await add(engine, site_a, carl, expense_date=datetime(2026, 3, 1))
    newer = await add(engine, site_a, carl, expense_date=datetime(2026, 3, 10), category="Transport")
    approved = await add(engine, site_a, alice, expense_date=datetime(2026, 2, 1))

    listed = await engine.expenses.list_expenses(site_a.id, alice.id)
    assert [e.id for e in listed] == [newer.id, older.id, approved.id]

    pending = await engine.expenses.list_pending(site_a.id, alice.id)
    assert {e.id for e in pending} == {older.id, newer.id}

    transport = await engine.expenses.list_expenses(site_a.id, alice.id, category="Transport")
    assert [e.id for e in transport] == [newer.id]

    march = await engine.expenses.list_expenses(site_a.id, alice.id, start_date=datetime(2026, 3, 1))
    assert {e.id for e in march} == {older.id, newer.id}


async def test_user_expenses_across_projects(engine, site_a, alice, bob, carl):
    other = await engine.projects.create_project(carl, "Carl's Garage", 5000)
    in_site = await add(engine, site_a, carl)
    in_garage = await add(engine, other, carl)
    for_carl = await add(engine, site_a, bob, expense_for_user_id=carl.id)

    ids = {e.id for e in await engine.expenses.list_user_expenses(carl.id)}
    assert ids == {in_site.id, in_garage.id, for_carl.id}


# ── RECEIPTS ──────────────────────────────────────────────────────────────────

async def test_attach_and_open_receipt(engine, receipts, site_a, bob, carl):
    expense = await add(engine, site_a, carl)
    updated = await engine.expenses.attach_receipt(expense.id, carl, b"jpegbytes", "bill.jpg", "image/jpeg")
    assert updated.has_receipt
    assert receipts.paths[updated.receipt_ref] == f"{site_a.id}/{expense.id}/bill.jpg"
    assert await engine.expenses.open_receipt(expense.id, bob.id) == b"jpegbytes"


async def test_replacing_receipt_deletes_old_blob(engine, receipts, site_a, carl):
    expense = await add(engine, site_a, carl)
    first = await engine.expenses.attach_receipt(expense.id, carl, b"one", "a.png", "image/png")
    second = await engine.expenses.attach_receipt(expense.id, carl, b"two", "b.png", "image/png")
    assert first.receipt_ref not in receipts.blobs
    assert receipts.blobs[second.receipt_ref] == b"two"

    removed = await engine.expenses.remove_receipt(expense.id, carl)
    assert removed.receipt_ref is None
    assert receipts.blobs == {}


async def test_deleted_expense_keeps_its_receipt(engine, store, receipts, site_a, carl):
    expense = await add(engine, site_a, carl)
    attached = await engine.expenses.attach_receipt(expense.id, carl, b"img", "a.png", "image/png")
    await engine.expenses.delete_expense(expense.id, carl)

    with pytest.raises(ConflictError):
        await engine.expenses.remove_receipt(expense.id, carl)
    assert store.doc(Collections.EXPENSES, expense.id)["receipt_ref"] == attached.receipt_ref
    assert receipts.blobs[attached.receipt_ref] == b"img"


async def test_receipt_size_and_type_limits(engine, site_a, carl):
    expense = await add(engine, site_a, carl)
    too_big = b"x" * (engine.ctx.max_receipt_bytes + 1)
    with pytest.raises(ValidationError):
        await engine.expenses.attach_receipt(expense.id, carl, too_big, "big.jpg", "image/jpeg")
    with pytest.raises(ValidationError):
        await engine.expenses.attach_receipt(expense.id, carl, b"MZ", "virus.exe", "application/x-msdownload")


async def test_other_labour_cannot_touch_receipt(engine, store, site_a, alice, carl, dana):
    await engine.invitations.accept_invitation(
        (await engine.invitations.create_invitation(site_a.id, alice, "labour")).id, dana.id
    )
    expense = await add(engine, site_a, carl)
    with pytest.raises(PermissionDeniedError):
        await engine.expenses.attach_receipt(expense.id, dana, b"img", "x.png", "image/png")


# ── REPORTS ───────────────────────────────────────────────────────────────────

async def test_summary_counts_approved_only(engine, site_a, alice, bob, carl):
    await add(engine, site_a, alice, amount=1000, category="Materials")
    await add(engine, site_a, alice, amount=500, category="Transport")
    await add(engine, site_a, carl, amount=9999)
    deleted = await add(engine, site_a, alice, amount=300)
    await engine.expenses.delete_expense(deleted.id, alice)

    summary = await engine.expenses.summary(site_a.id, bob.id)
    assert summary.total_amount == 1500
    assert summary.count == 2
    assert summary.by_category == {"Materials": 1000, "Transport": 500}

    with pytest.raises(PermissionDeniedError):
        await engine.expenses.summary(site_a.id, carl.id)


async def test_summary_date_range(engine, site_a, alice):
    await add(engine, site_a, alice, amount=100, expense_date=datetime(2026, 1, 5))
    await add(engine, site_a, alice, amount=200, expense_date=datetime(2026, 2, 5))
    summary = await engine.expenses.summary(site_a.id, alice.id, start_date=datetime(2026, 2, 1))
    assert summary.total_amount == 200


async def test_monthly_totals(engine, site_a, alice):
    await add(engine, site_a, alice, amount=100, expense_date=datetime(2025, 9, 30))
    await add(engine, site_a, alice, amount=250, expense_date=datetime(2025, 12, 24))
    await add(engine, site_a, alice, amount=50, expense_date=datetime(2026, 3, 2))
    await add(engine, site_a, alice, amount=25, expense_date=datetime(2026, 3, 14))

    totals = await engine.expenses.monthly_totals(site_a.id, alice.id, months=6)
    assert list(totals) == ["2025-10", "2025-11", "2025-12", "2026-01", "2026-02", "2026-03"]
    assert totals["2025-12"] == 250
    assert totals["2026-03"] == 75
    assert sum(totals.values()) == 325


async def test_recalculate_fixes_drift(engine, store, site_a, alice, carl):
    await add(engine, site_a, alice, amount=1200)
    pending = await add(engine, site_a, carl, amount=800)
    await engine.expenses.approve_expense(pending.id, alice)
    await store.update(Collections.PROJECTS, site_a.id, set_fields={"total_spent": 1})

    assert await engine.expenses.recalculate_total_spent(site_a.id, alice.id) == 2000
    assert total_spent(store, site_a.id) == 2000

    with pytest.raises(PermissionDeniedError):
        await engine.expenses.recalculate_total_spent(site_a.id, carl.id)


# ── LIVE UPDATES ──────────────────────────────────────────────────────────────

async def test_stream_yields_after_each_change(engine, site_a, alice, carl):
    stream = engine.expenses.stream_expenses(site_a.id, carl.id)
    assert await stream.__anext__() == []

    mine = await add(engine, site_a, carl)
    assert [e.id for e in await asyncio.wait_for(stream.__anext__(), 1)] == [mine.id]

    # Alice's expense changes the collection but stays invisible to Carl
    await add(engine, site_a, alice)
    assert [e.id for e in await asyncio.wait_for(stream.__anext__(), 1)] == [mine.id]
    await stream.aclose()


async def test_stream_requires_membership(engine, site_a, dana):
    stream = engine.expenses.stream_expenses(site_a.id, dana.id)
    with pytest.raises(PermissionDeniedError):
        await stream.__anext__()
