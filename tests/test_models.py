from datetime import datetime, timedelta

from models.expense import ExpenseModel, ExpenseSummary
from models.invitation import InvitationModel
from models.project import ProjectMember, ProjectModel


def _project(**overrides) -> ProjectModel:
    data = {"name": "Site A", "admin_id": "alice_id", "budget": 100000}
    data.update(overrides)
    return ProjectModel(**data)


# ── Project ───────────────────────────────────────────────────────────────────

def test_project_budget_figures():
    project = _project(total_spent=25000)
    assert project.remaining_budget == 75000
    assert project.budget_utilization == 25.0
    assert not project.is_over_budget


def test_zero_budget_utilization_is_zero():
    project = _project(budget=0, total_spent=500)
    assert project.budget_utilization == 0.0
    assert project.is_over_budget


def test_member_count_includes_admin():
    project = _project(members=[{"user_id": "bob_id", "role": "director"}])
    assert project.member_count == 2


def test_duplicate_members_dropped_on_load():
    project = _project(members=[
        {"user_id": "bob_id", "role": "director"},
        {"user_id": "bob_id", "role": "labour"},
    ])
    assert len(project.members) == 1
    assert project.members[0].is_director


def test_admin_never_listed_as_member():
    project = _project(members=[{"user_id": "alice_id", "role": "labour"}, {"user_id": "carl_id"}])
    assert [m.user_id for m in project.members] == ["carl_id"]
    assert project.is_admin("alice_id")
    assert not project.is_labour("alice_id")


def test_member_defaults_to_labour():
    member = ProjectMember(user_id="carl_id")
    assert member.is_labour
    assert not member.can_see_project_details
    assert not member.can_manage_expenses


# ── Expense ───────────────────────────────────────────────────────────────────

def test_legacy_expense_defaults():
    """Records written before payment tracking load with sensible values."""
    expense = ExpenseModel(project_id="p1", title="Cement", amount=1200, created_by="carl_id")
    assert expense.status == "pending"
    assert expense.category == "Miscellaneous"
    assert expense.payment_method == "Cash"
    assert expense.paid_amount == 1200
    assert expense.is_fully_paid


def test_legacy_credit_expense_has_nothing_paid():
    expense = ExpenseModel(project_id="p1", title="Sand", amount=800, created_by="carl_id", payment_status="credit", paid_amount=None)
    assert expense.paid_amount == 0
    assert expense.pending_amount == 800
    assert expense.is_credit
    assert not expense.is_fully_paid


def test_partial_expense_figures():
    expense = ExpenseModel(project_id="p1", title="Steel", amount=1000, created_by="carl_id", payment_status="partial", paid_amount=400)
    assert expense.is_partial_payment
    assert expense.pending_amount == 600
    assert not expense.is_fully_paid


def test_display_user_prefers_expense_for():
    expense = ExpenseModel(
        project_id="p1", title="Bricks", amount=10, created_by="alice_id", created_by_name="Alice",
        expense_for_user_id="carl_id", expense_for_user_name="Carl",
    )
    assert expense.display_user_id == "carl_id"
    assert expense.display_name == "Carl"


def test_unknown_category_still_loads():
    expense = ExpenseModel(project_id="p1", title="Lunch", amount=10, created_by="carl_id", category="Food")
    assert expense.category == "Food"


def test_summary_groups_by_category_and_status():
    expenses = [
        ExpenseModel(project_id="p1", title="a", amount=100, created_by="x", category="Materials", status="approved"),
        ExpenseModel(project_id="p1", title="b", amount=50, created_by="x", category="Materials", status="approved"),
        ExpenseModel(project_id="p1", title="c", amount=25, created_by="x", category="Transport", status="approved"),
    ]
    summary = ExpenseSummary.from_expenses(expenses)
    assert summary.total_amount == 175
    assert summary.count == 3
    assert summary.by_category == {"Materials": 150, "Transport": 25}
    assert summary.by_status == {"approved": 3}


# ── Invitation ────────────────────────────────────────────────────────────────

def test_invitation_expires_after_seven_days_by_default():
    created = datetime(2026, 3, 1, 9, 0)
    invitation = InvitationModel(project_id="p1", invited_by="alice_id", created_at=created)
    assert invitation.expires_at == created + timedelta(days=7)
    assert invitation.is_valid(created + timedelta(days=6, hours=23))
    assert not invitation.is_valid(created + timedelta(days=7))
    assert invitation.is_expired(created + timedelta(days=7))


def test_cancelled_invitation_is_not_valid():
    invitation = InvitationModel(project_id="p1", invited_by="alice_id", status="cancelled")
    assert not invitation.is_valid(invitation.created_at)
    assert not invitation.is_expired(invitation.created_at)


def test_shareable_link():
    invitation = InvitationModel(id="inv1", project_id="p1", invited_by="alice_id")
    assert invitation.shareable_link("https://app.costify.test/") == "https://app.costify.test/invite/inv1"
