# Global Constants

class Collections:
    USERS = "users"
    PROJECTS = "projects"
    EXPENSES = "expenses"
    INVITATIONS = "invitations"
    NOTIFICATIONS = "notifications"
    PUSH_SUBSCRIPTIONS = "push_subscriptions"


class UserRoles:
    ADMIN = "admin"
    STAKEHOLDER = "stakeholder"


class MemberRoles:
    # Director: admin-delegated control, sees full project details
    DIRECTOR = "director"
    # Labour: can only add expenses for themselves
    LABOUR = "labour"

    ALL = [DIRECTOR, LABOUR]


class ProjectStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"

    ALL = [ACTIVE, COMPLETED, ON_HOLD, CANCELLED]


class ExpenseStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus:
    PAID = "paid"
    CREDIT = "credit"
    PARTIAL = "partial"

    ALL = [PAID, CREDIT, PARTIAL]


class InvitationStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ExpenseCategories:
    MATERIALS = "Materials"
    LABOR = "Labor"
    EQUIPMENT = "Equipment"
    TRANSPORT = "Transport"
    UTILITIES = "Utilities"
    PERMITS = "Permits & Fees"
    CONTRACTORS = "Contractors"
    MISCELLANEOUS = "Miscellaneous"

    ALL = [MATERIALS, LABOR, EQUIPMENT, TRANSPORT, UTILITIES, PERMITS, CONTRACTORS, MISCELLANEOUS]


class PaymentMethods:
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    CARD = "Card"
    MOBILE_MONEY = "Mobile Money"
    OTHER = "Other"

    ALL = [CASH, BANK_TRANSFER, CHEQUE, CARD, MOBILE_MONEY, OTHER]


class NotificationTypes:
    EXPENSE_CREATED = "expense_created"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"
    PAYMENT_RECEIVED = "payment_received"
    PROJECT_INVITE = "project_invite"
    BUDGET_WARNING = "budget_warning"
    EXPENSE_DELETED = "expense_deleted"
    MEMBER_REMOVED = "member_removed"


# IN queries for membership lookups are split into batches of at most this many ids
IN_QUERY_BATCH_SIZE = 10

MAX_AMOUNT = 999_999_999_999
