from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, List, Dict, Literal, Any
from datetime import datetime
import uuid

from constants import MemberRoles, ProjectStatus
from logging_config import get_logger

logger = get_logger("models.project")


class DirectorPermissions(BaseModel):
    """Admin-delegated capabilities for a single director. Both default to off."""
    can_delete_expenses: bool = False
    can_delete_members: bool = False


class ProjectMember(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    name: str = ""
    email: str = ""
    photo_url: Optional[str] = None
    role: Literal['director', 'labour'] = MemberRoles.LABOUR
    joined_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(extra="ignore")

    @property
    def is_director(self) -> bool:
        return self.role == MemberRoles.DIRECTOR

    @property
    def is_labour(self) -> bool:
        return self.role == MemberRoles.LABOUR

    @property
    def can_see_project_details(self) -> bool:
        return self.is_director

    @property
    def can_manage_expenses(self) -> bool:
        # Directors approve/reject unconditionally; delete rights live in DirectorPermissions
        return self.is_director


class ProjectModel(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    budget: float = Field(default=0.0, ge=0)
    total_spent: float = 0.0
    status: Literal['active', 'completed', 'on_hold', 'cancelled'] = ProjectStatus.ACTIVE
    admin_id: str
    admin_name: str = ""
    members: List[ProjectMember] = Field(default_factory=list)
    start_date: datetime = Field(default_factory=datetime.now)
    end_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    image_url: Optional[str] = None
    director_permissions: Dict[str, DirectorPermissions] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("members", mode="before")
    @classmethod
    def dedupe_members(cls, value: Any):
        """
        Keep the first record per user_id. Accepting invitations enforces
        uniqueness, so a duplicate here means a bad write and is logged.
        """
        if not isinstance(value, list):
            return value or []
        seen = set()
        unique = []
        for member in value:
            user_id = member.get("user_id") if isinstance(member, dict) else getattr(member, "user_id", None)
            if user_id in seen:
                logger.warning("Dropping duplicate project member on load", extra={"data": {"user_id": user_id}})
                continue
            seen.add(user_id)
            unique.append(member)
        return unique

    @model_validator(mode="after")
    def drop_admin_from_members(self):
        if any(m.user_id == self.admin_id for m in self.members):
            logger.warning("Dropping project admin from members list", extra={"data": {"project_id": self.id}})
            self.members = [m for m in self.members if m.user_id != self.admin_id]
        return self

    # --- Budget ---

    @property
    def remaining_budget(self) -> float:
        return self.budget - self.total_spent

    @property
    def budget_utilization(self) -> float:
        return (self.total_spent / self.budget) * 100 if self.budget > 0 else 0.0

    @property
    def is_over_budget(self) -> bool:
        return self.total_spent > self.budget

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE

    @property
    def member_count(self) -> int:
        # Admin is never stored in members
        return len(self.members) + 1

    # --- Roles & permissions ---

    def get_member(self, user_id: str) -> Optional[ProjectMember]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def get_member_by_id(self, member_id: str) -> Optional[ProjectMember]:
        return next((m for m in self.members if m.id == member_id), None)

    def is_admin(self, user_id: str) -> bool:
        return self.admin_id == user_id

    def is_director(self, user_id: str) -> bool:
        return any(m.user_id == user_id and m.is_director for m in self.members)

    def is_labour(self, user_id: str) -> bool:
        return any(m.user_id == user_id and m.is_labour for m in self.members)

    def is_member(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.members)

    def has_access(self, user_id: str) -> bool:
        return self.is_admin(user_id) or self.is_member(user_id)

    def has_admin_control(self, user_id: str) -> bool:
        return self.is_admin(user_id) or self.is_director(user_id)

    def can_see_details(self, user_id: str) -> bool:
        return self.is_admin(user_id) or self.is_director(user_id)

    def can_manage_expenses(self, user_id: str) -> bool:
        return self.is_admin(user_id) or self.is_director(user_id)

    def can_delete_expenses(self, user_id: str) -> bool:
        if self.is_admin(user_id):
            return True
        if self.is_director(user_id):
            permissions = self.director_permissions.get(user_id)
            return permissions.can_delete_expenses if permissions else False
        return False

    def can_delete_members(self, user_id: str) -> bool:
        if self.is_admin(user_id):
            return True
        if self.is_director(user_id):
            permissions = self.director_permissions.get(user_id)
            return permissions.can_delete_members if permissions else False
        return False
