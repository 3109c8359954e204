from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Literal, Any
from datetime import datetime, timedelta
import uuid

from constants import InvitationStatus, MemberRoles

DEFAULT_EXPIRY = timedelta(days=7)


class InvitationModel(BaseModel):
    """
    Single-use invitation to join a project with a fixed member role.

    Expiry is evaluated at read time (``is_valid`` / ``is_expired``); a pending
    invitation past ``expires_at`` keeps ``status == "pending"`` in storage.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    project_name: str = ""
    invited_by: str
    invited_by_name: str = ""
    invited_email: Optional[str] = None
    member_role: Literal['director', 'labour'] = MemberRoles.LABOUR
    status: Literal['pending', 'accepted', 'expired', 'cancelled'] = InvitationStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime
    accepted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def default_expiry(cls, data: Any):
        if isinstance(data, dict) and data.get("expires_at") is None:
            data = dict(data)
            created_at = data.get("created_at") or datetime.now()
            if isinstance(created_at, str):
                created_at = datetime.fromisoformat(created_at)
            data["created_at"] = created_at
            data["expires_at"] = created_at + DEFAULT_EXPIRY
        return data

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.status == InvitationStatus.PENDING and now < self.expires_at

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.status == InvitationStatus.EXPIRED or now >= self.expires_at

    @property
    def is_accepted(self) -> bool:
        return self.status == InvitationStatus.ACCEPTED

    def shareable_link(self, frontend_url: str) -> str:
        return f"{frontend_url.rstrip('/')}/invite/{self.id}"
