from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import Optional, Literal, List
from datetime import datetime
import uuid

class UserModel(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    google_id: Optional[str] = None
    email: EmailStr
    name: str
    photo_url: Optional[str] = None
    phone_number: Optional[str] = None
    # Coarse global role; per-project roles live on ProjectMember
    role: Literal['admin', 'stakeholder'] = "stakeholder"
    is_email_verified: bool = False
    two_factor_enabled: bool = False
    # Secondary index of membership; projects.members / projects.admin_id are authoritative
    project_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    last_login: Optional[datetime] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="ignore"
    )
