from pydantic import BaseModel, Field
from datetime import datetime
import uuid

class PushSubscriptionKeys(BaseModel):
    p256dh: str
    auth: str

class PushSubscriptionModel(BaseModel):
    user_id: str
    endpoint: str
    keys: PushSubscriptionKeys
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def id(self) -> str:
        # One record per endpoint, so re-subscribing is an idempotent upsert
        return str(uuid.uuid5(uuid.NAMESPACE_URL, self.endpoint))
