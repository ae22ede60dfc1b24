from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .users import UserBrief


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    entity_id: Optional[int] = None
    message: str
    is_read: bool
    created_at: Optional[datetime] = None
    actor: Optional[UserBrief] = None
