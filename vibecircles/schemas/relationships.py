from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RelationshipRequestIn(BaseModel):
    target: int = Field(ge=1)


class RelationshipRespondIn(BaseModel):
    action: Literal['accept', 'reject']


class RelationshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    target_id: int
    status: str
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None


class FollowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    follower_id: int
    followed_id: int
    created_at: Optional[datetime] = None
