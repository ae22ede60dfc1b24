from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, StringConstraints


class GroupIn(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=100)]
    description: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None
    is_private: bool = False


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    creator_id: int
    creator_name: Optional[str] = None
    is_private: bool
    created_at: Optional[datetime] = None
    members_count: int = 0
    is_member: bool = False


class MemberOut(BaseModel):
    id: int
    username: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str
    joined_at: Optional[datetime] = None
