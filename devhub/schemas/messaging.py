from datetime import datetime
from typing import List, Optional

from pydantic import Field

from devhub.schemas.base import BaseSchema, TimestampedSchema
from devhub.schemas.enums import GroupType, MessageType
from devhub.schemas.users import UserSummary


# ---------- requests ----------
class SendMessageIn(BaseSchema):
    recipient: Optional[str] = None
    group_id: Optional[int] = None
    content: str = ""
    is_group: bool = False
    message_type: MessageType = MessageType.text


class CreateGroupIn(BaseSchema):
    name: Optional[str] = None
    description: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    group_type: GroupType = GroupType.private


class AddMembersIn(BaseSchema):
    members: List[str] = Field(default_factory=list)


# ---------- responses ----------
class MessageOut(TimestampedSchema):
    id: int
    sender: Optional[UserSummary] = None
    recipient: Optional[UserSummary] = None
    group_id: Optional[int] = None
    content: str
    is_group: bool
    read: bool
    message_type: str


class GroupOut(TimestampedSchema):
    id: int
    name: str
    description: str = ""
    creator: Optional[UserSummary] = None
    members: List[UserSummary] = Field(default_factory=list)
    last_message: Optional[MessageOut] = None
    group_type: str


class ChatThreadOut(BaseSchema):
    """One entry of the unified inbox: a direct counterpart or a group."""

    id: str
    is_group: bool
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    description: Optional[str] = None
    members: Optional[List[UserSummary]] = None
    last_message: Optional[MessageOut] = None
    unread_count: int = 0
    updated_at: Optional[datetime] = None
