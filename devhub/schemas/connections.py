from datetime import datetime
from typing import Optional

from devhub.schemas.base import BaseSchema, TimestampedSchema
from devhub.schemas.users import UserPublic


# ---------- requests ----------
class ConnectionRequestIn(BaseSchema):
    recipient_id: Optional[str] = None


class ConnectionRespondIn(BaseSchema):
    action: Optional[str] = None


# ---------- responses ----------
class ConnectionOut(TimestampedSchema):
    id: int
    requester_id: str
    recipient_id: str
    status: str


class ReceivedRequestOut(ConnectionOut):
    requester: Optional[UserPublic] = None


class SentRequestOut(ConnectionOut):
    recipient: Optional[UserPublic] = None


class ConnectedUserOut(UserPublic):
    connection_id: int
    connected_at: datetime
    connection_status: str


class ConnectionStatusOut(BaseSchema):
    status: str
    connection_id: Optional[int] = None
    is_sent_by_me: bool = False
    can_send_request: bool = True


class ConnectionStatsOut(BaseSchema):
    total_connections: int
    pending_received: int
    pending_sent: int
    available_users: int
