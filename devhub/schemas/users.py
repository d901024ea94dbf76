from datetime import datetime
from typing import Optional

from devhub.schemas.base import BaseSchema

class UserSummary(BaseSchema):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

class UserPublic(UserSummary):
    place: Optional[str] = None
    created_at: Optional[datetime] = None
