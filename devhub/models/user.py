import uuid

from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import validates

from devhub.core.db import Base, utcnow
from devhub.core.errors import InvalidArgument
from devhub.schemas.enums import UserRole

_ROLES = {r.value for r in UserRole}


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # one of UserRole, or empty
    role = Column(String(32), nullable=True)

    place = Column(String(100), nullable=True)
    phone = Column(String(32), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    @validates("email")
    def _validate_email(self, key, value):
        value = (value or "").strip().lower()
        if not value or "@" not in value:
            raise InvalidArgument("A valid email is required")
        return value

    @validates("role")
    def _validate_role(self, key, value):
        if isinstance(value, UserRole):
            value = value.value
        if value is not None and value not in _ROLES:
            raise InvalidArgument(f"Invalid role: {value}")
        return value

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
