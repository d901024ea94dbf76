from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, validates

from devhub.core.db import Base, utcnow
from devhub.core.errors import InvalidArgument
from devhub.schemas.enums import ConnectionStatus

_STATUSES = {s.value for s in ConnectionStatus}


class Connection(Base):
    __tablename__ = "connections"
    # ids are never reused after a delete
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(
        String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    recipient_id = Column(
        String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status = Column(
        String(16),
        CheckConstraint(
            "status IN ('pending','accepted','rejected')",
            name="connections_status_check",
        ),
        nullable=False,
        default=ConnectionStatus.pending.value,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    requester = relationship("User", foreign_keys=[requester_id], lazy="joined")
    recipient = relationship("User", foreign_keys=[recipient_id], lazy="joined")

    @validates("status")
    def _validate_status(self, key, value):
        if isinstance(value, ConnectionStatus):
            value = value.value
        if value not in _STATUSES:
            raise InvalidArgument(f"Invalid connection status: {value}")
        return value

    @validates("recipient_id")
    def _validate_recipient(self, key, value):
        if not value:
            raise InvalidArgument("Recipient ID is required")
        if value == self.requester_id:
            raise InvalidArgument("Cannot send connection request to yourself")
        return value
