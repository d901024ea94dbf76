from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship, validates

from devhub.core.db import Base, utcnow
from devhub.core.errors import InvalidArgument
from devhub.schemas.enums import GroupType, MessageType

_MESSAGE_TYPES = {t.value for t in MessageType}
_GROUP_TYPES = {t.value for t in GroupType}

MAX_CONTENT_LENGTH = 5000
MAX_GROUP_NAME_LENGTH = 100
MAX_GROUP_DESCRIPTION_LENGTH = 500


group_members = Table(
    "group_members",
    Base.metadata,
    Column("group_id", Integer, ForeignKey("chat_groups.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(64), ForeignKey("users.id", ondelete="RESTRICT"), primary_key=True),
)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    recipient_id = Column(String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)
    group_id = Column(Integer, ForeignKey("chat_groups.id", ondelete="RESTRICT"), nullable=True)

    content = Column(Text, nullable=False)
    is_group = Column(Boolean, nullable=False, default=False)
    read = Column(Boolean, nullable=False, default=False)
    message_type = Column(
        String(16),
        CheckConstraint(
            "message_type IN ('text','image','file')",
            name="messages_type_check",
        ),
        nullable=False,
        default=MessageType.text.value,
    )

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    sender = relationship("User", foreign_keys=[sender_id], lazy="joined")
    recipient = relationship("User", foreign_keys=[recipient_id], lazy="joined")

    __table_args__ = (
        # exactly one target, chosen by is_group
        CheckConstraint(
            "(is_group AND group_id IS NOT NULL AND recipient_id IS NULL) OR "
            "(NOT is_group AND recipient_id IS NOT NULL AND group_id IS NULL)",
            name="messages_target_check",
        ),
        Index("idx_messages_pair", "sender_id", "recipient_id", "created_at"),
        Index("idx_messages_group", "group_id", "created_at"),
        Index("idx_messages_unread", "read", "recipient_id"),
        {"sqlite_autoincrement": True},
    )

    @validates("content")
    def _validate_content(self, key, value):
        value = (value or "").strip()
        if not value:
            raise InvalidArgument("Message content is required")
        if len(value) > MAX_CONTENT_LENGTH:
            raise InvalidArgument(f"Message content cannot exceed {MAX_CONTENT_LENGTH} characters")
        return value

    @validates("message_type")
    def _validate_message_type(self, key, value):
        if isinstance(value, MessageType):
            value = value.value
        if value not in _MESSAGE_TYPES:
            raise InvalidArgument(f"Invalid message type: {value}")
        return value


class Group(Base):
    __tablename__ = "chat_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(MAX_GROUP_NAME_LENGTH), nullable=False)
    description = Column(String(MAX_GROUP_DESCRIPTION_LENGTH), nullable=False, default="")
    creator_id = Column(String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    last_message_id = Column(
        Integer,
        ForeignKey("messages.id", ondelete="SET NULL", use_alter=True, name="fk_group_last_message"),
        nullable=True,
    )
    group_type = Column(
        String(16),
        CheckConstraint(
            "group_type IN ('public','private')",
            name="chat_groups_type_check",
        ),
        nullable=False,
        default=GroupType.private.value,
    )

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[creator_id], lazy="joined")
    members = relationship("User", secondary=group_members, order_by="User.id")
    last_message = relationship("Message", foreign_keys=[last_message_id], post_update=True)

    @validates("name")
    def _validate_name(self, key, value):
        value = (value or "").strip()
        if not value:
            raise InvalidArgument("Group name is required")
        if len(value) > MAX_GROUP_NAME_LENGTH:
            raise InvalidArgument(f"Group name cannot exceed {MAX_GROUP_NAME_LENGTH} characters")
        return value

    @validates("description")
    def _validate_description(self, key, value):
        value = (value or "").strip()
        if len(value) > MAX_GROUP_DESCRIPTION_LENGTH:
            raise InvalidArgument(
                f"Group description cannot exceed {MAX_GROUP_DESCRIPTION_LENGTH} characters"
            )
        return value

    @validates("group_type")
    def _validate_group_type(self, key, value):
        if isinstance(value, GroupType):
            value = value.value
        if value not in _GROUP_TYPES:
            raise InvalidArgument(f"Invalid group type: {value}")
        return value

    @validates("creator_id")
    def _validate_creator(self, key, value):
        if self.creator_id is not None and value != self.creator_id:
            raise InvalidArgument("Group creator cannot be changed")
        return value

    def member_ids(self) -> list[str]:
        return [m.id for m in self.members]

    def has_member(self, user_id: str) -> bool:
        return user_id in self.member_ids()
