from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from devhub.core.db import utcnow
from devhub.core.errors import Forbidden, InvalidArgument, NotFound
from devhub.models.user import User
from devhub.modules.notifications.hub import NotificationEmitter
from devhub.schemas.enums import GroupType, MessageType
from devhub.schemas.messaging import MessageOut
from .models import Group, Message

NEW_MESSAGE_EVENT = "newMessage"
DEFAULT_PAGE_SIZE = 50


@dataclass
class ChatThread:
    id: str
    is_group: bool
    last_message: Optional[Message]
    unread_count: int
    updated_at: Optional[datetime]
    user: Optional[User] = None
    group: Optional[Group] = None


# ---------- HELPERS ----------

def _notify(emitter: Optional[NotificationEmitter], user_id: str, event: str, payload: Any) -> None:
    if emitter is None:
        return
    try:
        emitter.publish(user_id, event, payload)
    except Exception as e:
        # push is best-effort, the write already succeeded
        logger.warning(f"Notification failed | event={event} user={user_id} error={e!r}")


def _parse_group_id(chat_id: Any) -> int:
    try:
        return int(chat_id)
    except (TypeError, ValueError):
        raise InvalidArgument("Invalid group id")


def _load_group(db: Session, group_id: int) -> Group:
    group = db.get(Group, group_id)
    if not group:
        raise NotFound("Group not found")
    return group


def _load_users(db: Session, user_ids: List[str]) -> List[User]:
    users = db.query(User).filter(User.id.in_(user_ids)).all()
    found = {u.id for u in users}
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise NotFound(f"User not found: {', '.join(missing)}")
    by_id = {u.id: u for u in users}
    return [by_id[uid] for uid in user_ids]


def _dedupe(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(str(i) for i in ids if i))


# ---------- INBOX ----------

def list_chats(db: Session, user_id: str) -> List[ChatThread]:
    # pass 1: newest direct message and unread count per counterpart
    rows = (
        db.query(
            Message.id,
            Message.sender_id,
            Message.recipient_id,
            Message.read,
            Message.created_at,
        )
        .filter(
            Message.is_group.is_(False),
            or_(Message.sender_id == user_id, Message.recipient_id == user_id),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )

    latest_ids: Dict[str, int] = {}
    unread: Dict[str, int] = defaultdict(int)
    for msg_id, sender_id, recipient_id, read, _ in rows:
        other = recipient_id if sender_id == user_id else sender_id
        latest_ids.setdefault(other, msg_id)
        if recipient_id == user_id and not read:
            unread[other] += 1

    # pass 2: resolve counterparts and their newest messages; unknown users are dropped
    users = {}
    latest: Dict[int, Message] = {}
    if latest_ids:
        users = {u.id: u for u in db.query(User).filter(User.id.in_(list(latest_ids))).all()}
        wanted = [mid for other, mid in latest_ids.items() if other in users]
        if wanted:
            latest = {m.id: m for m in db.query(Message).filter(Message.id.in_(wanted)).all()}

    threads: List[ChatThread] = []
    for other, msg_id in latest_ids.items():
        user = users.get(other)
        if user is None:
            continue
        msg = latest[msg_id]
        threads.append(
            ChatThread(
                id=other,
                is_group=False,
                user=user,
                last_message=msg,
                unread_count=unread.get(other, 0),
                updated_at=msg.created_at,
            )
        )

    groups = db.query(Group).filter(Group.members.any(User.id == user_id)).all()

    group_unread: Dict[int, int] = {}
    if groups:
        counts = (
            db.query(Message.group_id, func.count(Message.id))
            .filter(
                Message.group_id.in_([g.id for g in groups]),
                Message.sender_id != user_id,
                Message.read.is_(False),
            )
            .group_by(Message.group_id)
            .all()
        )
        group_unread = {gid: int(count) for gid, count in counts}

    for group in groups:
        threads.append(
            ChatThread(
                id=str(group.id),
                is_group=True,
                group=group,
                last_message=group.last_message,
                unread_count=group_unread.get(group.id, 0),
                updated_at=group.updated_at,
            )
        )

    threads.sort(
        key=lambda t: (t.updated_at or datetime.min, t.is_group, t.id),
        reverse=True,
    )

    logger.debug(f"Chats | user={user_id} direct={len(latest_ids)} groups={len(groups)}")
    return threads


# ---------- HISTORY ----------

def get_messages(
    db: Session,
    user_id: str,
    chat_id: str,
    is_group: bool,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> List[Message]:
    """
    One page of a conversation, oldest first within the page.
    Not read-only: unread messages addressed to the viewer are marked read.
    """
    if page < 1:
        page = 1
    if limit < 1:
        limit = DEFAULT_PAGE_SIZE

    if is_group:
        group = _load_group(db, _parse_group_id(chat_id))
        if not group.has_member(user_id):
            raise Forbidden("You are not a member of this group")

        marked = (
            db.query(Message)
            .filter(
                Message.group_id == group.id,
                Message.sender_id != user_id,
                Message.read.is_(False),
            )
            .update({Message.read: True}, synchronize_session=False)
        )
        query = db.query(Message).filter(Message.group_id == group.id)
    else:
        marked = (
            db.query(Message)
            .filter(
                Message.is_group.is_(False),
                Message.sender_id == chat_id,
                Message.recipient_id == user_id,
                Message.read.is_(False),
            )
            .update({Message.read: True}, synchronize_session=False)
        )
        query = db.query(Message).filter(
            Message.is_group.is_(False),
            or_(
                and_(Message.sender_id == user_id, Message.recipient_id == chat_id),
                and_(Message.sender_id == chat_id, Message.recipient_id == user_id),
            ),
        )
    db.commit()

    messages = (
        query.order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    messages.reverse()

    logger.debug(
        f"Messages | user={user_id} chat={chat_id} group={is_group} page={page} "
        f"returned={len(messages)} marked_read={marked}"
    )
    return messages


# ---------- SEND / READ ----------

def send_message(
    db: Session,
    sender_id: str,
    content: Optional[str],
    recipient_id: Optional[str] = None,
    group_id: Optional[int] = None,
    is_group: bool = False,
    message_type: str = MessageType.text.value,
    emitter: Optional[NotificationEmitter] = None,
) -> Message:
    if not content or not content.strip():
        raise InvalidArgument("Message content is required")

    group = None
    if is_group:
        if group_id is None:
            raise InvalidArgument("Group ID is required for group messages")
        group = _load_group(db, group_id)
        if not group.has_member(sender_id):
            raise Forbidden("You are not a member of this group")
        msg = Message(
            sender_id=sender_id,
            group_id=group.id,
            content=content,
            is_group=True,
            read=False,
            message_type=message_type,
        )
    else:
        if not recipient_id:
            raise InvalidArgument("Recipient is required for direct messages")
        if recipient_id == sender_id:
            raise InvalidArgument("Cannot send a message to yourself")
        if db.get(User, recipient_id) is None:
            raise NotFound("Recipient not found")
        msg = Message(
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            is_group=False,
            read=False,
            message_type=message_type,
        )

    db.add(msg)
    if group is not None:
        db.flush()
        group.last_message = msg
        group.updated_at = utcnow()
    db.commit()
    db.refresh(msg)

    logger.info(
        f"Message sent | id={msg.id} sender={sender_id} "
        f"{'group=' + str(msg.group_id) if msg.is_group else 'recipient=' + str(msg.recipient_id)}"
    )

    payload = MessageOut.model_validate(msg).wire()
    if group is not None:
        for member_id in group.member_ids():
            if member_id != sender_id:
                _notify(emitter, member_id, NEW_MESSAGE_EVENT, payload)
    else:
        _notify(emitter, msg.recipient_id, NEW_MESSAGE_EVENT, payload)

    return msg


def mark_read(db: Session, message_id: int, user_id: str) -> Message:
    msg = (
        db.query(Message)
        .filter(
            Message.id == message_id,
            Message.recipient_id == user_id,
            Message.read.is_(False),
        )
        .first()
    )
    if not msg:
        raise NotFound("Message not found or already read")

    msg.read = True
    db.commit()
    db.refresh(msg)

    logger.info(f"Message read | id={message_id} by={user_id}")
    return msg


# ---------- GROUPS ----------

def create_group(
    db: Session,
    creator_id: str,
    name: Optional[str],
    members: Optional[List[str]],
    description: Optional[str] = None,
    group_type: str = GroupType.private.value,
) -> Group:
    if not name or not name.strip():
        raise InvalidArgument("Group name is required")

    if not members:
        raise InvalidArgument("At least one member is required")

    # creator is always a member
    member_ids = _dedupe([*members, creator_id])
    users = _load_users(db, member_ids)

    group = Group(
        name=name,
        description=description or "",
        creator_id=creator_id,
        group_type=group_type,
    )
    group.members = users
    db.add(group)
    db.commit()
    db.refresh(group)

    logger.info(f"Group created | id={group.id} creator={creator_id} members={len(member_ids)}")
    return group


def get_group(db: Session, group_id: int, user_id: str) -> Group:
    group = _load_group(db, group_id)
    if not group.has_member(user_id):
        raise Forbidden("You are not a member of this group")
    return group


def add_members(db: Session, group_id: int, user_id: str, members: Optional[List[str]]) -> Group:
    group = _load_group(db, group_id)

    if group.creator_id != user_id:
        raise Forbidden("Only group creator can add members")

    current = set(group.member_ids())
    new_ids = [m for m in _dedupe(members or []) if m not in current]
    if not new_ids:
        raise InvalidArgument("All selected users are already group members")

    group.members.extend(_load_users(db, new_ids))
    db.commit()
    db.refresh(group)

    logger.info(f"Group members added | id={group.id} added={len(new_ids)}")
    return group


def remove_member(db: Session, group_id: int, user_id: str, member_id: str) -> Group:
    group = _load_group(db, group_id)

    if group.creator_id != user_id and member_id != user_id:
        raise Forbidden("You can only remove yourself or if you are the group creator")

    if member_id == group.creator_id:
        raise InvalidArgument("Group creator cannot be removed from the group")

    if not group.has_member(member_id):
        raise NotFound("Member not found in group")

    group.members = [m for m in group.members if m.id != member_id]
    db.commit()
    db.refresh(group)

    logger.info(f"Group member removed | id={group.id} member={member_id} by={user_id}")
    return group
