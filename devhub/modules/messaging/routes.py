from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from devhub.core.auth import get_current_user_id
from devhub.core.db import get_db
from devhub.core.errors import ok
from devhub.modules.notifications.hub import NotificationEmitter, get_emitter
from devhub.schemas.messaging import (
    AddMembersIn,
    ChatThreadOut,
    CreateGroupIn,
    GroupOut,
    MessageOut,
    SendMessageIn,
)
from devhub.schemas.users import UserSummary
from .service import (
    DEFAULT_PAGE_SIZE,
    ChatThread,
    add_members,
    create_group,
    get_group,
    get_messages,
    list_chats,
    mark_read,
    remove_member,
    send_message,
)

router = APIRouter(prefix="/api/messages", tags=["messages"])


def _thread_out(thread: ChatThread) -> dict:
    out = ChatThreadOut(
        id=thread.id,
        is_group=thread.is_group,
        last_message=MessageOut.model_validate(thread.last_message) if thread.last_message else None,
        unread_count=thread.unread_count,
        updated_at=thread.updated_at,
    )
    if thread.user is not None:
        out.name = thread.user.name
        out.email = thread.user.email
        out.role = thread.user.role
    if thread.group is not None:
        out.name = thread.group.name
        out.description = thread.group.description
        out.members = [UserSummary.model_validate(m) for m in thread.group.members]
    return out.wire()


# ----------------------------
# INBOX
# ----------------------------
@router.get("/chats")
def messages_chats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ok([_thread_out(t) for t in list_chats(db, user_id)])


@router.get("/messages/{chat_id}")
def messages_history(
    chat_id: str,
    is_group: bool = Query(False, alias="isGroup"),
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    messages = get_messages(db, user_id, chat_id, is_group, page=page, limit=limit)
    return ok([MessageOut.model_validate(m).wire() for m in messages])


# ----------------------------
# SEND / READ
# ----------------------------
@router.post("/send")
def messages_send(
    payload: SendMessageIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    emitter: NotificationEmitter = Depends(get_emitter),
):
    msg = send_message(
        db,
        user_id,
        payload.content,
        recipient_id=payload.recipient,
        group_id=payload.group_id,
        is_group=payload.is_group,
        message_type=payload.message_type.value,
        emitter=emitter,
    )
    return ok(MessageOut.model_validate(msg).wire())


@router.put("/{message_id}/read")
def messages_mark_read(
    message_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    msg = mark_read(db, message_id, user_id)
    return ok(MessageOut.model_validate(msg).wire())


# ----------------------------
# GROUPS
# ----------------------------
@router.post("/groups")
def groups_create(
    payload: CreateGroupIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    group = create_group(
        db,
        user_id,
        payload.name,
        payload.members,
        description=payload.description,
        group_type=payload.group_type.value,
    )
    return ok(GroupOut.model_validate(group).wire())


@router.get("/groups/{group_id}")
def groups_detail(
    group_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    group = get_group(db, group_id, user_id)
    return ok(GroupOut.model_validate(group).wire())


@router.post("/groups/{group_id}/members")
def groups_add_members(
    group_id: int,
    payload: AddMembersIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    group = add_members(db, group_id, user_id, payload.members)
    return ok(GroupOut.model_validate(group).wire())


@router.delete("/groups/{group_id}/members/{member_id}")
def groups_remove_member(
    group_id: int,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    group = remove_member(db, group_id, user_id, member_id)
    return ok(GroupOut.model_validate(group).wire())
