from dataclasses import dataclass
from typing import List, Optional

from loguru import logger
from sqlalchemy import or_, and_, func
from sqlalchemy.orm import Session

from devhub.core.db import utcnow
from devhub.core.errors import Conflict, InvalidArgument, NotFound
from devhub.models.user import User
from devhub.schemas.enums import ConnectionAction, ConnectionStatus
from .models import Connection


@dataclass
class ConnectionStats:
    total_connections: int
    pending_received: int
    pending_sent: int
    available_users: int


@dataclass
class PairStatus:
    status: str
    connection_id: Optional[int]
    is_sent_by_me: bool
    can_send_request: bool


_CONFLICT_MESSAGES = {
    ConnectionStatus.accepted.value: "You are already connected with this user",
    ConnectionStatus.rejected.value: "Connection request was previously rejected",
}


# ---------- LOOKUPS ----------

def _between(user_a: str, user_b: str):
    return or_(
        and_(Connection.requester_id == user_a, Connection.recipient_id == user_b),
        and_(Connection.requester_id == user_b, Connection.recipient_id == user_a),
    )


def _involving(user_id: str):
    return or_(Connection.requester_id == user_id, Connection.recipient_id == user_id)


def find_between(db: Session, user_a: str, user_b: str) -> Optional[Connection]:
    return db.query(Connection).filter(_between(user_a, user_b)).first()


# ---------- STATE MACHINE ----------

def request_connection(db: Session, requester_id: str, recipient_id: Optional[str]) -> Connection:
    if not recipient_id:
        raise InvalidArgument("Recipient ID is required")

    if requester_id == recipient_id:
        raise InvalidArgument("Cannot send connection request to yourself")

    # check-then-insert; two simultaneous requests for the same pair can both pass
    existing = find_between(db, requester_id, recipient_id)
    if existing:
        raise Conflict(_CONFLICT_MESSAGES.get(existing.status, "Connection request already exists"))

    if db.get(User, recipient_id) is None:
        raise NotFound("User not found")

    conn = Connection(
        requester_id=requester_id,
        recipient_id=recipient_id,
        status=ConnectionStatus.pending.value,
    )
    db.add(conn)
    db.commit()
    db.refresh(conn)

    logger.info(f"Connection requested | id={conn.id} requester={requester_id} recipient={recipient_id}")
    return conn


def respond_to_connection(db: Session, connection_id: int, user_id: str, action: Optional[str]) -> Connection:
    if action not in {a.value for a in ConnectionAction}:
        raise InvalidArgument('Invalid action. Use "accept" or "reject"')

    # only the invited party can resolve, and only once
    conn = (
        db.query(Connection)
        .filter(
            Connection.id == connection_id,
            Connection.recipient_id == user_id,
            Connection.status == ConnectionStatus.pending.value,
        )
        .first()
    )
    if not conn:
        raise NotFound("Connection request not found or already processed")

    if action == ConnectionAction.accept.value:
        conn.status = ConnectionStatus.accepted.value
    else:
        conn.status = ConnectionStatus.rejected.value
    conn.updated_at = utcnow()

    db.commit()
    db.refresh(conn)

    logger.info(f"Connection {conn.status} | id={conn.id} by={user_id}")
    return conn


def remove_connection(db: Session, connection_id: int, user_id: str) -> None:
    conn = (
        db.query(Connection)
        .filter(Connection.id == connection_id, _involving(user_id))
        .first()
    )
    if not conn:
        raise NotFound("Connection not found or you do not have permission to remove it")

    status_was = conn.status
    db.delete(conn)
    db.commit()

    logger.info(f"Connection removed | id={connection_id} by={user_id} status_was={status_was}")


# ---------- READS ----------

def _counterpart_ids(db: Session, user_id: str) -> set[str]:
    rows = (
        db.query(Connection.requester_id, Connection.recipient_id)
        .filter(_involving(user_id))
        .all()
    )
    ids: set[str] = set()
    for requester_id, recipient_id in rows:
        ids.add(recipient_id if requester_id == user_id else requester_id)
    return ids


def discover_users(db: Session, user_id: str) -> List[User]:
    excluded = _counterpart_ids(db, user_id)
    excluded.add(user_id)

    users = (
        db.query(User)
        .filter(User.id.notin_(excluded))
        .order_by(User.name.asc(), User.id.asc())
        .all()
    )
    logger.debug(f"Discover | user={user_id} excluded={len(excluded)} found={len(users)}")
    return users


def received_requests(db: Session, user_id: str) -> List[Connection]:
    return (
        db.query(Connection)
        .filter(
            Connection.recipient_id == user_id,
            Connection.status == ConnectionStatus.pending.value,
        )
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .all()
    )


def sent_requests(db: Session, user_id: str) -> List[Connection]:
    return (
        db.query(Connection)
        .filter(
            Connection.requester_id == user_id,
            Connection.status == ConnectionStatus.pending.value,
        )
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .all()
    )


def my_connections(db: Session, user_id: str) -> List[dict]:
    conns = (
        db.query(Connection)
        .filter(
            _involving(user_id),
            Connection.status == ConnectionStatus.accepted.value,
        )
        .order_by(Connection.updated_at.desc(), Connection.id.desc())
        .all()
    )

    out = []
    for conn in conns:
        other = conn.recipient if conn.requester_id == user_id else conn.requester
        if other is None:
            continue
        out.append(
            {
                "user": other,
                "connection_id": conn.id,
                "connected_at": conn.updated_at,
                "connection_status": conn.status,
            }
        )
    return out


def connection_status(db: Session, user_id: str, other_user_id: str) -> PairStatus:
    if user_id == other_user_id:
        raise InvalidArgument("Cannot check connection status with yourself")

    conn = find_between(db, user_id, other_user_id)
    if not conn:
        return PairStatus(
            status="none",
            connection_id=None,
            is_sent_by_me=False,
            can_send_request=True,
        )

    return PairStatus(
        status=conn.status,
        connection_id=conn.id,
        is_sent_by_me=conn.requester_id == user_id,
        can_send_request=False,
    )


def connection_stats(db: Session, user_id: str) -> ConnectionStats:
    total_connections = (
        db.query(func.count(Connection.id))
        .filter(_involving(user_id), Connection.status == ConnectionStatus.accepted.value)
        .scalar()
    )
    pending_received = (
        db.query(func.count(Connection.id))
        .filter(Connection.recipient_id == user_id, Connection.status == ConnectionStatus.pending.value)
        .scalar()
    )
    pending_sent = (
        db.query(func.count(Connection.id))
        .filter(Connection.requester_id == user_id, Connection.status == ConnectionStatus.pending.value)
        .scalar()
    )
    total_users = db.query(func.count(User.id)).filter(User.id != user_id).scalar()

    # every counterpart (rejected included) is out of the discover pool
    available = max(0, total_users - len(_counterpart_ids(db, user_id)))

    return ConnectionStats(
        total_connections=int(total_connections or 0),
        pending_received=int(pending_received or 0),
        pending_sent=int(pending_sent or 0),
        available_users=available,
    )
