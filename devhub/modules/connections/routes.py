from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from devhub.core.auth import get_current_user_id
from devhub.core.db import get_db
from devhub.core.errors import ok
from devhub.schemas.connections import (
    ConnectedUserOut,
    ConnectionOut,
    ConnectionRequestIn,
    ConnectionRespondIn,
    ConnectionStatsOut,
    ConnectionStatusOut,
    ReceivedRequestOut,
    SentRequestOut,
)
from devhub.schemas.users import UserPublic
from .service import (
    connection_stats,
    connection_status,
    discover_users,
    my_connections,
    received_requests,
    remove_connection,
    request_connection,
    respond_to_connection,
    sent_requests,
)

router = APIRouter(prefix="/api/connections", tags=["connections"])


@router.get("/discover")
def connections_discover(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    users = discover_users(db, user_id)
    return ok([UserPublic.model_validate(u).wire() for u in users])


@router.post("/request", status_code=201)
def connections_request(
    payload: ConnectionRequestIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conn = request_connection(db, user_id, payload.recipient_id)
    return JSONResponse(
        status_code=201,
        content=ok(
            ConnectionOut.model_validate(conn).wire(),
            message="Connection request sent successfully",
        ),
    )


@router.get("/requests/received")
def connections_received(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conns = received_requests(db, user_id)
    return ok([ReceivedRequestOut.model_validate(c).wire() for c in conns])


@router.get("/requests/sent")
def connections_sent(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conns = sent_requests(db, user_id)
    return ok([SentRequestOut.model_validate(c).wire() for c in conns])


@router.put("/respond/{connection_id}")
def connections_respond(
    connection_id: int,
    payload: ConnectionRespondIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conn = respond_to_connection(db, connection_id, user_id, payload.action)
    return ok(
        ConnectionOut.model_validate(conn).wire(),
        message=f"Connection request {payload.action}ed successfully",
    )


@router.get("/my-connections")
def connections_mine(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rows = my_connections(db, user_id)
    return ok(
        [
            ConnectedUserOut(
                **UserPublic.model_validate(r["user"]).model_dump(),
                connection_id=r["connection_id"],
                connected_at=r["connected_at"],
                connection_status=r["connection_status"],
            ).wire()
            for r in rows
        ]
    )


@router.delete("/remove/{connection_id}")
def connections_remove(
    connection_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    remove_connection(db, connection_id, user_id)
    return ok(message="Connection removed successfully")


@router.get("/status/{other_user_id}")
def connections_status(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    status = connection_status(db, user_id, other_user_id)
    return ok(ConnectionStatusOut.model_validate(status).wire())


@router.get("/stats")
def connections_stats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    stats = connection_stats(db, user_id)
    return ok(ConnectionStatsOut.model_validate(stats).wire())
