import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from .hub import get_hub

router = APIRouter(tags=["notifications"])


async def _reader(websocket: WebSocket) -> None:
    hub = get_hub()
    while True:
        message = await websocket.receive_json()
        if not isinstance(message, dict):
            continue

        if message.get("event") == "joinUserRoom" and message.get("userId"):
            user_id = str(message["userId"])
            hub.join(websocket, user_id)
            await websocket.send_json({"event": "joined", "data": {"userId": user_id}})
            hub.broadcast("userOnline", {"userId": user_id}, exclude=websocket)
        else:
            logger.debug(f"Ignoring socket event: {message.get('event')}")


async def _writer(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    hub = get_hub()
    await websocket.accept()
    client = hub.attach(websocket)
    logger.info("New socket client connected")

    reader = asyncio.create_task(_reader(websocket))
    writer = asyncio.create_task(_writer(websocket, client.queue))
    try:
        done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"Socket task failed: {exc!r}")
    finally:
        reader.cancel()
        writer.cancel()
        hub.detach(websocket)
        logger.info("Socket client disconnected")
