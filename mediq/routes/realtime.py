"""
Realtime sync socket

Clients connect to /ws/sync?token=<bearer token> and receive JSON messages
{"event": ..., "room": ..., "data": ...} for the rooms their role and id map to.
Sending "ping" gets a "pong" event back; nothing else is read from the client.
"""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..auth import resolve_user
from ..database import get_db
from ..realtime.hub import HubConnection, encode_message, get_hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


async def pump_messages(websocket: WebSocket, connection: HubConnection) -> None:
    try:
        while True:
            message = await connection.queue.get()
            await websocket.send_text(message)
    except Exception as e:
        logger.warning(f"⚠️ Realtime send to {connection.role}-{connection.user_id} failed: {e}")


@router.websocket("/ws/sync")
async def sync_socket(websocket: WebSocket, token: str = Query(""), db: Session = Depends(get_db)):
    try:
        user = resolve_user(db, token)
        user_id, role = user.id, user.role
    except HTTPException as e:
        logger.warning(f"⚠️ Realtime connection rejected: {e.detail}")
        await websocket.close(code=4401)
        return
    finally:
        db.close()

    await websocket.accept()
    hub = get_hub()
    connection = hub.register(user_id, role, asyncio.get_running_loop())
    connection.queue.put_nowait(encode_message("connected", {"userId": user_id, "rooms": sorted(connection.rooms)}))
    sender = asyncio.create_task(pump_messages(websocket, connection))
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                connection.queue.put_nowait(encode_message("pong", {}))
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        hub.unregister(connection)
