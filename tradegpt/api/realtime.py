"""Realtime WebSocket channel for trade events."""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tradegpt.services.notifier import SocketHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

GREETING = json.dumps({"type": "connection", "payload": "connected"})


async def _pump(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        message = await queue.get()
        await websocket.send_text(message)


@router.websocket("/ws")
async def trade_events(websocket: WebSocket):
    """Push every trade event to the client; inbound messages are ignored.

    Client:
        ws = new WebSocket('ws://localhost:8000/ws')
        ws.onmessage = (event) => console.log(JSON.parse(event.data))
    """
    hub: SocketHub = websocket.app.state.hub
    await websocket.accept()
    queue = hub.connect()
    sender = None
    try:
        await websocket.send_text(GREETING)
        sender = asyncio.create_task(_pump(websocket, queue))
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(queue)
        if sender is not None:
            sender.cancel()
