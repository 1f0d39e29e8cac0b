"""Realtime fan-out of trade events to connected WebSocket clients.

Each client owns a bounded queue drained by its own sender task (see
``api/realtime.py``). ``broadcast`` never awaits: it serialises the envelope
once and drops the message for any client whose queue is full, so a slow
socket cannot stall the monitor or a request handler.
"""

import asyncio
import json
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict[str, Any]], None]


class SocketHub:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._clients: set[asyncio.Queue] = set()
        self._listeners: list[Listener] = []

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def connect(self) -> asyncio.Queue:
        """Register a new client and return the queue its sender should drain."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._clients.add(queue)
        logger.info(f"Realtime client connected ({len(self._clients)} total)")
        return queue

    def disconnect(self, queue: asyncio.Queue):
        if queue in self._clients:
            self._clients.discard(queue)
            logger.info(f"Realtime client disconnected ({len(self._clients)} total)")

    def add_listener(self, listener: Listener):
        """Register an in-process subscriber, called synchronously on every broadcast."""
        self._listeners.append(listener)

    def broadcast(self, event_type: str, payload: Any):
        message = json.dumps({"type": event_type, "payload": payload})

        for queue in list(self._clients):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Realtime client queue full, dropping {event_type}")

        for listener in list(self._listeners):
            try:
                listener(event_type, payload)
            except Exception as e:
                logger.error(f"Realtime listener failed on {event_type}: {e}", exc_info=True)
