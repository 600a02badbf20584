"""Real-time push of named events to a tenant's dashboard sessions."""

import asyncio
import threading
from collections import defaultdict
from typing import Any, Dict, Optional, Set

import structlog
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = structlog.get_logger(__name__)


def room_name(business_id: int) -> str:
    return f"business:{business_id}"


class EventBroadcaster:
    def emit(self, business_id: int, event: str, data: Any) -> None:
        raise NotImplementedError


class RoomBroadcaster(EventBroadcaster):
    """Fans events out to every WebSocket joined to a tenant room.

    ``emit`` may be called from worker threads (sync endpoints, the side-effect
    consumer); sends are always scheduled on the loop bound at startup. No
    delivery guarantee, no retry: a socket that fails a send leaves the room.
    """

    def __init__(self):
        self._rooms: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def join(self, business_id: int, ws: WebSocket) -> None:
        with self._lock:
            self._rooms[business_id].add(ws)
        logger.debug("Session joined room", room=room_name(business_id))

    def leave(self, business_id: int, ws: WebSocket) -> None:
        with self._lock:
            sessions = self._rooms.get(business_id)
            if sessions is not None:
                sessions.discard(ws)
                if not sessions:
                    del self._rooms[business_id]

    def session_count(self, business_id: int) -> int:
        with self._lock:
            return len(self._rooms.get(business_id, ()))

    def emit(self, business_id: int, event: str, data: Any) -> None:
        if self._loop is None:
            return
        with self._lock:
            sessions = list(self._rooms.get(business_id, ()))
        if not sessions:
            return

        message = {"event": event, "data": jsonable_encoder(data)}
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        for ws in sessions:
            coro = self._send(business_id, ws, message)
            if current is self._loop:
                task = self._loop.create_task(coro)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            else:
                asyncio.run_coroutine_threadsafe(coro, self._loop)

    async def _send(self, business_id: int, ws: WebSocket, message: dict) -> None:
        try:
            await ws.send_json(message)
        except Exception:
            self.leave(business_id, ws)
            logger.warning("Dropping dead session", room=room_name(business_id), event_name=message["event"])
