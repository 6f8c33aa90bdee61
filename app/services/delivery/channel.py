"""
Delivery channel: pushes events back to live sessions.

A session is any object exposing ``async send_json(data)`` (a FastAPI
WebSocket in production). Registration is process-local.
"""

import asyncio
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol

from app.core.config import settings
from app.core.logger import get_logger

logger = get_logger(__name__)

CLAIMS_VERIFIED = "claims-verified"
CLAIM_PROCESSING = "claim-processing"
CLAIM_RESULT = "claim-result"
ERROR = "error"
LIVE_UPDATE = "live-update"


class SessionSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


class SessionHub:
    def __init__(self, context_size: Optional[int] = None) -> None:
        self._sockets: Dict[str, SessionSocket] = {}
        self._context: Dict[str, Deque[str]] = {}
        self.context_size = context_size if context_size is not None else settings.SESSION_CONTEXT_SIZE

    def register(self, session_id: str, socket: SessionSocket) -> None:
        self._sockets[session_id] = socket
        self._context.setdefault(session_id, deque(maxlen=self.context_size))
        logger.info(f"[SessionHub] Session connected: {session_id} ({len(self._sockets)} active)")

    def unregister(self, session_id: str) -> None:
        self._sockets.pop(session_id, None)
        self._context.pop(session_id, None)
        logger.info(f"[SessionHub] Session disconnected: {session_id} ({len(self._sockets)} active)")

    def is_connected(self, session_id: str) -> bool:
        return session_id in self._sockets

    @property
    def active_sessions(self) -> int:
        return len(self._sockets)

    def remember(self, session_id: str, transcript: str) -> None:
        """Keep the last few finalized transcripts as context for later claims."""
        window = self._context.setdefault(session_id, deque(maxlen=self.context_size))
        window.append(transcript)

    def context(self, session_id: str) -> List[str]:
        return list(self._context.get(session_id, ()))

    async def emit(self, session_id: str, event: str, payload: Dict[str, Any]) -> bool:
        socket = self._sockets.get(session_id)
        if socket is None:
            logger.warning(f"[SessionHub] Dropping {event} for disconnected session {session_id}")
            return False
        try:
            await socket.send_json({"type": event, "data": _json_safe(payload)})
            return True
        except Exception as e:
            logger.warning(f"[SessionHub] Failed to send {event} to {session_id}: {e}")
            self.unregister(session_id)
            return False

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> int:
        sessions = list(self._sockets)
        if not sessions:
            return 0
        sent = await asyncio.gather(*(self.emit(session_id, event, payload) for session_id in sessions))
        return sum(1 for ok in sent if ok)

    async def deliver_error(self, session_id: str, message: str) -> bool:
        return await self.emit(session_id, ERROR, {"message": message})
