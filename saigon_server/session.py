"""
Agent sessions: one SessionHandler per upgraded connection.

A session loops reading snapshot messages, checking the shared secret and
appending each snapshot to the store. Any failure ends that session only;
agents are expected to reconnect. Nothing is ever sent back to the agent, so
it cannot tell whether a snapshot was stored.
"""

import asyncio
import enum
import logging
import secrets
import sqlite3
import threading
from typing import Optional

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from .database import insert_snapshot
from .models import SnapshotIn

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    AWAITING_MESSAGE = "awaiting_message"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    CLOSED = "closed"


class SessionLimiter:
    """
    Caps the number of concurrent agent sessions.
    max_sessions=None (or anything below 1) leaves it unbounded: every connection gets a session.
    """

    def __init__(self, max_sessions: Optional[int] = None):
        if max_sessions is not None and max_sessions <= 0:
            max_sessions = None
        self.max_sessions = max_sessions
        self._slots = threading.BoundedSemaphore(max_sessions) if max_sessions else None

    @property
    def bounded(self) -> bool:
        return self._slots is not None

    def try_acquire(self) -> bool:
        if self._slots is None:
            return True
        return self._slots.acquire(blocking=False)

    def release(self):
        if self._slots is not None:
            self._slots.release()


class SessionHandler:
    def __init__(self, websocket: WebSocket, auth_token: Optional[str], database_url: str, idle_timeout: float = 600):
        self.websocket = websocket
        self.auth_token = auth_token
        self.database_url = database_url
        self.idle_timeout = idle_timeout
        self.state = SessionState.AWAITING_MESSAGE
        client = websocket.client
        self.peer = f"{client.host}:{client.port}" if client else "unknown"

    async def run(self):
        try:
            while True:
                self.state = SessionState.AWAITING_MESSAGE
                payload = await self._read_payload()
                if payload is None:
                    return

                self.state = SessionState.VALIDATING
                try:
                    message = SnapshotIn.model_validate_json(payload)
                except ValidationError as e:
                    logger.warning("Failed to read message from %s: %s", self.peer, e)
                    return

                if not self.is_authorized(message.auth_token):
                    logger.warning("Invalid auth token from %s (hostname=%r)", self.peer, message.hostname)
                    return

                self.state = SessionState.PERSISTING
                try:
                    stored = await run_in_threadpool(insert_snapshot, message.metrics(), self.database_url)
                except sqlite3.Error as e:
                    logger.error("Failed to insert data into database for %s: %s", message.hostname, e)
                    return

                logger.info("OK: %s %s", stored["timestamp"], message.hostname)
        finally:
            await self.close()

    async def _read_payload(self):
        """Next message body, or None when the session should end."""
        try:
            message = await asyncio.wait_for(self.websocket.receive(), timeout=self.idle_timeout)
        except asyncio.TimeoutError:
            logger.info("No data from %s in %ss, closing session", self.peer, self.idle_timeout)
            return None

        if message["type"] == "websocket.disconnect":
            code = message.get("code", 1000)
            if code not in (1000, 1001):
                logger.info("Client %s disconnected unexpectedly (code %s)", self.peer, code)
            else:
                logger.info("Client %s disconnected", self.peer)
            return None

        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    def is_authorized(self, token: str) -> bool:
        if not self.auth_token:
            return False
        return secrets.compare_digest(token.encode("utf-8"), self.auth_token.encode("utf-8"))

    async def close(self):
        self.state = SessionState.CLOSED
        ws = self.websocket
        if ws.application_state != WebSocketState.CONNECTED or ws.client_state != WebSocketState.CONNECTED:
            return
        try:
            await ws.close()
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            logger.debug("Close for %s failed, connection already gone: %s", self.peer, e)
