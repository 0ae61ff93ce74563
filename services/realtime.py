"""
Live WebSocket connections per user.

The registry is process-local and never a source of truth: notifications are
persisted before they are pushed here, so a lost connection only delays
delivery. It is stored in ``app.extensions["connection_registry"]`` so a
shared implementation (pub/sub backplane) can replace it without touching
call sites.
"""
import json
import logging
import threading
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionRegistry:
    """Interface for delivering payloads to connected users."""

    def open(self, user_id: int, ws) -> None:
        raise NotImplementedError

    def close(self, user_id: int, ws=None, reason: str = "Connection closed") -> bool:
        raise NotImplementedError

    def heartbeat(self, user_id: int) -> bool:
        raise NotImplementedError

    def send(self, user_id: int, payload: dict) -> bool:
        raise NotImplementedError

    def broadcast(self, payload: dict) -> dict:
        raise NotImplementedError

    def sweep(self, now: float = None) -> int:
        raise NotImplementedError

    def is_connected(self, user_id: int) -> bool:
        raise NotImplementedError

    def connected_count(self) -> int:
        raise NotImplementedError


class _Client:
    __slots__ = ("ws", "connected_at", "last_heartbeat")

    def __init__(self, ws, now: float):
        self.ws = ws
        self.connected_at = now
        self.last_heartbeat = now


class InMemoryConnectionRegistry(ConnectionRegistry):
    """One connection per user, held in this process only."""

    def __init__(self, heartbeat_timeout: float = 300, clock=time.time):
        self.heartbeat_timeout = heartbeat_timeout
        self._clock = clock
        self._clients = {}
        self._lock = threading.Lock()

    def open(self, user_id: int, ws) -> None:
        with self._lock:
            previous = self._clients.get(user_id)
            self._clients[user_id] = _Client(ws, self._clock())
        if previous is not None and previous.ws is not ws:
            self._safe_close(previous.ws, "Replaced by a newer connection")
        logger.info("WebSocket connection opened for user %s", user_id)

    def close(self, user_id: int, ws=None, reason: str = "Connection closed") -> bool:
        with self._lock:
            client = self._clients.get(user_id)
            # a handler exiting after being replaced must not drop the new socket
            if client is None or (ws is not None and client.ws is not ws):
                return False
            del self._clients[user_id]
        self._safe_close(client.ws, reason)
        logger.info("WebSocket connection closed for user %s", user_id)
        return True

    def heartbeat(self, user_id: int) -> bool:
        with self._lock:
            client = self._clients.get(user_id)
            if client is None:
                return False
            client.last_heartbeat = self._clock()
        return self.send(user_id, {"type": "heartbeat_ack"})

    def send(self, user_id: int, payload: dict) -> bool:
        with self._lock:
            client = self._clients.get(user_id)
        if client is None:
            logger.debug("User %s not connected via WebSocket", user_id)
            return False

        message = dict(payload)
        message.setdefault("timestamp", _utc_iso())
        try:
            client.ws.send(json.dumps(message, default=str))
            return True
        except Exception:
            logger.exception("WebSocket send failed for user %s", user_id)
            self.close(user_id, client.ws, reason="Send failed")
            return False

    def broadcast(self, payload: dict) -> dict:
        with self._lock:
            user_ids = list(self._clients)
        successful = sum(1 for user_id in user_ids if self.send(user_id, payload))
        return {
            "total_connected": self.connected_count(),
            "successful": successful,
            "failed": len(user_ids) - successful,
        }

    def sweep(self, now: float = None) -> int:
        """Close and forget connections without a heartbeat inside the timeout."""
        now = self._clock() if now is None else now
        with self._lock:
            stale = [
                (user_id, client)
                for user_id, client in self._clients.items()
                if now - client.last_heartbeat > self.heartbeat_timeout
            ]
            for user_id, _ in stale:
                del self._clients[user_id]

        for user_id, client in stale:
            self._safe_close(client.ws, "Connection timeout")
            logger.info("Cleaned up stale connection for user %s", user_id)
        return len(stale)

    def is_connected(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._clients

    def connected_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def connection_info(self) -> list:
        with self._lock:
            items = list(self._clients.items())
        return [
            {
                "user_id": user_id,
                "connected_at": datetime.fromtimestamp(c.connected_at, timezone.utc).isoformat(),
                "last_heartbeat": datetime.fromtimestamp(c.last_heartbeat, timezone.utc).isoformat(),
            }
            for user_id, c in items
        ]

    @staticmethod
    def _safe_close(ws, reason: str):
        try:
            ws.close(reason=1000, message=reason)
        except Exception:
            logger.debug("Ignoring error while closing socket: %s", reason, exc_info=True)


def start_sweeper(registry: ConnectionRegistry, interval: float) -> threading.Thread:
    """Run registry.sweep() every `interval` seconds on a daemon thread."""

    def _loop():
        while True:
            time.sleep(interval)
            try:
                registry.sweep()
            except Exception:
                logger.exception("Connection sweep failed")

    thread = threading.Thread(target=_loop, name="ws-sweeper", daemon=True)
    thread.start()
    return thread
