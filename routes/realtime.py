import json
import logging

from flask import current_app, g
from flask_sock import Sock

from services.notifications import mark_as_read
from utils.errors import ServiceError

logger = logging.getLogger(__name__)

sock = Sock()


def handle_client_message(registry, user_id: int, raw) -> None:
    """Apply one client frame: heartbeat or mark_read. Unknown frames are logged and dropped."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Dropping malformed WebSocket frame from user %s", user_id)
        return
    if not isinstance(message, dict):
        return

    kind = message.get("type")
    if kind == "heartbeat":
        registry.heartbeat(user_id)
    elif kind == "mark_read":
        notification_id = message.get("notificationId")
        try:
            mark_as_read(int(notification_id), user_id)
        except (TypeError, ValueError):
            logger.warning("mark_read without a valid notificationId from user %s", user_id)
            return
        except ServiceError as err:
            registry.send(user_id, {"type": "error", "message": err.message, "notificationId": notification_id})
            return
        registry.send(user_id, {"type": "notification_read_ack", "notificationId": int(notification_id)})
    else:
        logger.debug("Unknown WebSocket message type %r from user %s", kind, user_id)


@sock.route("/ws/notifications")
def notifications_socket(ws):
    user = getattr(g, "user", None)
    if user is None:
        ws.close(reason=1008, message="Authentication required")
        return

    registry = current_app.extensions["connection_registry"]
    registry.open(user.id, ws)
    registry.send(user.id, {
        "type": "connection_established",
        "message": "Connected to notification service",
        "userId": user.id,
    })
    try:
        while True:
            raw = ws.receive()
            if raw is None:
                break
            handle_client_message(registry, user.id, raw)
    finally:
        registry.close(user.id, ws)
