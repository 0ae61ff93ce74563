from flask import Blueprint, request, g, current_app

from security.rbac import require_roles
from services import notifications as notification_service
from services.notifications import notification_payload
from utils.auth_context import login_required
from utils.responses import success_response

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notifications_bp.get("")
@login_required
def list_notifications():
    result = notification_service.list_notifications(
        g.user.id,
        unread_only=request.args.get("unread", "").lower() in ("1", "true", "yes"),
        notification_type=request.args.get("type"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    return success_response("Notifications fetched", result)


@notifications_bp.get("/unread-count")
@login_required
def unread_count():
    return success_response("Unread count", {"count": notification_service.unread_count(g.user.id)})


@notifications_bp.post("/<int:notification_id>/read")
@login_required
def mark_read(notification_id: int):
    n = notification_service.mark_as_read(notification_id, g.user.id)
    return success_response("Notification marked as read", notification_payload(n))


@notifications_bp.post("/read-all")
@login_required
def mark_all_read():
    updated = notification_service.mark_all_as_read(g.user.id)
    return success_response(f"{updated} notifications marked as read", {"updated": updated})


@notifications_bp.delete("/<int:notification_id>")
@login_required
def delete(notification_id: int):
    notification_service.delete_notification(notification_id, g.user.id)
    return success_response("Notification deleted")


@notifications_bp.post("/device-tokens")
@login_required
def register_device():
    data = request.get_json(silent=True) or {}
    device = notification_service.register_device_token(
        g.user.id,
        data.get("token"),
        (data.get("device_type") or "").strip().lower(),
    )
    return success_response("Device registered", {
        "id": device.id,
        "device_type": device.device_type,
        "is_active": device.is_active,
    }, 201)


@notifications_bp.delete("/device-tokens")
@login_required
def unregister_device():
    data = request.get_json(silent=True) or {}
    removed = notification_service.unregister_device_token(g.user.id, data.get("token"))
    return success_response("Device unregistered" if removed else "Device not found", {"removed": removed})


@notifications_bp.get("/connections")
@require_roles("ADMIN")
def live_connections():
    registry = current_app.extensions["connection_registry"]
    return success_response("Live connections", {
        "count": registry.connected_count(),
        "connections": registry.connection_info(),
    })
