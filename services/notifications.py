import logging
from datetime import datetime, timedelta

from flask import current_app

from models import db
from models.notification import Notification, DeviceToken, NOTIFICATION_TYPES, NOTIFICATION_PRIORITIES
from services.push import InvalidDeviceToken
from utils.errors import NotFound, Forbidden, ValidationError

logger = logging.getLogger(__name__)

DEVICE_TYPES = ("android", "ios", "web")


def queue_notification(recipient_id: int, notification_type: str, title: str, message: str, *,
                       recipient_type: str = "user", data: dict = None, priority: str = "medium",
                       action_url: str = None, expires_at: datetime = None) -> Notification:
    """Add a notification to the current transaction. Delivery happens in dispatch() after commit."""
    if notification_type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {notification_type}")
    if priority not in NOTIFICATION_PRIORITIES:
        raise ValidationError(f"Unknown notification priority: {priority}")

    if expires_at is None:
        ttl_days = current_app.config.get("NOTIFICATION_TTL_DAYS", 30)
        expires_at = datetime.utcnow() + timedelta(days=ttl_days)

    notification = Notification(
        recipient_id=recipient_id,
        recipient_type=recipient_type,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
        priority=priority,
        action_url=action_url,
        expires_at=expires_at,
    )
    db.session.add(notification)
    return notification


def notification_payload(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "data": n.data or {},
        "priority": n.priority,
        "is_read": n.is_read,
        "action_url": n.action_url,
        "created_at": n.created_at.isoformat() if n.created_at else None,
        "expires_at": n.expires_at.isoformat() if n.expires_at else None,
    }


def dispatch(notifications) -> None:
    """
    Best-effort fan-out of already committed notifications: live socket first,
    then every active device token of the recipient. Never raises.
    """
    registry = current_app.extensions.get("connection_registry")
    push_sender = current_app.extensions.get("push_sender")

    for n in notifications:
        payload = notification_payload(n)
        if registry is not None:
            registry.send(n.recipient_id, {"type": "new_notification", "notification": payload})
        if push_sender is not None:
            _push_to_devices(push_sender, n.recipient_id, payload)


def _push_to_devices(push_sender, user_id: int, payload: dict) -> None:
    tokens = DeviceToken.query.filter_by(user_id=user_id, is_active=True).all()
    if not tokens:
        return

    changed = False
    for device in tokens:
        try:
            if push_sender.send(device.token, payload):
                device.last_used_at = datetime.utcnow()
                changed = True
        except InvalidDeviceToken:
            logger.warning("Deactivating invalid device token %s for user %s", device.id, user_id)
            device.is_active = False
            changed = True
        except Exception:
            logger.exception("Push delivery failed for device %s", device.id)

    if changed:
        db.session.commit()


def list_notifications(user_id: int, unread_only: bool = False, notification_type: str = None,
                       page: int = 1, limit: int = 20) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, 100))

    q = Notification.query.filter(Notification.recipient_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    if notification_type:
        q = q.filter(Notification.type == notification_type)

    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "notifications": [notification_payload(n) for n in rows],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": (total + limit - 1) // limit,
        },
    }


def unread_count(user_id: int) -> int:
    return Notification.query.filter_by(recipient_id=user_id, is_read=False).count()


def _get_owned(notification_id: int, user_id: int) -> Notification:
    n = db.session.get(Notification, notification_id)
    if not n:
        raise NotFound("Notification not found")
    if n.recipient_id != user_id:
        raise Forbidden("Not your notification")
    return n


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    n = _get_owned(notification_id, user_id)
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.utcnow()
        db.session.commit()
    return n


def mark_all_as_read(user_id: int) -> int:
    updated = (
        Notification.query
        .filter_by(recipient_id=user_id, is_read=False)
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def delete_notification(notification_id: int, user_id: int) -> None:
    n = _get_owned(notification_id, user_id)
    db.session.delete(n)
    db.session.commit()


def cleanup_expired_notifications(now: datetime = None) -> int:
    now = now or datetime.utcnow()
    deleted = (
        Notification.query
        .filter(Notification.expires_at.isnot(None), Notification.expires_at < now)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    logger.info("Removed %s expired notifications", deleted)
    return deleted


def register_device_token(user_id: int, token: str, device_type: str) -> DeviceToken:
    token = (token or "").strip()
    if not token:
        raise ValidationError("token is required")
    if device_type not in DEVICE_TYPES:
        raise ValidationError("device_type must be android, ios or web")

    device = DeviceToken.query.filter_by(token=token).first()
    if device is None:
        device = DeviceToken(token=token, user_id=user_id, device_type=device_type)
        db.session.add(device)
    else:
        # a token moves with whoever signed in last on the device
        device.user_id = user_id
        device.device_type = device_type
        device.is_active = True
    device.last_used_at = datetime.utcnow()
    db.session.commit()
    return device


def unregister_device_token(user_id: int, token: str) -> bool:
    device = DeviceToken.query.filter_by(token=(token or "").strip(), user_id=user_id).first()
    if device is None:
        return False
    device.is_active = False
    db.session.commit()
    return True
