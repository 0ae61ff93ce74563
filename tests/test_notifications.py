import json
from datetime import datetime, timedelta

import pytest

from conftest import FakeSocket
from models import db
from models.notification import DeviceToken, Notification
from services import notifications as ns
from services import slot_requests as workflow
from utils.errors import Forbidden, NotFound, ValidationError


def _notify(user, title="Hi", notification_type="general", **kwargs):
    n = ns.queue_notification(user.id, notification_type, title, f"{title} message", **kwargs)
    db.session.commit()
    return n


def test_queue_rejects_unknown_type(player):
    with pytest.raises(ValidationError):
        ns.queue_notification(player.id, "birthday", "Hi", "Hello")
    with pytest.raises(ValidationError):
        ns.queue_notification(player.id, "general", "Hi", "Hello", priority="critical")


def test_queue_sets_default_expiry(app, player):
    n = _notify(player)
    ttl = timedelta(days=app.config["NOTIFICATION_TTL_DAYS"])
    assert abs((n.expires_at - n.created_at) - ttl) < timedelta(seconds=5)


def test_dispatch_reaches_socket_and_devices(registry, push_sender, player):
    ws = FakeSocket()
    registry.open(player.id, ws)
    ns.register_device_token(player.id, "tok-android-1", "android")

    n = _notify(player, title="Booked")
    ns.dispatch([n])

    frame = json.loads(ws.sent[-1])
    assert frame["type"] == "new_notification"
    assert frame["notification"]["id"] == n.id
    assert [token for token, _ in push_sender.sent] == ["tok-android-1"]


def test_dispatch_without_socket_still_pushes(push_sender, player):
    ns.register_device_token(player.id, "tok-web", "web")
    ns.dispatch([_notify(player)])
    assert len(push_sender.sent) == 1


def test_invalid_device_token_is_deactivated(push_sender, player):
    push_sender.invalid_tokens.add("stale-token")
    ns.register_device_token(player.id, "stale-token", "ios")
    ns.register_device_token(player.id, "good-token", "ios")

    ns.dispatch([_notify(player)])

    db.session.expire_all()
    assert DeviceToken.query.filter_by(token="stale-token").one().is_active is False
    assert DeviceToken.query.filter_by(token="good-token").one().is_active is True
    assert [token for token, _ in push_sender.sent] == ["good-token"]


def test_booking_request_is_pushed_to_supplier(registry, push_sender, slot, player, supplier):
    ws = FakeSocket()
    registry.open(supplier.id, ws)

    workflow.request_slot(slot.id, player.id)

    frame = json.loads(ws.sent[-1])
    assert frame["notification"]["type"] == "new_request"


def test_list_and_unread_count(player, other_player):
    first = _notify(player, "One")
    _notify(player, "Two", notification_type="booking_confirmation")
    _notify(other_player, "Elsewhere")

    assert ns.unread_count(player.id) == 2
    ns.mark_as_read(first.id, player.id)
    assert ns.unread_count(player.id) == 1

    unread = ns.list_notifications(player.id, unread_only=True)
    assert [n["title"] for n in unread["notifications"]] == ["Two"]
    by_type = ns.list_notifications(player.id, notification_type="general")
    assert by_type["pagination"]["total"] == 1


def test_mark_all_as_read(player):
    _notify(player, "One")
    _notify(player, "Two")
    assert ns.mark_all_as_read(player.id) == 2
    assert ns.unread_count(player.id) == 0


def test_only_recipient_can_touch_notification(player, other_player):
    n = _notify(player)
    with pytest.raises(Forbidden):
        ns.mark_as_read(n.id, other_player.id)
    with pytest.raises(Forbidden):
        ns.delete_notification(n.id, other_player.id)

    ns.delete_notification(n.id, player.id)
    with pytest.raises(NotFound):
        ns.mark_as_read(n.id, player.id)


def test_cleanup_expired(player):
    _notify(player, "Old", expires_at=datetime.utcnow() - timedelta(days=1))
    _notify(player, "Current")

    assert ns.cleanup_expired_notifications() == 1
    assert [n.title for n in Notification.query.all()] == ["Current"]


def test_device_token_moves_to_latest_user(player, other_player):
    ns.register_device_token(player.id, "shared-tablet", "android")
    device = ns.register_device_token(other_player.id, "shared-tablet", "android")

    assert device.user_id == other_player.id
    assert DeviceToken.query.count() == 1
    assert ns.unregister_device_token(player.id, "shared-tablet") is False
    assert ns.unregister_device_token(other_player.id, "shared-tablet") is True

    with pytest.raises(ValidationError):
        ns.register_device_token(player.id, "x", "blackberry")
