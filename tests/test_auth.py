from datetime import datetime, timedelta

import pytest

from models import db
from models.session import Session
from models.user import Role, ROLE_NAMES
from security.password import hash_password, validate_password, verify_password
from utils.errors import ValidationError
from utils.seed import seed_roles


def test_roles_seeded_once(app):
    assert {r.name for r in Role.query.all()} == set(ROLE_NAMES)
    assert seed_roles() == 0


def test_password_round_trip(app):
    hashed = hash_password("s3cret-enough")
    assert verify_password("s3cret-enough", hashed)
    assert not verify_password("wrong-guess", hashed)
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_password_rules(app):
    with pytest.raises(ValidationError):
        validate_password("short")
    with pytest.raises(ValidationError):
        validate_password("x" * 80)
    assert validate_password("long-enough") == "long-enough"


def test_session_liveness():
    now = datetime(2026, 5, 1, 12, 0)
    sess = Session(created_at=now - timedelta(hours=1), last_seen_at=now - timedelta(minutes=5),
                   expires_at=now + timedelta(hours=1), revoked=False)

    assert sess.is_live(now, idle_seconds=600)
    assert not sess.is_live(now, idle_seconds=120)
    assert not sess.is_live(now + timedelta(hours=2), idle_seconds=10_000)
    sess.revoked = True
    assert not sess.is_live(now, idle_seconds=600)


def test_logout_revokes_session(login_as, player):
    c, headers = login_as(player)
    assert c.get("/auth/me").status_code == 200
    assert c.post("/auth/logout", headers=headers).status_code == 200
    assert c.get("/auth/me").status_code == 401


def test_new_login_ends_previous_session(app, login_as, player):
    first, _ = login_as(player)
    second, _ = login_as(player)

    assert first.get("/auth/me").status_code == 401
    assert second.get("/auth/me").status_code == 200


def test_security_headers(client):
    resp = client.get("/health")
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_cli_commands(app, player):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["make-admin", player.email])
    assert "promoted to ADMIN" in result.output
    db.session.expire_all()
    assert player.has_role("ADMIN")

    assert "0 promotion(s) expired" in runner.invoke(args=["expire-promotions"]).output
    assert "0 notification(s) removed" in runner.invoke(args=["cleanup-notifications"]).output
    assert "User not found" in runner.invoke(args=["make-admin", "ghost@example.com"]).output
