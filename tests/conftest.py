from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.listing import Academy, Coach, Turf, Ground
from models.slot import Slot
from models.user import User, Role
from security.password import hash_password
from services.push import InvalidDeviceToken

PASSWORD = "correct-horse-42"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_TABLES = True
    BCRYPT_ROUNDS = 4
    CONNECTION_SWEEP_ENABLED = False
    CANCEL_CUTOFF_HOURS = 0
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    LOG_LEVEL = "WARNING"


class FakeSocket:
    """Stands in for a flask-sock connection; records frames and close calls."""

    def __init__(self, fail_on_send=False):
        self.sent = []
        self.closed = None
        self.fail_on_send = fail_on_send

    def send(self, data):
        if self.fail_on_send:
            raise ConnectionError("socket gone")
        self.sent.append(data)

    def close(self, reason=None, message=None):
        self.closed = (reason, message)


class RecordingPushSender:
    def __init__(self, invalid_tokens=()):
        self.sent = []
        self.invalid_tokens = set(invalid_tokens)

    def send(self, token, payload):
        if token in self.invalid_tokens:
            raise InvalidDeviceToken(token)
        self.sent.append((token, payload))
        return True


@pytest.fixture
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def push_sender(app):
    sender = RecordingPushSender()
    app.extensions["push_sender"] = sender
    return sender


@pytest.fixture
def registry(app):
    return app.extensions["connection_registry"]


def make_user(email, role="PLAYER"):
    user = User(email=email, password_hash=hash_password(PASSWORD))
    user.roles.append(Role.query.filter_by(name=role).first())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def player(app):
    return make_user("player@example.com")


@pytest.fixture
def other_player(app):
    return make_user("other@example.com")


@pytest.fixture
def supplier(app):
    return make_user("supplier@example.com", role="SUPPLIER")


@pytest.fixture
def other_supplier(app):
    return make_user("rival@example.com", role="SUPPLIER")


@pytest.fixture
def admin(app):
    return make_user("admin@example.com", role="ADMIN")


def make_listing(model, owner, name, city="Pune", **fields):
    listing = model(
        owner_user_id=owner.id,
        name=name,
        name_normalized=name.lower(),
        city=city,
        sports=fields.pop("sports", ["football"]),
        **fields,
    )
    db.session.add(listing)
    db.session.commit()
    return listing


@pytest.fixture
def turf(supplier):
    return make_listing(Turf, supplier, "Green Arena", price=1500, latitude=18.52, longitude=73.85)


@pytest.fixture
def ground(turf):
    ground = Ground(turf_id=turf.id, name="Pitch 1", sport="football")
    db.session.add(ground)
    db.session.commit()
    return ground


@pytest.fixture
def academy(supplier):
    return make_listing(Academy, supplier, "Kick Start Academy")


@pytest.fixture
def coach(supplier):
    return make_listing(Coach, supplier, "Coach Rao", experience_years=8)


def make_slot(resource, resource_type="ground", hours_ahead=48, status="AVAILABLE"):
    start = datetime.utcnow().replace(minute=0, second=0, microsecond=0) + timedelta(hours=hours_ahead)
    slot = Slot(
        resource_type=resource_type,
        resource_id=resource.id,
        start_time=start,
        end_time=start + timedelta(hours=1),
        price=1500,
        status=status,
    )
    db.session.add(slot)
    db.session.commit()
    return slot


@pytest.fixture
def slot(ground):
    return make_slot(ground)


def login(client, email, password=PASSWORD):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return {"X-CSRF-Token": client.get_cookie("csrf_token").value}


@pytest.fixture
def login_as(app):
    """Return a fresh logged-in test client and its CSRF header for the given user."""

    def _login(user):
        c = app.test_client()
        headers = login(c, user.email)
        return c, headers

    return _login
