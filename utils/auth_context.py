from functools import wraps
from flask import g

from models import db
from models.user import User
from security.session import get_session_from_request
from utils.responses import error_response

def load_current_user():
    sess = get_session_from_request()
    if not sess:
        g.user = None
        g.session = None
        return
    g.session = sess
    user = db.session.get(User, sess.user_id)
    g.user = user if user is not None and user.is_active else None

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return error_response("Authentication required", error="unauthenticated", status_code=401)
        return fn(*args, **kwargs)
    return wrapper
