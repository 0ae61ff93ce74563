from functools import wraps
from flask import g

from utils.responses import error_response

def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return user.has_role(role_name)

def require_roles(*role_names: str):
    """
    Usage: @require_roles("SUPPLIER")
    ADMIN passes every role check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return error_response("Authentication required", error="unauthenticated", status_code=401)

            user_roles = user.role_names
            if "ADMIN" not in user_roles and not user_roles.intersection(role_names):
                return error_response("Forbidden", error="forbidden", status_code=403)

            return fn(*args, **kwargs)
        return wrapper
    return decorator
