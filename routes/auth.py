from flask import Blueprint, request, current_app, g

from models import db
from models.user import User, Role
from security.password import hash_password, verify_password, validate_password
from security.session import create_session, revoke_session, revoke_all_sessions
from security.csrf import issue_csrf_token
from utils.audit import log_event
from utils.auth_context import login_required
from utils.errors import ValidationError, Conflict
from utils.responses import success_response, error_response


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

ACCOUNT_TYPE_ROLES = {"player": "PLAYER", "supplier": "SUPPLIER"}


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _user_json(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone_number": user.phone_number,
        "roles": sorted(user.role_names),
    }


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    account_type = (data.get("account_type") or "player").strip().lower()

    if not _is_valid_email(email):
        raise ValidationError("Invalid email")
    validate_password(password)
    role_name = ACCOUNT_TYPE_ROLES.get(account_type)
    if role_name is None:
        raise ValidationError("account_type must be player or supplier")

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        raise Conflict("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=(data.get("full_name") or "").strip() or None,
        phone_number=(data.get("phone_number") or "").strip() or None,
    )
    db.session.add(user)
    db.session.flush()

    role = Role.query.filter_by(name=role_name).first()
    if role:
        user.roles.append(role)

    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, metadata={"account_type": account_type})

    return success_response("Registered successfully", _user_json(user), 201)


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return error_response("Invalid credentials", error="invalid_credentials", status_code=401)

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)

    raw_token = create_session(user.id)
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "sportslot_session")

    resp, status = success_response("Login OK", _user_json(user))
    resp.set_cookie(
        cookie_name,
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, status


@auth_bp.get("/me")
@login_required
def me():
    return success_response("Current user", _user_json(g.user))


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "sportslot_session")
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp, status = success_response("Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, status
