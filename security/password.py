import bcrypt
from flask import current_app

from utils.errors import ValidationError

def validate_password(plain_password) -> str:
    min_length = current_app.config.get("PASSWORD_MIN_LENGTH", 8)
    if not isinstance(plain_password, str) or len(plain_password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")
    # bcrypt only looks at the first 72 bytes
    if len(plain_password.encode("utf-8")) > 72:
        raise ValidationError("Password must be at most 72 bytes")
    return plain_password

def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")

def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8")[:72],
            password_hash.encode("utf-8")
        )
    except ValueError:
        # malformed stored hash
        return False
