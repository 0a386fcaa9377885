import hashlib
import re
import secrets
from datetime import timedelta
from typing import List, Optional, Tuple

import bcrypt
import pyotp
from flask import current_app, jsonify
from flask_jwt_extended import (
    create_access_token,
    get_current_user,
    verify_jwt_in_request,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy import select

from .extensions import db, jwt
from .helpers import utcnow
from .models import User

MIN_PASSWORD_LENGTH = 6
OTP_CODE_LENGTH = 6
OTP_EXPIRATION_MINUTES = 10
PASSWORD_RESET_EXPIRATION_MINUTES = 10
TOTP_DIGITS = 6
TOTP_WINDOW = 1
BACKUP_CODE_COUNT = 8


def hash_password(password: str) -> str:
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def check_password(password: str, hashed: Optional[str]) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def validate_password(password: Optional[str]) -> Optional[str]:
    candidate = str(password or "")
    if len(candidate) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not re.search(r"\d", candidate):
        return "Password must contain at least one number"
    return None


def generate_token(user: User) -> str:
    return create_access_token(identity=str(user.id))


def generate_otp_code(length: int = OTP_CODE_LENGTH) -> str:
    upper_bound = 10**length
    return f"{secrets.randbelow(upper_bound):0{length}d}"


def issue_email_verification_code(user: User) -> str:
    """Store a bcrypt hash of a fresh code on the user and return the raw code."""
    otp = generate_otp_code()
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    user.email_verification_token = bcrypt.hashpw(
        otp.encode("utf-8"), bcrypt.gensalt(rounds=rounds)
    ).decode("utf-8")
    user.email_verification_expires = utcnow() + timedelta(minutes=OTP_EXPIRATION_MINUTES)
    return otp


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_password_reset_token(user: User) -> str:
    raw_token = secrets.token_hex(32)
    user.password_reset_token = hash_reset_token(raw_token)
    user.password_reset_expires = utcnow() + timedelta(
        minutes=PASSWORD_RESET_EXPIRATION_MINUTES
    )
    return raw_token


def clear_password_reset_state(user: User):
    user.password_reset_token = None
    user.password_reset_expires = None


def create_or_promote_admin(
    email: str,
    password: str,
    first_name: str = "Admin",
    last_name: str = "User",
    reset_password: bool = True,
):
    """Returns ``(user, created)``; an existing account is promoted and reactivated."""
    user = db.session.scalar(select(User).where(User.email == email))
    if user:
        user.is_admin = True
        user.is_active = True
        if password and reset_password:
            user.password = hash_password(password)
        db.session.commit()
        return user, False

    user = User(
        email=email,
        password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        is_admin=True,
        is_active=True,
        is_email_verified=True,
    )
    db.session.add(user)
    db.session.commit()
    return user, True


# --- TOTP (RFC 6238) ---

def generate_totp_secret() -> str:
    return pyotp.random_base32()


def verify_totp(secret: Optional[str], code: Optional[str], at: Optional[float] = None) -> bool:
    candidate = str(code or "").strip()
    if not secret or not re.fullmatch(r"\d{%d}" % TOTP_DIGITS, candidate):
        return False
    return pyotp.TOTP(secret).verify(candidate, for_time=at, valid_window=TOTP_WINDOW)


def hash_backup_code(code: str) -> str:
    return hashlib.sha256(code.strip().upper().encode("utf-8")).hexdigest()


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> Tuple[List[str], List[str]]:
    codes = [secrets.token_hex(4).upper() for _ in range(count)]
    return codes, [hash_backup_code(code) for code in codes]


def consume_backup_code(user: User, code: Optional[str]) -> bool:
    if not code:
        return False
    hashed = hash_backup_code(str(code))
    remaining = list(user.backup_codes or [])
    if hashed not in remaining:
        return False
    remaining.remove(hashed)
    user.backup_codes = remaining
    return True


# --- JWT wiring ---

def auth_error(message: str, status: int = 401):
    return jsonify({"success": False, "message": message}), status


@jwt.user_lookup_loader
def load_user_from_token(_jwt_header, jwt_data):
    identity = jwt_data.get("sub")
    try:
        user_id = int(identity)
    except (TypeError, ValueError):
        return None
    return db.session.get(User, user_id)


@jwt.user_lookup_error_loader
def handle_missing_user(_jwt_header, _jwt_data):
    return auth_error("User not found")


@jwt.unauthorized_loader
def handle_missing_token(_reason):
    return auth_error("Not authorized, no token")


@jwt.invalid_token_loader
def handle_invalid_token(_reason):
    return auth_error("Not authorized, token failed")


@jwt.expired_token_loader
def handle_expired_token(_jwt_header, _jwt_data):
    return auth_error("Not authorized, token expired")


def require_active_user():
    """Return ``(user, None)`` for the token's user or ``(None, error_response)``."""
    user = get_current_user()
    if user is None:
        return None, auth_error("User not found")
    if not user.is_active:
        return None, auth_error("Account is deactivated")
    return user, None


def require_admin_user():
    user, error = require_active_user()
    if error:
        return None, error
    if not user.is_admin:
        return None, auth_error("Not authorized as admin", 403)
    return user, None


def get_optional_user() -> Optional[User]:
    try:
        verify_jwt_in_request(optional=True)
    except (JWTExtendedException, PyJWTError):
        return None
    user = get_current_user()
    if user is None or not user.is_active:
        return None
    return user
