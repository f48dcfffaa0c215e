"""
Authentication Gate

Admin password check (bcrypt, salted) and access-code / external-identity
lookup. The `require_*` variants raise AuthenticationError so callers can
present a precise rejection instead of a bare False.
"""
import hmac
import logging
from dataclasses import replace
from typing import Optional

import bcrypt

from control import config
from control.errors import AuthenticationError, ValidationError
from control.models import AppState, UserData

logger = logging.getLogger(__name__)

MIN_ADMIN_PASSWORD_LENGTH = 4


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Salted bcrypt hash of `password`"""
    salt = bcrypt.gensalt(rounds=rounds or config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed hash in the stored document
        logger.error("Stored admin password hash is not a valid bcrypt hash")
        return False


def authenticate_admin(state: AppState, password: str) -> bool:
    return verify_password(password, state.admin_password_hash)


def authenticate_user(state: AppState, code: str) -> Optional[UserData]:
    if not code:
        return None
    candidate = code.strip().encode()
    for user in state.users:
        if hmac.compare_digest(user.access_code.encode(), candidate):
            return user
    return None


def authenticate_external(state: AppState, external_id: Optional[str]) -> Optional[UserData]:
    """Match a host-supplied identity against UserData.external_id"""
    if not external_id:
        return None
    return next((u for u in state.users if u.external_id == external_id), None)


def require_admin(state: AppState, password: str) -> None:
    if not authenticate_admin(state, password):
        logger.warning("Admin authentication rejected")
        raise AuthenticationError("Invalid admin password")


def require_user(state: AppState, code: str) -> UserData:
    user = authenticate_user(state, code)
    if user is None:
        raise AuthenticationError("Invalid access code")
    return user


def change_admin_password(state: AppState, current: str, new: str, confirm: str) -> AppState:
    """
    Replace the admin password hash.

    Raises:
        ValidationError: Missing field, mismatch, or too short
        AuthenticationError: Current password is wrong
    """
    if not current or not new or not confirm:
        raise ValidationError("Please fill in all fields")
    if not authenticate_admin(state, current):
        raise AuthenticationError("Current password is incorrect")
    if new != confirm:
        raise ValidationError("New passwords do not match")
    if len(new) < MIN_ADMIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters long")

    logger.info("Admin password changed")
    return replace(state, admin_password_hash=hash_password(new))
