"""User accounts: PBKDF2 password hashing and JWT session tokens."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import secrets
import time

import jwt

from secudo.config import settings
from secudo.core.models import User
from secudo.exceptions import ConflictError, UnauthenticatedError
from secudo.rbac import GlobalRole, is_global_admin
from secudo.storage.database import Database

logger = logging.getLogger("secudo.auth_providers.user_account")

_JWT_ALGORITHM = "HS256"
_PBKDF2_ITERATIONS = 260_000


def _get_jwt_secret() -> str:
    secret = os.environ.get("SEC_JWT_SECRET", settings.jwt_secret)
    if not secret:
        logger.warning("SEC_JWT_SECRET not set, using insecure default (dev only)")
        return "secudo-dev-secret-do-not-use-in-production"
    return secret


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _PBKDF2_ITERATIONS)
    return f"pbkdf2:sha256:{_PBKDF2_ITERATIONS}${salt}${dk.hex()}"


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        prefix, salt, stored_hash = password_hash.split("$")
        iterations = int(prefix.split(":")[-1])
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return hmac.compare_digest(dk.hex(), stored_hash)


def issue_token(user: User) -> str:
    now = int(time.time())
    payload = {
        "sub": user.id,
        "email": user.email,
        "iat": now,
        "exp": now + settings.jwt_expiry_seconds,
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=_JWT_ALGORITHM)


def decode_token(token: str) -> dict | None:
    """Return the token's claims, or None if it is invalid or expired."""
    try:
        return jwt.decode(token, _get_jwt_secret(), algorithms=[_JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


async def register_user(
    db: Database,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
) -> User:
    """Create a Viewer account. Raises ConflictError if the email is taken."""
    if await db.get_user_by_email(email) is not None:
        raise ConflictError("Email already registered")
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        name=f"{first_name} {last_name}".strip(),
        role=GlobalRole.VIEWER.value,
    )
    await db.insert_user(user, hash_password(password))
    logger.info("Registered user %s", user.id)
    return user


async def login_user(db: Database, email: str, password: str) -> tuple[User, str]:
    """Check credentials and return the user with a fresh token."""
    user = await db.get_user_by_email(email)
    if user is None or not verify_password(password, await db.get_password_hash(user.id)):
        raise UnauthenticatedError("Invalid email or password")
    return user, issue_token(user)


async def ensure_initial_admin(db: Database, email: str, password: str) -> User:
    """Make sure the bootstrap account exists and holds the global Admin role."""
    user = await db.get_user_by_email(email)
    if user is None:
        user = User(
            email=email,
            first_name="Admin",
            last_name="Admin",
            name="Admin Admin",
            role=GlobalRole.ADMIN.value,
        )
        await db.insert_user(user, hash_password(password))
        logger.info("Created initial admin account %s", email)
        return user

    if not is_global_admin(user.role):
        await db.update_user_role(user.id, GlobalRole.ADMIN.value)
        logger.info("Promoted initial admin account %s", email)
    if not await db.get_password_hash(user.id):
        await db.set_password_hash(user.id, hash_password(password))
    return await db.get_user(user.id) or user
