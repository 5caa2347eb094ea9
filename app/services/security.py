# app/services/security.py
#
# Password hashing (bcrypt) and signed tokens (JWT via python-jose).

import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from app import config


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def create_access_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    """
    Sign `data` with the app secret. `exp` is added as now + expires_minutes
    (JWT_EXPIRES_MINUTES by default). A random `jti` keeps two tokens issued in
    the same second distinct.
    """
    minutes = config.JWT_EXPIRES_MINUTES if expires_minutes is None else expires_minutes
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode["jti"] = secrets.token_hex(8)
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decoded payload, or None when the token is malformed, forged or expired."""
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        return None


_TOKEN_ALPHABET = string.ascii_letters + string.digits


def random_token(length: int = 32) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))
