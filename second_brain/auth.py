"""
Authentication helpers for Flask.

Passwords are hashed with passlib; sessions are stateless HS256 JWTs signed
with python-jose and sent as ``Authorization: Bearer <token>``.
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request
from jose import jwt
from jose.exceptions import JWTError
from passlib.context import CryptContext

from .config import Config

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a plaintext password."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password against its stored hash."""
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognized or corrupt hash
        return False


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: Database id of the user; stored as the ``sub`` claim
        expires_delta: Token lifetime (default: ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT string
    """
    now = datetime.now(tz=timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=Config.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": str(user_id), "iat": int(now.timestamp()), "exp": int(expire.timestamp())}
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Verify an access token.

    Returns:
        Decoded token payload if valid, None otherwise
    """
    try:
        return jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
    except JWTError as e:
        logger.info("JWT verification failed: %s", e)
        return None


def get_auth_token() -> str | None:
    """
    Extract bearer token from Authorization header.

    Returns:
        Token string if present, None otherwise
    """
    auth_header = request.headers.get('Authorization', '')

    if not auth_header.startswith('Bearer '):
        return None

    return auth_header[7:]  # Remove 'Bearer ' prefix


def _set_current_user(subject: Any):
    """
    Store the numeric user id on ``g``.

    Returns:
        An error response if the subject is not a numeric id, else None
    """
    try:
        g.user_id = int(subject)
    except (TypeError, ValueError):
        return jsonify({'error': 'Invalid user ID'}), 400
    return None


def require_auth(f):
    """
    Decorator to require authentication for a Flask route.

    Usage:
        @bp.get('/protected')
        @require_auth
        def protected_route():
            # Access the numeric user id via g.user_id
            return {'user_id': g.user_id}
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # TESTING seam: allow deterministic auth without minting tokens.
        # This is only enabled when Flask TESTING is true.
        if current_app.config.get("TESTING") is True:
            test_user_id = request.headers.get("X-Test-User-Id")
            if test_user_id:
                error = _set_current_user(test_user_id)
                if error:
                    return error
                return f(*args, **kwargs)

        token = get_auth_token()

        if not token:
            return jsonify({'error': 'Unauthorized'}), 401

        payload = decode_access_token(token)

        if not payload or payload.get('sub') is None:
            return jsonify({'error': 'Unauthorized'}), 401

        error = _set_current_user(payload.get('sub'))
        if error:
            return error

        return f(*args, **kwargs)

    return decorated_function
