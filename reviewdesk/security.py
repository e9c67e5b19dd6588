"""Password hashing and bearer token issue/verification."""
import time
from typing import Any, Optional

import bcrypt
from authlib.jose import jwt
from authlib.jose.errors import JoseError

from reviewdesk.config import settings

JWT_ALGORITHM = "HS256"
# bcrypt only considers the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


class InvalidTokenError(Exception):
    """Bearer token is malformed, tampered with or expired."""


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=10)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("ascii"))
    except ValueError:
        return False


def create_access_token(claims: dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    """Sign claims into an HS256 JWT with iat/exp set."""
    now = int(time.time())
    lifetime = expires_minutes if expires_minutes is not None else settings.jwt_expires_minutes
    payload = {**claims, "iat": now, "exp": now + lifetime * 60}
    token = jwt.encode({"alg": JWT_ALGORITHM}, payload, settings.jwt_secret)
    return token.decode("ascii") if isinstance(token, bytes) else token


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry; return the claims."""
    try:
        claims = jwt.decode(token, settings.jwt_secret)
        claims.validate()
    except (JoseError, ValueError) as exc:
        raise InvalidTokenError(str(exc)) from exc
    if "exp" not in claims:
        raise InvalidTokenError("Token has no expiry")
    return dict(claims)
