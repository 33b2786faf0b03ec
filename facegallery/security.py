"""Password hashing and bearer token helpers."""
import time
from datetime import datetime, timezone
from typing import Optional

import jwt
from werkzeug.security import check_password_hash, generate_password_hash


class TokenError(Exception):
    pass


class TokenExpiredError(TokenError):
    pass


def hash_password(password: str) -> str:
    """Salted hash, format ``method$salt$hash``."""
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def create_access_token(user_id: str, role: str, secret: str, algorithm: str = "HS256",
                        expires_in: int = 3600, now: Optional[datetime] = None) -> str:
    # whole seconds, so exp is exactly iat + expires_in
    issued = int((now or datetime.now(timezone.utc)).timestamp())
    payload = {
        "sub": user_id,
        "role": role,
        "iat": issued,
        "exp": issued + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256",
                        now: Optional[float] = None) -> dict:
    """
    Verify the signature and return the claims.

    A token stays valid through its ``exp`` second and is rejected strictly
    after it. PyJWT's own expiry check treats ``exp == now`` as expired, so
    expiry is checked here instead.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["sub", "exp"], "verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}") from e

    exp = payload["exp"]
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise TokenError("Invalid token: exp must be a number")
    if (time.time() if now is None else now) > exp:
        raise TokenExpiredError("Token expired")
    return payload
