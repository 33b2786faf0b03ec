"""Bearer authentication and role checks as FastAPI dependencies."""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security import TokenError, TokenExpiredError, decode_access_token

logger = logging.getLogger(__name__)

# Security scheme for Bearer token
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(request: Request, credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> User:
    if credentials is None:
        raise _unauthorized("Please authenticate")

    settings = request.app.state.settings
    try:
        payload = decode_access_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)
    except TokenExpiredError:
        raise _unauthorized("Token expired")
    except TokenError as e:
        logger.warning(f"Token verification failed: {e}")
        raise _unauthorized("Please authenticate")

    user = db.get(User, payload["sub"])
    if user is None:
        logger.warning(f"Token for unknown user {payload['sub']}")
        raise _unauthorized("Please authenticate")

    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to a live user record.
    Raises HTTPException 401 if the token is missing, invalid or expired,
    or if its user no longer exists.
    """
    return _resolve_user(request, credentials, db)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like ``get_current_user`` but returns None when no token was sent."""
    if credentials is None:
        return None
    return _resolve_user(request, credentials, db)


def require_role(role: str, message: str = "Access denied"):
    """Dependency factory: the current user must have ``role``, otherwise 403."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)
        return user

    return dependency
