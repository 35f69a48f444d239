"""Admin guard for the sync API.

Access tokens are minted by the user-management service that owns the
accounts; this service only verifies them with the shared SECRET_KEY.
"""
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PayloadError
from sqlalchemy.orm import Session

from ovpn_sync.config import get_settings
from ovpn_sync.database import get_db
from ovpn_sync.models.user import User, UserRole
from ovpn_sync.repositories import user_repository
from ovpn_sync.schemas.user import TokenPayload

bearer = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TYPE = "access"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(user_id: str, email: str, expires_minutes: int = 60) -> str:
    """Mint a token the way the user-management service does. Used by scripts and tests."""
    settings = get_settings()
    claims = {
        "sub": user_id,
        "email": email,
        "exp": datetime.utcnow() + timedelta(minutes=expires_minutes),
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def verify_access_token(token: str) -> TokenPayload | None:
    """Return the claims of a valid, unexpired access token, else None."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        payload = TokenPayload.model_validate(claims)
    except (JWTError, PayloadError):
        return None
    if payload.type != ACCESS_TOKEN_TYPE:
        return None
    return payload


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    # Soft-deleted accounts lose API access immediately, even with a live token
    user = user_repository.get_active_user(db, payload.sub)
    if user is None:
        raise _unauthorized("User not found")
    return user


def get_current_user_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admin can access.",
        )
    return user
