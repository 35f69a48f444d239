from datetime import datetime
from pydantic import BaseModel
from ovpn_sync.models.user import UserRole


class UserResponse(BaseModel):
    id: str
    username: str | None
    email: str
    name: str
    role: str
    email_verified: bool
    deleted_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    """Admin update; every field optional."""
    name: str | None = None
    email: str | None = None
    role: UserRole | None = None
    email_verified: bool | None = None


class TokenPayload(BaseModel):
    sub: str  # user id
    email: str
    exp: int
    type: str = "access"
