import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from ovpn_sync.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), unique=True, nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    email_verified = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True, default=None)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    devices = relationship("Device", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def has_username(self) -> bool:
        return bool(self.username and self.username.strip())

    @property
    def is_sync_eligible(self) -> bool:
        """Only verified, non-deleted users with a username get an Access Server account."""
        return self.has_username and bool(self.email_verified) and self.deleted_at is None

    def ineligibility_reason(self) -> str | None:
        if not self.has_username:
            return "no username"
        if self.deleted_at is not None:
            return "deleted"
        if not self.email_verified:
            return "email not verified"
        return None
