"""
Read access to the users table for the sync subsystem. Sync never writes users;
the soft-delete and update helpers below serve the admin user routes.
"""
from datetime import datetime
from sqlalchemy.orm import Session

from ovpn_sync.models.user import User


def list_users(db: Session, include_deleted: bool = True) -> list[User]:
    query = db.query(User)
    if not include_deleted:
        query = query.filter(User.deleted_at.is_(None))
    return query.order_by(User.created_at).all()


def get_user(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_active_user(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()


def find_active_user_by_login(db: Session, login: str) -> User | None:
    """Match a VPN login against username, then email. Soft-deleted users never match."""
    active = db.query(User).filter(User.deleted_at.is_(None))
    return active.filter(User.username == login).first() or active.filter(User.email == login).first()


def soft_delete_user(db: Session, user: User) -> User:
    user.deleted_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user
