from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from ovpn_sync.auth import get_current_user_admin
from ovpn_sync.database import get_db
from ovpn_sync.dependencies import get_event_bus
from ovpn_sync.events import EventBus, UserChanged, UserEventKind
from ovpn_sync.models.user import User
from ovpn_sync.repositories import user_repository
from ovpn_sync.schemas.user import UserResponse, UserUpdate

router = APIRouter(prefix="/api/users", tags=["users"])


def _get_or_404(db: Session, user_id: str) -> User:
    user = user_repository.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("", response_model=list[UserResponse])
def get_all_users(
    include_deleted: bool = False,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """List all users (admin only). Soft-deleted users only with ?include_deleted=true."""
    return user_repository.list_users(db, include_deleted=include_deleted)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Get one user by id (admin only)."""
    return _get_or_404(db, user_id)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    body: UserUpdate,
    background_tasks: BackgroundTasks,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    """Update user (admin only). The user's VPN account is re-synced afterwards."""
    user = _get_or_404(db, user_id)
    if user.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User has been deleted")
    was_verified = bool(user.email_verified)
    if body.name is not None:
        user.name = body.name
    if body.email is not None:
        user.email = body.email
    if body.role is not None:
        user.role = body.role.value
    if body.email_verified is not None:
        user.email_verified = body.email_verified
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
    db.refresh(user)
    kind = UserEventKind.VERIFIED if user.email_verified and not was_verified else UserEventKind.UPDATED
    background_tasks.add_task(bus.emit, UserChanged(user_id=user.id, kind=kind))
    return user


@router.delete("/{user_id}", response_model=UserResponse)
def delete_user(
    user_id: str,
    background_tasks: BackgroundTasks,
    admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    """Soft-delete user (admin only). The user's VPN account is removed by the follow-up sync."""
    user = _get_or_404(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot delete yourself")
    if user.deleted_at is None:
        user = user_repository.soft_delete_user(db, user)
        background_tasks.add_task(bus.emit, UserChanged(user_id=user.id, kind=UserEventKind.DELETED))
    return user
