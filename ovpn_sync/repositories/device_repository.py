"""
Device registry persistence. Callers own the transaction: nothing here commits,
so the device monitor can commit or roll back one connection at a time.
"""
from datetime import datetime
from sqlalchemy import and_, not_, or_
from sqlalchemy.orm import Session

from ovpn_sync.models.device import Device


def find_device(db: Session, user_id: str, tunnel_ip: str) -> Device | None:
    return (
        db.query(Device)
        .filter(Device.user_id == user_id, Device.tunnel_ip == tunnel_ip)
        .first()
    )


def find_active_devices_for_ip(db: Session, tunnel_ip: str, exclude_user_id: str | None = None) -> list[Device]:
    q = db.query(Device).filter(Device.tunnel_ip == tunnel_ip, Device.is_active.is_(True))
    if exclude_user_id is not None:
        q = q.filter(Device.user_id != exclude_user_id)
    return q.all()


def create_device(
    db: Session,
    user_id: str,
    tunnel_ip: str,
    *,
    name: str = "",
    real_ip: str | None = None,
    seen_at: datetime | None = None,
) -> Device:
    device = Device(
        user_id=user_id,
        tunnel_ip=tunnel_ip,
        name=name,
        last_ip=real_ip,
        last_seen_at=seen_at or datetime.utcnow(),
        is_active=True,
    )
    db.add(device)
    db.flush()
    return device


def touch_device(device: Device, *, real_ip: str | None = None, seen_at: datetime | None = None) -> Device:
    device.last_seen_at = seen_at or datetime.utcnow()
    device.is_active = True
    if real_ip:
        device.last_ip = real_ip
    return device


def delete_device(db: Session, device: Device) -> None:
    db.delete(device)
    db.flush()


def deactivate_unseen(db: Session, seen: set[tuple[str, str]]) -> int:
    """Mark active devices inactive unless their (user_id, tunnel_ip) pair is in `seen`."""
    q = db.query(Device).filter(Device.is_active.is_(True))
    if seen:
        pairs = [and_(Device.user_id == uid, Device.tunnel_ip == ip) for uid, ip in seen]
        q = q.filter(not_(or_(*pairs)))
    return q.update({Device.is_active: False}, synchronize_session=False)


def list_devices(db: Session, active_only: bool = False, limit: int = 100) -> list[Device]:
    q = db.query(Device)
    if active_only:
        q = q.filter(Device.is_active.is_(True))
    return q.order_by(Device.last_seen_at.desc()).limit(limit).all()
