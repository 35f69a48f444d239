from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from ovpn_sync.database import Base


class Device(Base):
    """A VPN client binding, keyed by the tunnel IP the Access Server handed out."""

    __tablename__ = "devices"
    __table_args__ = (
        # Tunnel IPs are recycled across users, so uniqueness is per (user, ip)
        UniqueConstraint("user_id", "tunnel_ip", name="uq_devices_user_tunnel_ip"),
        Index("ix_devices_tunnel_ip_active", "tunnel_ip", "is_active"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tunnel_ip = Column(String(45), nullable=False)
    name = Column(String(255), nullable=False, default="")
    last_ip = Column(String(45), nullable=True)
    last_seen_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="devices")
