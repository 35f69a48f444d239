from ovpn_sync.models.user import User, UserRole
from ovpn_sync.models.device import Device

__all__ = ["User", "UserRole", "Device"]
