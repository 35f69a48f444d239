"""
Errors raised by the sync subsystem. Routers map them to HTTP status codes;
the reconciler and device monitor catch the per-item ones themselves.
"""


class SyncServiceError(Exception):
    """Base class for sync subsystem errors."""


class GatewayError(SyncServiceError):
    """sacli invocation failed: non-zero exit, timeout or unparseable output."""

    def __init__(self, message: str, command: str | None = None):
        super().__init__(message)
        self.command = command


class ValidationError(SyncServiceError):
    """Caller supplied an out-of-range interval, bad identifier, etc."""


class UserNotFoundError(SyncServiceError):
    pass


class SelfRemovalError(SyncServiceError):
    """An admin tried to remove their own Access Server account."""


class ConflictError(SyncServiceError):
    """A tunnel IP is still bound to another user's active device. Handled by eviction."""

    def __init__(self, tunnel_ip: str, stale_device, new_user_id: str):
        super().__init__(
            f"Tunnel IP {tunnel_ip} is bound to user {stale_device.user_id}, now reported for {new_user_id}"
        )
        self.tunnel_ip = tunnel_ip
        self.stale_device = stale_device
        self.new_user_id = new_user_id


class ConcurrencyError(SyncServiceError):
    """A pass was requested while another one is in flight. Reported as a skip, not a failure."""
