"""
Keep the device registry in line with live VPN connections.

The Access Server recycles tunnel IPs, so an IP last seen on user A's device may
now be reported for user B. Before every upsert we look for an active device
holding the same IP under another user and hard-delete it, so at most one
active device exists per tunnel IP even if the schema only enforces
uniqueness on (user_id, tunnel_ip).
"""
import logging
from datetime import datetime

from ovpn_sync.exceptions import ConflictError, GatewayError
from ovpn_sync.openvpn.gateway import VpnGateway
from ovpn_sync.openvpn.parser import LiveConnection
from ovpn_sync.repositories import device_repository, user_repository
from ovpn_sync.schemas.sync import DeviceRefreshSummary, SyncIssue

logger = logging.getLogger(__name__)


def device_name(conn: LiveConnection) -> str:
    return f"{conn.username}'s device ({conn.tunnel_ip})"


def check_tunnel_ip_conflict(db, user_id: str, tunnel_ip: str) -> None:
    """Raise ConflictError if another user's active device still holds tunnel_ip."""
    stale = device_repository.find_active_devices_for_ip(db, tunnel_ip, exclude_user_id=user_id)
    if stale:
        raise ConflictError(tunnel_ip, stale[0], user_id)


class DeviceMonitor:

    def __init__(self, gateway: VpnGateway, session_factory):
        self.gateway = gateway
        self.session_factory = session_factory

    def _evict_conflicts(self, db, user_id: str, conn: LiveConnection, summary: DeviceRefreshSummary) -> None:
        # Several stale rows can exist under a legacy unique-on-ip-less schema; evict them all
        while True:
            try:
                check_tunnel_ip_conflict(db, user_id, conn.tunnel_ip)
                return
            except ConflictError as conflict:
                stale = conflict.stale_device
                logger.info(
                    "VPN IP %s reassigned from user %s to user %s (%s), removing device %s",
                    conn.tunnel_ip, stale.user_id, user_id, conn.username, stale.id,
                )
                summary.conflicts.append({
                    "tunnel_ip": conn.tunnel_ip,
                    "previous_user_id": stale.user_id,
                    "new_user_id": user_id,
                    "username": conn.username,
                })
                device_repository.delete_device(db, stale)

    def _process_connection(self, db, conn: LiveConnection, seen: set, summary: DeviceRefreshSummary, now: datetime):
        user = user_repository.find_active_user_by_login(db, conn.username)
        if user is None:
            logger.warning("User not found for VPN connection: %s (%s)", conn.username, conn.tunnel_ip)
            summary.unresolved.append(conn.username)
            return

        self._evict_conflicts(db, user.id, conn, summary)

        device = device_repository.find_device(db, user.id, conn.tunnel_ip)
        if device is not None:
            device_repository.touch_device(device, real_ip=conn.real_ip, seen_at=now)
            summary.refreshed += 1
        else:
            device_repository.create_device(
                db,
                user.id,
                conn.tunnel_ip,
                name=device_name(conn),
                real_ip=conn.real_ip,
                seen_at=now,
            )
            summary.created += 1
            logger.info("Created device for user %s on %s", conn.username, conn.tunnel_ip)
        seen.add((user.id, conn.tunnel_ip))

    def refresh(self, connections: list[LiveConnection] | None = None) -> DeviceRefreshSummary:
        """
        Process live connections (fetched from the gateway unless given) and mark
        devices that are no longer connected inactive. One bad connection never
        stops the others.
        """
        summary = DeviceRefreshSummary()
        if connections is None:
            try:
                connections = self.gateway.list_live_connections()
            except GatewayError as e:
                logger.error("Failed to get VPN status: %s", e)
                summary.errors.append(SyncIssue(username="*", error=str(e)))
                return summary

        summary.observed = len(connections)
        logger.info("Found %d active VPN connection(s)", len(connections))
        now = datetime.utcnow()
        seen: set[tuple[str, str]] = set()

        with self.session_factory() as db:
            for conn in connections:
                try:
                    self._process_connection(db, conn, seen, summary, now)
                    db.commit()
                except Exception as e:
                    db.rollback()
                    logger.exception("Error updating device for %s", conn.username)
                    summary.errors.append(SyncIssue(username=conn.username, error=str(e)))

            try:
                summary.deactivated = device_repository.deactivate_unseen(db, seen)
                db.commit()
            except Exception as e:
                db.rollback()
                logger.exception("Error marking inactive devices")
                summary.errors.append(SyncIssue(username="*", error=str(e)))

        return summary
