"""Test doubles for the Access Server gateway."""
import threading

from ovpn_sync.exceptions import GatewayError
from ovpn_sync.openvpn.gateway import VpnGateway
from ovpn_sync.openvpn.parser import LiveConnection


class FakeGateway(VpnGateway):
    """In-memory Access Server. `failures` maps (operation, username) to an error message.
    `crashes` maps the same keys to arbitrary exceptions raised as-is.
    """

    def __init__(self, accounts=None, connections=None):
        self.accounts: dict[str, dict[str, str]] = {k: dict(v) for k, v in (accounts or {}).items()}
        self.connections: list[LiveConnection] = list(connections or [])
        self.failures: dict[tuple[str, str], str] = {}
        self.crashes: dict[tuple[str, str], Exception] = {}
        self.fail_listing: str | None = None
        self.fail_status: str | None = None
        self.calls: list[tuple] = []
        self.closed = False
        self._lock = threading.Lock()

    def _record(self, op, username, *extra):
        with self._lock:
            self.calls.append((op, username, *extra))
        if (op, username) in self.crashes:
            raise self.crashes[(op, username)]
        message = self.failures.get((op, username))
        if message:
            raise GatewayError(message, command=op)

    def mutating_calls(self):
        return [c for c in self.calls if c[0] in ("create", "set", "delete")]

    def list_accounts(self):
        if self.fail_listing:
            raise GatewayError(self.fail_listing, command="UserPropGet")
        with self._lock:
            return {k: dict(v) for k, v in self.accounts.items()}

    def create_account(self, username, temp_password):
        self._record("create", username)
        with self._lock:
            self.accounts[username] = {"type": "user_connect"}

    def set_property(self, username, key, value):
        self._record("set", username, key, value)
        with self._lock:
            self.accounts.setdefault(username, {})[key] = value

    def _delete(self, username):
        self._record("delete", username)
        with self._lock:
            self.accounts.pop(username, None)

    def list_live_connections(self):
        if self.fail_status:
            raise GatewayError(self.fail_status, command="VPNStatus")
        return list(self.connections)

    def close(self):
        self.closed = True


def connection(username, tunnel_ip, real_ip="203.0.113.10"):
    return LiveConnection(username=username, tunnel_ip=tunnel_ip, real_ip=real_ip)
