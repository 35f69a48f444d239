"""
Narrow interface to the OpenVPN Access Server user database. The reconciler and
device monitor only see VpnGateway; which transport backs it is a deployment choice.
Every call shells out somewhere, so expect hundreds of milliseconds per call.
"""
import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import requests

from ovpn_sync.exceptions import GatewayError
from ovpn_sync.openvpn.config import (
    CMD_USER_PROP_GET,
    CMD_USER_PROP_PUT,
    CMD_USER_PROP_DEL_ALL,
    CMD_SET_LOCAL_PASSWORD,
    CMD_VPN_STATUS,
)
from ovpn_sync.openvpn.parser import (
    LiveConnection,
    parse_confirmation,
    parse_json_output,
    parse_user_props,
    parse_vpn_status,
)
from ovpn_sync.openvpn.transport import DockerExecRunner, SSHRunner, describe_command

logger = logging.getLogger(__name__)


class VpnGateway(ABC):

    @abstractmethod
    def list_accounts(self) -> dict[str, dict[str, str]]:
        ...

    @abstractmethod
    def create_account(self, username: str, temp_password: str) -> None:
        ...

    @abstractmethod
    def set_property(self, username: str, key: str, value: str) -> None:
        ...

    @abstractmethod
    def _delete(self, username: str) -> None:
        ...

    @abstractmethod
    def list_live_connections(self) -> list[LiveConnection]:
        ...

    def account_exists(self, username: str) -> bool:
        return username in self.list_accounts()

    def delete_account(self, username: str) -> None:
        """Remove an account. An account that is already gone counts as deleted."""
        try:
            self._delete(username)
        except GatewayError:
            if not self.account_exists(username):
                logger.info("OpenVPN account %s already absent", username)
                return
            raise
        logger.info("OpenVPN account deleted: %s", username)

    def close(self) -> None:
        """Release transport resources. Nothing to do for stateless transports."""


class SacliGateway(VpnGateway):
    """sacli through a command runner (docker exec or ssh)."""

    def __init__(self, runner):
        self.runner = runner

    def _run(self, args: list[str]) -> str:
        return self.runner.run(args)

    def close(self) -> None:
        close = getattr(self.runner, "close", None)
        if close is not None:
            close()

    def list_accounts(self) -> dict[str, dict[str, str]]:
        output = self._run([CMD_USER_PROP_GET])
        accounts = parse_user_props(parse_json_output(output, command=CMD_USER_PROP_GET))
        logger.debug("Retrieved %d accounts from OpenVPN AS", len(accounts))
        return accounts

    def create_account(self, username: str, temp_password: str) -> None:
        args = ["--user", username, "--new_pass", temp_password, CMD_SET_LOCAL_PASSWORD]
        parse_confirmation(self._run(args), command=describe_command(args))

    def set_property(self, username: str, key: str, value: str) -> None:
        args = ["--user", username, "--key", key, "--value", str(value), CMD_USER_PROP_PUT]
        parse_confirmation(self._run(args), command=describe_command(args))

    def _delete(self, username: str) -> None:
        args = ["--user", username, CMD_USER_PROP_DEL_ALL]
        parse_confirmation(self._run(args), command=describe_command(args))

    def list_live_connections(self) -> list[LiveConnection]:
        output = self._run([CMD_VPN_STATUS])
        return parse_vpn_status(parse_json_output(output, command=CMD_VPN_STATUS))


class ProxyGateway(VpnGateway):
    """
    HTTP client for the profile proxy that runs on the Docker host and shells out
    to sacli there. Used when the backend container has no Docker socket.
    """

    def __init__(self, base_url: str, timeout: float = 20.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            resp = requests.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise GatewayError(f"Profile proxy timed out after {self.timeout}s", command=path) from e
        except requests.RequestException as e:
            raise GatewayError(f"Profile proxy request failed: {e}", command=path) from e
        if resp.status_code != 200:
            raise GatewayError(f"Profile proxy returned status {resp.status_code}: {resp.text[:200]}", command=path)
        try:
            data = resp.json()
        except ValueError:
            data = {"stdout": resp.text}
        # The proxy forwards raw stdout when sacli output was not JSON
        if isinstance(data, dict) and set(data) == {"stdout"}:
            return parse_json_output(data["stdout"], command=path)
        return data

    def _user_path(self, username: str, action: str) -> str:
        return f"/sacli/user/{quote(username, safe='')}/{action}"

    def list_accounts(self) -> dict[str, dict[str, str]]:
        return parse_user_props(self._request("GET", "/sacli/userpropget"))

    def create_account(self, username: str, temp_password: str) -> None:
        self._request("POST", self._user_path(username, "setpassword"), {"password": temp_password})

    def set_property(self, username: str, key: str, value: str) -> None:
        self._request("POST", self._user_path(username, "prop"), {"key": key, "value": str(value)})

    def _delete(self, username: str) -> None:
        self._request("POST", self._user_path(username, "delall"))

    def list_live_connections(self) -> list[LiveConnection]:
        return parse_vpn_status(self._request("GET", "/sacli/vpnstatus"))


def build_gateway(settings) -> VpnGateway:
    transport = (settings.sacli_transport or "docker").strip().lower()
    if transport == "proxy":
        return ProxyGateway(settings.profile_proxy_url, timeout=settings.sacli_timeout_seconds)
    if transport == "ssh":
        if not settings.openvpn_ssh_host:
            raise ValueError("OPENVPN_SSH_HOST is required when SACLI_TRANSPORT=ssh")
        return SacliGateway(
            SSHRunner(
                settings.openvpn_ssh_host,
                settings.openvpn_ssh_user,
                settings.openvpn_ssh_password,
                binary=settings.sacli_binary,
                timeout=settings.sacli_timeout_seconds,
            )
        )
    if transport == "docker":
        return SacliGateway(
            DockerExecRunner(
                settings.openvpn_container_name,
                binary=settings.sacli_binary,
                timeout=settings.sacli_timeout_seconds,
            )
        )
    raise ValueError(f"Unknown SACLI_TRANSPORT: {settings.sacli_transport}. Valid: docker, ssh, proxy")
