"""
Parse sacli output. sacli prints JSON, but docker exec / ssh sessions can wrap it
in terminal control sequences, so everything goes through strip_ansi() first.
Anything that is still not JSON afterwards is a GatewayError, never a crash.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ovpn_sync.exceptions import GatewayError
from ovpn_sync.openvpn.config import (
    ANSI_ESCAPE_RE,
    PSEUDO_ACCOUNTS,
    COL_USERNAME,
    COL_COMMON_NAME,
    COL_REAL_ADDRESS,
    COL_VIRTUAL_ADDRESS,
    COL_CONNECTED_SINCE_EPOCH,
    COL_BYTES_SENT,
    COL_BYTES_RECEIVED,
)


@dataclass(frozen=True)
class LiveConnection:
    username: str
    tunnel_ip: str
    real_ip: str | None = None
    connected_since: datetime | None = None
    common_name: str | None = None
    bytes_sent: int = 0
    bytes_received: int = 0


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text).replace("\r", "").strip()


def parse_json_output(text: str, command: str | None = None) -> Any:
    cleaned = strip_ansi(text)
    if not cleaned:
        raise GatewayError("sacli returned no output", command=command)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GatewayError(f"Unparseable sacli output: {e}", command=command) from e


def _prop_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_user_props(data: Any) -> dict[str, dict[str, str]]:
    """
    UserPropGet -> { username: { prop: value } }.
    Drops __DEFAULT__ and group entries; property values are normalized to strings.
    """
    if isinstance(data, str):
        data = parse_json_output(data, command="UserPropGet")
    if not isinstance(data, dict):
        raise GatewayError("UserPropGet output is not an object", command="UserPropGet")

    accounts: dict[str, dict[str, str]] = {}
    for username, props in data.items():
        if username in PSEUDO_ACCOUNTS:
            continue
        if not isinstance(props, dict):
            props = {}
        if props.get("type") == "group":
            continue
        accounts[username] = {k: _prop_str(v) for k, v in props.items()}
    return accounts


def parse_confirmation(text: str, command: str | None = None) -> dict:
    """
    Check the payload a mutating sacli command prints. Empty output means success;
    a JSON object with status=false or an error key is a failure; non-JSON is malformed.
    """
    cleaned = strip_ansi(text)
    if not cleaned:
        return {}
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GatewayError(f"Malformed sacli confirmation: {cleaned[:200]}", command=command) from e
    if isinstance(payload, dict):
        if payload.get("status") is False or payload.get("error"):
            reason = payload.get("reason") or payload.get("error") or "unknown reason"
            raise GatewayError(f"sacli reported failure: {reason}", command=command)
        return payload
    return {"result": payload}


def _split_real_address(address: str | None) -> str | None:
    if not address:
        return None
    if address.startswith("["):
        return address[1:].split("]", 1)[0]
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def _header_index(header: Any) -> dict[str, int]:
    if isinstance(header, dict):
        return {str(k): int(v) for k, v in header.items()}
    if isinstance(header, list):
        return {str(name): i for i, name in enumerate(header)}
    return {}


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_vpn_status(data: Any) -> list[LiveConnection]:
    """
    VPNStatus -> connected clients across all daemons. Each daemon reports
    client_list rows plus a client_list_header mapping column name to index.
    """
    if isinstance(data, str):
        data = parse_json_output(data, command="VPNStatus")
    if not isinstance(data, dict):
        raise GatewayError("VPNStatus output is not an object", command="VPNStatus")

    connections: list[LiveConnection] = []
    for daemon in data.values():
        if not isinstance(daemon, dict):
            continue
        rows = daemon.get("client_list") or []
        idx = _header_index(daemon.get("client_list_header"))
        if not rows or not idx:
            continue

        def col(row, name):
            i = idx.get(name)
            if i is None or i >= len(row):
                return None
            return row[i]

        for row in rows:
            common_name = col(row, COL_COMMON_NAME)
            username = col(row, COL_USERNAME)
            if not username or username == "UNDEF":
                username = common_name
            tunnel_ip = col(row, COL_VIRTUAL_ADDRESS)
            if not username or not tunnel_ip:
                continue
            epoch = _int(col(row, COL_CONNECTED_SINCE_EPOCH))
            connections.append(
                LiveConnection(
                    username=username,
                    tunnel_ip=tunnel_ip,
                    real_ip=_split_real_address(col(row, COL_REAL_ADDRESS)),
                    connected_since=datetime.fromtimestamp(epoch, tz=timezone.utc) if epoch else None,
                    common_name=common_name,
                    bytes_sent=_int(col(row, COL_BYTES_SENT)),
                    bytes_received=_int(col(row, COL_BYTES_RECEIVED)),
                )
            )
    return connections
