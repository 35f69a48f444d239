"""Tests for sacli output parsing."""
import json
from datetime import datetime, timezone

import pytest

from ovpn_sync.exceptions import GatewayError
from ovpn_sync.openvpn.parser import (
    parse_confirmation,
    parse_json_output,
    parse_user_props,
    parse_vpn_status,
    strip_ansi,
)

USER_PROP_GET = {
    "__DEFAULT__": {"prop_autogenerate": "true", "type": "user_default"},
    "admins": {"type": "group", "prop_superuser": "true"},
    "openvpn": {"prop_superuser": "true", "type": "user_compile", "user_auth_type": "local"},
    "alice": {"prop_email": "alice@example.com", "prop_c_name": "Alice", "type": "user_connect"},
    "bob": {"prop_superuser": True, "type": "user_connect", "pvt_password_digest": "x"},
}

VPN_STATUS = {
    "openvpn_0": {
        "client_list": [
            ["alice", "203.0.113.10:51234", "172.27.224.2", "", "1024", "2048",
             "Mon Oct  5 10:00:00 2026", "1791194400", "alice", "5", "0", "AES-256-GCM"],
            ["UNDEF", "[2001:db8::1]:40000", "172.27.224.3", "", "10", "20",
             "Mon Oct  5 10:05:00 2026", "0", "bob", "6", "0", "AES-256-GCM"],
        ],
        "client_list_header": {
            "Common Name": 0, "Real Address": 1, "Virtual Address": 2, "Virtual IPv6 Address": 3,
            "Bytes Received": 4, "Bytes Sent": 5, "Connected Since": 6,
            "Connected Since (time_t)": 7, "Username": 8, "Client ID": 9, "Peer ID": 10,
            "Data Channel Cipher": 11,
        },
        "routing_table": [],
    },
    "openvpn_1": {"client_list": [], "client_list_header": {}},
}


class TestStripAnsi:

    def test_removes_color_codes_and_carriage_returns(self):
        assert strip_ansi('\x1b[32m{"ok": true}\x1b[0m\r\n') == '{"ok": true}'

    def test_plain_text_unchanged(self):
        assert strip_ansi("  hello ") == "hello"


class TestParseJsonOutput:

    def test_parses_json_wrapped_in_escape_codes(self):
        assert parse_json_output('\x1b[1m{"a": 1}\x1b[0m') == {"a": 1}

    def test_empty_output_is_gateway_error(self):
        with pytest.raises(GatewayError, match="no output"):
            parse_json_output("   ", command="UserPropGet")

    def test_non_json_is_gateway_error(self):
        with pytest.raises(GatewayError) as exc:
            parse_json_output("Traceback (most recent call last):", command="UserPropGet")
        assert exc.value.command == "UserPropGet"


class TestParseUserProps:

    def test_filters_pseudo_accounts_and_groups(self):
        accounts = parse_user_props(USER_PROP_GET)
        assert set(accounts) == {"openvpn", "alice", "bob"}

    def test_values_are_strings(self):
        accounts = parse_user_props(USER_PROP_GET)
        assert accounts["bob"]["prop_superuser"] == "true"
        assert accounts["alice"]["prop_email"] == "alice@example.com"

    def test_accepts_raw_text(self):
        accounts = parse_user_props("\x1b[0m" + json.dumps(USER_PROP_GET))
        assert "alice" in accounts

    def test_non_object_is_gateway_error(self):
        with pytest.raises(GatewayError):
            parse_user_props(["alice"])

    def test_entry_without_props_is_kept(self):
        assert parse_user_props({"carol": None}) == {"carol": {}}


class TestParseConfirmation:

    def test_empty_output_is_success(self):
        assert parse_confirmation("") == {}

    def test_status_true_is_success(self):
        assert parse_confirmation('{"status": true}') == {"status": True}

    def test_status_false_raises_with_reason(self):
        with pytest.raises(GatewayError, match="user not found"):
            parse_confirmation('{"status": false, "reason": "user not found"}')

    def test_error_key_raises(self):
        with pytest.raises(GatewayError, match="permission denied"):
            parse_confirmation('{"error": "permission denied"}')

    def test_garbage_is_malformed(self):
        with pytest.raises(GatewayError, match="Malformed"):
            parse_confirmation("Segmentation fault")


class TestParseVpnStatus:

    def test_collects_clients_across_daemons(self):
        connections = parse_vpn_status(VPN_STATUS)
        assert [c.tunnel_ip for c in connections] == ["172.27.224.2", "172.27.224.3"]

    def test_fields(self):
        alice = parse_vpn_status(VPN_STATUS)[0]
        assert alice.username == "alice"
        assert alice.real_ip == "203.0.113.10"
        assert alice.bytes_sent == 2048
        assert alice.bytes_received == 1024
        assert alice.connected_since == datetime.fromtimestamp(1791194400, tz=timezone.utc)

    def test_undef_username_falls_back_to_common_name(self):
        bob = parse_vpn_status(VPN_STATUS)[1]
        assert bob.username == "bob"
        assert bob.real_ip == "2001:db8::1"
        assert bob.connected_since is None

    def test_list_header(self):
        data = {
            "openvpn_0": {
                "client_list": [["carol", "198.51.100.7:1194", "172.27.232.9", "carol"]],
                "client_list_header": ["Common Name", "Real Address", "Virtual Address", "Username"],
            }
        }
        (carol,) = parse_vpn_status(data)
        assert carol.username == "carol"
        assert carol.tunnel_ip == "172.27.232.9"

    def test_rows_without_tunnel_ip_are_skipped(self):
        data = {
            "openvpn_0": {
                "client_list": [["dave", "198.51.100.8:1194", "", "dave"]],
                "client_list_header": ["Common Name", "Real Address", "Virtual Address", "Username"],
            }
        }
        assert parse_vpn_status(data) == []

    def test_no_clients(self):
        assert parse_vpn_status({"openvpn_0": {"client_list": []}}) == []
