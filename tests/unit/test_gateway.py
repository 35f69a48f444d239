"""Tests for the sacli and profile-proxy gateways."""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from ovpn_sync.exceptions import GatewayError
from ovpn_sync.openvpn.gateway import ProxyGateway, SacliGateway, build_gateway
from ovpn_sync.openvpn.transport import DockerExecRunner, SSHRunner


class ScriptedRunner:
    """Returns canned stdout per sacli command (last argument)."""

    def __init__(self, outputs):
        self.outputs = outputs
        self.calls = []
        self.closed = False

    def run(self, args):
        self.calls.append(list(args))
        result = self.outputs.get(args[-1], "")
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


class TestSacliGateway:

    def test_list_accounts(self):
        runner = ScriptedRunner({
            "UserPropGet": json.dumps({
                "__DEFAULT__": {"type": "user_default"},
                "alice": {"prop_email": "alice@example.com", "type": "user_connect"},
            })
        })
        assert SacliGateway(runner).list_accounts() == {
            "alice": {"prop_email": "alice@example.com", "type": "user_connect"}
        }

    def test_create_and_set_property_arguments(self):
        runner = ScriptedRunner({})
        gateway = SacliGateway(runner)
        gateway.create_account("alice", "Tmp!Passw0rd12")
        gateway.set_property("alice", "prop_superuser", "false")
        assert runner.calls == [
            ["--user", "alice", "--new_pass", "Tmp!Passw0rd12", "SetLocalPassword"],
            ["--user", "alice", "--key", "prop_superuser", "--value", "false", "UserPropPut"],
        ]

    def test_failure_confirmation_raises(self):
        runner = ScriptedRunner({"UserPropPut": '{"status": false, "reason": "bad key"}'})
        with pytest.raises(GatewayError, match="bad key"):
            SacliGateway(runner).set_property("alice", "prop_x", "1")

    def test_delete_of_missing_account_is_success(self):
        runner = ScriptedRunner({
            "UserPropDelAll": GatewayError("sacli failed: exit code 1"),
            "UserPropGet": json.dumps({"bob": {}}),
        })
        SacliGateway(runner).delete_account("alice")
        assert runner.calls[-1] == ["UserPropGet"]

    def test_delete_failure_of_existing_account_propagates(self):
        runner = ScriptedRunner({
            "UserPropDelAll": GatewayError("sacli failed: locked"),
            "UserPropGet": json.dumps({"alice": {}}),
        })
        with pytest.raises(GatewayError, match="locked"):
            SacliGateway(runner).delete_account("alice")

    def test_live_connections(self):
        status = {
            "openvpn_0": {
                "client_list": [["alice", "203.0.113.10:51234", "172.27.224.2", "alice"]],
                "client_list_header": {"Common Name": 0, "Real Address": 1, "Virtual Address": 2, "Username": 3},
            }
        }
        runner = ScriptedRunner({"VPNStatus": json.dumps(status)})
        (conn,) = SacliGateway(runner).list_live_connections()
        assert (conn.username, conn.tunnel_ip, conn.real_ip) == ("alice", "172.27.224.2", "203.0.113.10")

    def test_close_closes_runner(self):
        runner = ScriptedRunner({})
        SacliGateway(runner).close()
        assert runner.closed


def _response(status_code=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text or json.dumps(payload)
    if payload is None:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


class TestProxyGateway:

    @pytest.fixture
    def gateway(self):
        return ProxyGateway("http://proxy:3001/", timeout=4)

    def test_list_accounts(self, gateway):
        payload = {"alice": {"type": "user_connect"}, "__DEFAULT__": {}}
        with patch("ovpn_sync.openvpn.gateway.requests.request", return_value=_response(payload=payload)) as req:
            assert gateway.list_accounts() == {"alice": {"type": "user_connect"}}
        req.assert_called_once_with("GET", "http://proxy:3001/sacli/userpropget", json=None, timeout=4)

    def test_unwraps_raw_stdout(self, gateway):
        payload = {"stdout": '\x1b[0m{"alice": {"type": "user_connect"}}'}
        with patch("ovpn_sync.openvpn.gateway.requests.request", return_value=_response(payload=payload)):
            assert "alice" in gateway.list_accounts()

    def test_username_is_url_quoted(self, gateway):
        with patch("ovpn_sync.openvpn.gateway.requests.request", return_value=_response(payload={"ok": True})) as req:
            gateway.set_property("a/b", "prop_email", "x@example.com")
        method, url = req.call_args.args
        assert (method, url) == ("POST", "http://proxy:3001/sacli/user/a%2Fb/prop")
        assert req.call_args.kwargs["json"] == {"key": "prop_email", "value": "x@example.com"}

    def test_http_error_is_gateway_error(self, gateway):
        with patch("ovpn_sync.openvpn.gateway.requests.request", return_value=_response(500, text="boom")):
            with pytest.raises(GatewayError, match="status 500"):
                gateway.list_accounts()

    def test_timeout_is_gateway_error(self, gateway):
        with patch("ovpn_sync.openvpn.gateway.requests.request", side_effect=requests.Timeout()):
            with pytest.raises(GatewayError, match="timed out"):
                gateway.list_live_connections()

    def test_connection_error_is_gateway_error(self, gateway):
        with patch("ovpn_sync.openvpn.gateway.requests.request", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(GatewayError, match="refused"):
                gateway.create_account("alice", "pw")


def _settings(**overrides):
    values = {
        "sacli_transport": "docker",
        "openvpn_container_name": "ovpn",
        "sacli_binary": "sacli",
        "sacli_timeout_seconds": 9.0,
        "profile_proxy_url": "http://proxy:3001",
        "openvpn_ssh_host": "",
        "openvpn_ssh_user": "root",
        "openvpn_ssh_password": "",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestBuildGateway:

    def test_docker(self):
        gateway = build_gateway(_settings())
        assert isinstance(gateway, SacliGateway)
        assert isinstance(gateway.runner, DockerExecRunner)
        assert gateway.runner.container == "ovpn"

    def test_ssh(self):
        gateway = build_gateway(_settings(sacli_transport="SSH", openvpn_ssh_host="vpn.example.com"))
        assert isinstance(gateway.runner, SSHRunner)
        assert gateway.runner.client is None

    def test_ssh_requires_host(self):
        with pytest.raises(ValueError, match="OPENVPN_SSH_HOST"):
            build_gateway(_settings(sacli_transport="ssh"))

    def test_proxy(self):
        gateway = build_gateway(_settings(sacli_transport="proxy"))
        assert isinstance(gateway, ProxyGateway)
        assert gateway.timeout == 9.0

    def test_unknown_transport(self):
        with pytest.raises(ValueError, match="Unknown SACLI_TRANSPORT"):
            build_gateway(_settings(sacli_transport="telnet"))
