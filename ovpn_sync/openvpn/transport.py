"""
Ways to reach sacli. A runner takes sacli arguments and returns raw stdout;
every failure (non-zero exit, timeout, missing binary, lost connection) is a GatewayError.
"""
import logging
import shlex
import socket
import subprocess
import threading

import paramiko

from ovpn_sync.exceptions import GatewayError

logger = logging.getLogger(__name__)


def describe_command(args: list[str]) -> str:
    """Command line for logs and errors, with passwords masked."""
    shown = []
    mask_next = False
    for arg in args:
        shown.append("***" if mask_next else arg)
        mask_next = arg == "--new_pass"
    return "sacli " + " ".join(shown)


class DockerExecRunner:
    """docker exec <container> sacli ... on the local Docker daemon."""

    def __init__(self, container: str, binary: str = "sacli", timeout: float = 20.0):
        self.container = container
        self.binary = binary
        self.timeout = timeout

    def run(self, args: list[str]) -> str:
        cmd = ["docker", "exec", self.container, self.binary, *args]
        described = describe_command(args)
        logger.debug("Executing %s in %s", described, self.container)
        try:
            result = subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip() or f"exit code {e.returncode}"
            raise GatewayError(f"{described} failed: {detail}", command=described) from e
        except subprocess.TimeoutExpired as e:
            raise GatewayError(f"{described} timed out after {self.timeout}s", command=described) from e
        except FileNotFoundError as e:
            raise GatewayError("docker not found; cannot reach the OpenVPN container", command=described) from e
        if result.stderr and result.stderr.strip() and "WARNING" not in result.stderr:
            logger.warning("sacli stderr: %s", result.stderr.strip())
        return result.stdout


class SSHRunner:
    """Runs sacli on the Access Server host over SSH. One connection, reused across calls."""

    def __init__(self, host, username, password, binary="sacli", timeout=20.0):
        self.host = host
        self.username = username
        self.password = password
        self.binary = binary
        self.timeout = timeout
        self.client = None
        self._lock = threading.Lock()

    def connect(self) -> paramiko.SSHClient:
        """Return the shared client, opening it on first use."""
        with self._lock:
            if self.client is not None:
                return self.client
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            client.connect(
                hostname=self.host,
                username=self.username,
                password=self.password,
                allow_agent=False,
                look_for_keys=False,
                timeout=self.timeout,
            )
            self.client = client
            return client

    def run(self, args: list[str]) -> str:
        described = describe_command(args)
        command = shlex.join([self.binary, *args])
        client = None
        try:
            client = self.connect()
            _stdin, stdout, stderr = client.exec_command(command, timeout=self.timeout)
            output = stdout.read().decode()
            error = stderr.read().decode()
            exit_code = stdout.channel.recv_exit_status()
        except socket.timeout as e:
            self._discard(client)
            raise GatewayError(f"{described} timed out after {self.timeout}s", command=described) from e
        except Exception as e:
            self._discard(client)
            raise GatewayError(f"SSH to {self.host} failed: {e}", command=described) from e
        if exit_code != 0:
            raise GatewayError(f"{described} failed: {error.strip() or f'exit code {exit_code}'}", command=described)
        return output

    def _discard(self, client):
        # Only drop the connection this call used; another thread may already have reconnected
        with self._lock:
            if client is not None and self.client is client:
                self.client = None
        if client is not None:
            client.close()

    def close(self):
        with self._lock:
            client, self.client = self.client, None
        if client is not None:
            client.close()
