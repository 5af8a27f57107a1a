import socket
import subprocess
import time
from collections.abc import Sequence

from loguru import logger
from pydantic import Field

from imbue.machine.config.data_types import SSHConfig
from imbue.machine.errors import TCPTimeoutError
from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.data_types import RemoteCommand
from imbue.machine.interfaces.data_types import SSHAddress
from imbue.machine.interfaces.provisioner import RemoteConnectionInterface
from imbue.machine.interfaces.remote_shell import RemoteShellInterface
from imbue.machine.provision.connection import PyinfraConnection
from imbue.machine.provision.connection import create_pyinfra_host
from imbue.machine.utils.pure import pure


@pure
def build_ssh_args(address: SSHAddress, ssh_config: SSHConfig, args: Sequence[str] = ()) -> list[str]:
    """Build the argv of an ssh client invocation.

    Returns args like ["ssh", "-o", ..., "-p", port, "-i", key, "user@host", *args].
    """
    ssh_args = ["ssh"]
    ssh_args.extend(["-o", "IdentitiesOnly=yes"])
    ssh_args.extend(["-o", "LogLevel=quiet"])
    ssh_args.extend(["-o", "ConnectionAttempts=3"])
    ssh_args.extend(["-o", f"ConnectTimeout={ssh_config.connect_timeout_seconds}"])
    ssh_args.extend(["-o", "ControlMaster=no"])
    ssh_args.extend(["-o", "ControlPath=none"])

    if not ssh_config.is_strict_host_key_checking:
        ssh_args.extend(["-o", "StrictHostKeyChecking=no"])
        ssh_args.extend(["-o", "UserKnownHostsFile=/dev/null"])

    ssh_args.extend(["-p", str(address.port)])

    if address.key_path:
        ssh_args.extend(["-i", address.key_path])

    ssh_args.append(f"{address.username}@{address.hostname}")
    ssh_args.extend(args)
    return ssh_args


def wait_for_tcp(hostname: str, port: int, timeout_seconds: float) -> None:
    """Wait until hostname:port accepts a TCP connection.

    Uses socket timeouts to pace connection attempts. Raises TCPTimeoutError when the
    deadline passes without a successful connect.
    """
    address = f"{hostname}:{port}"
    deadline = time.monotonic() + timeout_seconds
    while True:
        remaining = deadline - time.monotonic()
        try:
            with socket.create_connection((hostname, port), timeout=max(min(remaining, 2.0), 0.1)):
                return
        except OSError as e:
            logger.trace("{} not reachable yet: {}", address, e)
        if time.monotonic() >= deadline:
            raise TCPTimeoutError(address, timeout_seconds)
        time.sleep(min(0.5, max(deadline - time.monotonic(), 0.0)))


class OpenSSHRemoteShell(RemoteShellInterface):
    """Remote shell backed by the system's OpenSSH client, with pyinfra for provisioning connections."""

    ssh_config: SSHConfig = Field(default_factory=SSHConfig, description="ssh client options")

    def build_command(self, address: SSHAddress, args: Sequence[str]) -> RemoteCommand:
        return RemoteCommand(args=tuple(build_ssh_args(address, self.ssh_config, args)))

    def wait_for_tcp(self, hostname: str, port: int, timeout_seconds: float) -> None:
        wait_for_tcp(hostname, port, timeout_seconds)

    def run(self, command: RemoteCommand) -> CommandResult:
        logger.trace("Running {}", command)
        try:
            completed = subprocess.run(
                list(command.args),
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=self.ssh_config.command_timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                stdout="",
                stderr=f"timed out after {e.timeout}s",
                success=False,
            )
        return CommandResult(
            stdout=completed.stdout,
            stderr=completed.stderr,
            success=completed.returncode == 0,
            returncode=completed.returncode,
        )

    def open_connection(self, address: SSHAddress) -> RemoteConnectionInterface:
        pyinfra_host = create_pyinfra_host(address, self.ssh_config)
        return PyinfraConnection(connector=pyinfra_host)
