import io
from pathlib import Path

from loguru import logger
from paramiko import SSHException
from pydantic import Field
from pyinfra.api import Host as PyinfraHost
from pyinfra.api import State as PyinfraState
from pyinfra.api.command import StringCommand
from pyinfra.api.inventory import Inventory

from imbue.machine.config.data_types import SSHConfig
from imbue.machine.errors import RemoteCommandError
from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.data_types import PyinfraConnector
from imbue.machine.interfaces.data_types import SSHAddress
from imbue.machine.interfaces.provisioner import RemoteConnectionInterface


def create_pyinfra_host(address: SSHAddress, ssh_config: SSHConfig) -> PyinfraHost:
    """Create a pyinfra host with the SSH connector for the given address."""
    host_data: dict[str, object] = {
        "ssh_user": address.username,
        "ssh_port": address.port,
        "ssh_connect_timeout": int(ssh_config.connect_timeout_seconds),
    }
    if address.key_path:
        host_data["ssh_key"] = address.key_path
    if ssh_config.is_strict_host_key_checking:
        host_data["ssh_strict_host_key_checking"] = "yes"
    else:
        host_data["ssh_strict_host_key_checking"] = "no"
        host_data["ssh_known_hosts_file"] = "/dev/null"

    names_data = ([(address.hostname, host_data)], {})
    inventory = Inventory(names_data)
    state = PyinfraState(inventory=inventory)

    pyinfra_host = inventory.get_host(address.hostname)
    pyinfra_host.init(state)
    return pyinfra_host


class PyinfraConnection(RemoteConnectionInterface):
    """Remote connection that proxies commands and file writes through a pyinfra connector."""

    connector: PyinfraConnector = Field(frozen=True, description="Pyinfra connector for the node")

    def _ensure_connected(self) -> None:
        if not self.connector.host.connected:
            self.connector.host.connect(raise_exceptions=True)

    def execute_command(self, command: str, is_sudo: bool = False) -> CommandResult:
        logger.debug("Executing command on {}: {}", self.connector.name, command)
        try:
            self._ensure_connected()
            success, output = self.connector.host.run_shell_command(StringCommand(command), _sudo=is_sudo)
        except (EOFError, SSHException) as e:
            raise RemoteCommandError(command, f"connection error: {e}") from e
        return CommandResult(stdout=output.stdout, stderr=output.stderr, success=success)

    def put_file(self, content: bytes, remote_path: Path) -> None:
        logger.debug("Uploading {} bytes to {}:{}", len(content), self.connector.name, remote_path)
        try:
            self._ensure_connected()
            is_written = self.connector.host.put_file(io.BytesIO(content), str(remote_path))
        except (EOFError, SSHException) as e:
            raise RemoteCommandError(f"upload {remote_path}", f"connection error: {e}") from e
        if not is_written:
            raise RemoteCommandError(f"upload {remote_path}", "pyinfra reported failure")

    def disconnect(self) -> None:
        if self.connector.host.connected:
            logger.trace("Disconnecting pyinfra host {}", self.connector.name)
            self.connector.host.disconnect()
