from pathlib import Path

from loguru import logger

from imbue.machine.errors import RemoteCommandError
from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.provisioner import ProvisionerInterface

DEFAULT_REMOTE_AUTH_DIR = Path("/etc/docker")


class BaseProvisioner(ProvisionerInterface):
    """Abstract base class for provisioners that run commands through their connection.

    Subclasses implement get_name(), is_compatible_with() and provision().
    """

    def execute_command(self, command: str, is_sudo: bool = False) -> CommandResult:
        return self.connection.execute_command(command, is_sudo=is_sudo)

    def run_checked(self, command: str, is_sudo: bool = False) -> CommandResult:
        """Run a command on the node, raising RemoteCommandError if it fails."""
        result = self.execute_command(command, is_sudo=is_sudo)
        if not result.success:
            raise RemoteCommandError(command, result.stderr)
        return result

    def upload_file(self, content: bytes, remote_path: Path) -> None:
        self.connection.put_file(content, remote_path)

    def get_remote_auth_dir(self) -> Path:
        return DEFAULT_REMOTE_AUTH_DIR

    def restart_engine(self) -> None:
        logger.debug("Restarting engine on {}", self.driver.machine_name)
        self.run_checked("systemctl restart docker", is_sudo=True)
