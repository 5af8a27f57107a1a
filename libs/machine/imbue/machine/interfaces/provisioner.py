from abc import ABC
from abc import abstractmethod
from pathlib import Path

from pydantic import Field

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.models import FrozenModel
from imbue.machine.models import MutableModel
from imbue.machine.primitives import ProvisionerName


class OsRelease(FrozenModel):
    """The subset of /etc/os-release used to pick a provisioner."""

    id: str = Field(default="", description="Lower-case OS identifier (ID)")
    id_like: tuple[str, ...] = Field(default=(), description="Identifiers of related distributions (ID_LIKE)")
    version_id: str = Field(default="", description="Version number (VERSION_ID)")
    pretty_name: str = Field(default="", description="Human-readable name (PRETTY_NAME)")

    def describe(self) -> str:
        return self.pretty_name or self.id or "unknown"


class RemoteConnectionInterface(MutableModel, ABC):
    """An open channel to a node for running commands and writing files."""

    @abstractmethod
    def execute_command(self, command: str, is_sudo: bool = False) -> CommandResult:
        """Run a shell command on the node and return its result (never raises on non-zero exit)."""

    @abstractmethod
    def put_file(self, content: bytes, remote_path: Path) -> None:
        """Write content to remote_path on the node."""

    @abstractmethod
    def disconnect(self) -> None: ...


class ProvisionerInterface(MutableModel, ABC):
    """Bootstraps OS-level configuration (engine, swarm, TLS) on a running node.

    One provisioner exists per family of operating systems; detect_provisioner() picks the
    first registered one whose is_compatible_with() accepts the node's /etc/os-release.
    """

    driver: DriverInterface = Field(description="Driver of the node being provisioned")
    connection: RemoteConnectionInterface = Field(description="Open connection to the node")
    os_release: OsRelease = Field(description="Parsed /etc/os-release of the node")
    engine_options: EngineOptions = Field(default_factory=EngineOptions, description="Engine daemon options")

    @staticmethod
    @abstractmethod
    def get_name() -> ProvisionerName: ...

    @staticmethod
    @abstractmethod
    def is_compatible_with(os_release: OsRelease) -> bool:
        """Whether this provisioner knows how to configure the given operating system."""

    @abstractmethod
    def provision(self, swarm_options: SwarmOptions, auth_options: AuthOptions) -> None:
        """Install and configure the engine, swarm membership and TLS authentication."""

    @abstractmethod
    def restart_engine(self) -> None:
        """Restart the engine daemon so that new configuration takes effect."""

    @abstractmethod
    def get_remote_auth_dir(self) -> Path:
        """Directory on the node where TLS material is installed."""

    @abstractmethod
    def execute_command(self, command: str, is_sudo: bool = False) -> CommandResult: ...

    @abstractmethod
    def upload_file(self, content: bytes, remote_path: Path) -> None: ...
