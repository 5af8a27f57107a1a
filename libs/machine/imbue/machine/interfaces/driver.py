from abc import ABC
from abc import abstractmethod
from pathlib import Path

from pydantic import Field

from imbue.machine.config.data_types import OptionalPath
from imbue.machine.models import PersistedMutableModel
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import RunState


class DriverInterface(PersistedMutableModel, ABC):
    """A driver creates and controls one node on one kind of infrastructure.

    Drivers are pydantic models: their fields are persisted under the "Driver" key of the
    host's config.json and restored on load, so anything a driver learns while creating the
    node (IP address, instance id, ...) must live in a field.

    Every method may raise. Callers propagate driver exceptions unchanged.
    """

    machine_name: str = Field(description="Name of the host this driver belongs to")
    store_path: Path = Field(description="Directory where the driver may keep per-host files")
    ca_cert_path: OptionalPath = Field(default=None, description="CA certificate for the host's TLS material")
    private_key_path: OptionalPath = Field(default=None, description="Private key for the host's TLS material")

    @staticmethod
    @abstractmethod
    def get_driver_name() -> DriverName:
        """Return the tag under which this driver is registered and persisted."""

    @staticmethod
    def is_provisioning_supported() -> bool:
        """Whether create() should wait for SSH and run a provisioner on the new node."""
        return True

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    def create(self) -> None:
        """Create the node. It need not be reachable when this returns."""

    @abstractmethod
    def start(self) -> None:
        """Start a stopped node."""

    @abstractmethod
    def stop(self) -> None:
        """Gracefully stop a running node."""

    @abstractmethod
    def kill(self) -> None:
        """Forcefully stop a running node."""

    @abstractmethod
    def remove(self) -> None:
        """Delete the node and any infrastructure created for it."""

    @abstractmethod
    def get_state(self) -> RunState:
        """Query the node's current state from the infrastructure."""

    # =========================================================================
    # Addressing
    # =========================================================================

    @abstractmethod
    def get_ip(self) -> str:
        """Return the node's IP address."""

    @abstractmethod
    def get_url(self) -> str:
        """Return the URL of the engine endpoint on the node (e.g. tcp://1.2.3.4:2376)."""

    @abstractmethod
    def get_ssh_hostname(self) -> str: ...

    @abstractmethod
    def get_ssh_port(self) -> int: ...

    @abstractmethod
    def get_ssh_username(self) -> str: ...

    @abstractmethod
    def get_ssh_key_path(self) -> str | None:
        """Return the private key used for SSH, or None to rely on the ssh agent."""
