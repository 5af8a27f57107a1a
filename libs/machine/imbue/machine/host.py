import json
import shutil
from pathlib import Path
from threading import Event
from typing import Any

from loguru import logger
from pydantic import Field
from pydantic import SerializeAsAny
from pydantic import ValidationError

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import CONFIG_FILENAME
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import HostOptions
from imbue.machine.config.data_types import MachineContext
from imbue.machine.config.data_types import OptionalPath
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.drivers.base import get_ssh_address
from imbue.machine.drivers.registry import decode_driver
from imbue.machine.drivers.registry import new_driver
from imbue.machine.errors import HostConfigError
from imbue.machine.errors import HostNotFoundError
from imbue.machine.errors import PersistenceError
from imbue.machine.errors import StorePathNotDirectoryError
from imbue.machine.errors import StorePathNotFoundError
from imbue.machine.errors import UpgradeNotImplementedError
from imbue.machine.errors import UserInputError
from imbue.machine.interfaces.data_types import RemoteCommand
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.interfaces.provisioner import RemoteConnectionInterface
from imbue.machine.interfaces.remote_shell import RemoteShellInterface
from imbue.machine.models import PersistedFrozenModel
from imbue.machine.models import PersistedMutableModel
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.primitives import RunState
from imbue.machine.provision import auth
from imbue.machine.provision.registry import detect_provisioner
from imbue.machine.readiness import MachineInState
from imbue.machine.readiness import SSHAvailable
from imbue.machine.shell import OpenSSHRemoteShell
from imbue.machine.utils.file_utils import atomic_write
from imbue.machine.utils.polling import wait_for_config
from imbue.machine.utils.pure import pure


class HostMetadata(PersistedFrozenModel):
    """The part of config.json needed to pick the driver before decoding the rest."""

    driver_name: DriverName = Field(description="Tag of the driver that owns the node")
    host_options: HostOptions = Field(
        default_factory=HostOptions,
        alias="HostConfig",
        description="Options the host was created with",
    )


class LegacyHostFields(PersistedFrozenModel):
    """Top-level fields written by old versions. Read once for migration, never written back."""

    swarm_host: str = Field(default="", description="Old location of SwarmOptions.host")
    swarm_master: bool = Field(default=False, description="Old location of SwarmOptions.master")
    swarm_discovery: str = Field(default="", description="Old location of SwarmOptions.discovery")
    ca_cert_path: OptionalPath = Field(default=None, description="Old location of AuthOptions.ca_cert_path")
    private_key_path: OptionalPath = Field(default=None, description="Old location of AuthOptions.private_key_path")
    server_cert_path: OptionalPath = Field(default=None, description="Old location of AuthOptions.server_cert_path")
    server_key_path: OptionalPath = Field(default=None, description="Old location of AuthOptions.server_key_path")
    client_cert_path: OptionalPath = Field(default=None, description="Old location of AuthOptions.client_cert_path")
    engine_options: EngineOptions | None = Field(default=None, description="Old location of HostOptions.engine_config")
    swarm_options: SwarmOptions | None = Field(default=None, description="Old location of HostOptions.swarm_config")

    def has_swarm_fields(self) -> bool:
        return bool(self.swarm_host or self.swarm_master or self.swarm_discovery)

    def get_cert_paths(self) -> dict[str, Path]:
        paths = {
            "ca_cert_path": self.ca_cert_path,
            "private_key_path": self.private_key_path,
            "server_cert_path": self.server_cert_path,
            "server_key_path": self.server_key_path,
            "client_cert_path": self.client_cert_path,
        }
        return {key: value for key, value in paths.items() if value is not None}


@pure
def migrate_host_options(host_options: HostOptions, legacy: LegacyHostFields, driver_name: DriverName) -> HostOptions:
    """Fold legacy top-level fields into HostOptions.

    Values already present in HostOptions always win; legacy values only fill gaps.
    """
    updates: dict[str, Any] = {}

    if host_options.driver is None:
        updates["driver"] = driver_name

    if host_options.engine_config is None and legacy.engine_options is not None:
        updates["engine_config"] = legacy.engine_options

    if host_options.swarm_config is None:
        if legacy.swarm_options is not None:
            updates["swarm_config"] = legacy.swarm_options
        elif legacy.has_swarm_fields():
            updates["swarm_config"] = SwarmOptions(
                is_swarm=bool(legacy.swarm_master or legacy.swarm_discovery),
                master=legacy.swarm_master,
                host=legacy.swarm_host,
                discovery=legacy.swarm_discovery,
            )

    auth_config = host_options.auth_config
    auth_updates = {
        key: value for key, value in legacy.get_cert_paths().items() if getattr(auth_config, key) is None
    }
    if auth_updates:
        updates["auth_config"] = auth_config.model_copy(update=auth_updates)

    if not updates:
        return host_options
    return host_options.model_copy(update=updates)


def validate_host_name(name: str) -> HostName:
    """Return name unchanged if it only contains [A-Za-z0-9-.], else raise InvalidHostNameError."""
    return HostName(name)


def _read_host_config(name: str, store_path: Path, machine_ctx: MachineContext) -> dict[str, Any]:
    """Decode <store_path>/config.json into Host field values.

    The driver type is discovered from a first decode into HostMetadata, then the persisted
    "Driver" object is decoded onto a fresh driver of that type.
    """
    config_path = store_path / CONFIG_FILENAME
    try:
        raw = json.loads(config_path.read_text())
    except OSError as e:
        raise HostConfigError(config_path, str(e)) from e
    except json.JSONDecodeError as e:
        raise HostConfigError(config_path, f"invalid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise HostConfigError(config_path, "expected a JSON object")

    try:
        metadata = HostMetadata.model_validate(raw)
    except ValidationError as e:
        raise HostConfigError(config_path, str(e)) from e

    auth_config = metadata.host_options.auth_config
    driver = new_driver(
        metadata.driver_name,
        name,
        store_path,
        auth_config.ca_cert_path,
        auth_config.private_key_path,
        machine_ctx.pm,
    )

    raw_driver = raw.get("Driver")
    if raw_driver is not None and not isinstance(raw_driver, dict):
        raise HostConfigError(config_path, "Driver must be a JSON object")
    try:
        driver = decode_driver(driver, raw_driver)
        legacy = LegacyHostFields.model_validate(raw)
    except ValidationError as e:
        raise HostConfigError(config_path, str(e)) from e

    return {
        "driver_name": metadata.driver_name,
        "driver": driver,
        "host_options": migrate_host_options(metadata.host_options, legacy, metadata.driver_name),
    }


def new_host(
    name: str,
    driver_name: str,
    host_options: HostOptions,
    machine_ctx: MachineContext,
    remote_shell: RemoteShellInterface | None = None,
) -> "Host":
    """Build an in-memory host with a fresh driver. Nothing is created or written."""
    host_name = validate_host_name(name)
    store_path = machine_ctx.config.get_store_path(host_name)
    auth_config = host_options.auth_config
    driver = new_driver(
        driver_name,
        host_name,
        store_path,
        auth_config.ca_cert_path,
        auth_config.private_key_path,
        machine_ctx.pm,
    )
    return Host(
        name=host_name,
        driver_name=DriverName(driver_name),
        driver=driver,
        store_path=store_path,
        host_options=host_options,
        machine_ctx=machine_ctx,
        remote_shell=remote_shell or OpenSSHRemoteShell(ssh_config=machine_ctx.config.ssh),
    )


def load_host(
    name: str,
    store_path: Path,
    machine_ctx: MachineContext,
    remote_shell: RemoteShellInterface | None = None,
) -> "Host":
    """Load a host from its store directory, raising HostNotFoundError if the directory is missing."""
    if not store_path.exists():
        raise HostNotFoundError(name, store_path)
    host_name = validate_host_name(name)
    return Host(
        name=host_name,
        store_path=store_path,
        machine_ctx=machine_ctx,
        remote_shell=remote_shell or OpenSSHRemoteShell(ssh_config=machine_ctx.config.ssh),
        **_read_host_config(host_name, store_path, machine_ctx),
    )


class Host(PersistedMutableModel):
    """One managed node: its driver, its options, and its on-disk store.

    Every operation that changes the node is followed by save_config() before it returns.
    The driver is the source of truth for run state, so nothing about state is cached here.
    """

    name: HostName = Field(frozen=True, exclude=True, description="Name of the host (the store directory's name)")
    driver_name: DriverName = Field(description="Tag of the driver that owns the node")
    driver: SerializeAsAny[DriverInterface] = Field(description="Driver controlling the node")
    store_path: Path = Field(description="Directory holding config.json and driver files")
    host_options: HostOptions = Field(
        default_factory=HostOptions,
        alias="HostConfig",
        description="Options the host was created with",
    )
    machine_ctx: MachineContext = Field(frozen=True, exclude=True, repr=False, description="The machine context")
    remote_shell: RemoteShellInterface = Field(
        exclude=True,
        repr=False,
        description="How this host reaches its node over SSH",
    )

    @property
    def config_path(self) -> Path:
        return self.store_path / CONFIG_FILENAME

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create(self, name: str | None = None, cancel_event: Event | None = None) -> None:
        """Create the node, record it, wait for SSH, and provision it.

        Nothing is rolled back on failure: infrastructure the driver already created stays in
        place and is left for the operator to remove.
        """
        if name is not None and name != self.name:
            raise UserInputError(f"Cannot create host {name!r} from the record of {self.name!r}")

        logger.info("Creating {} with driver {}", self.name, self.driver_name)
        self.store_path.mkdir(parents=True, exist_ok=True)
        try:
            self.driver.create()
            self.save_config()

            if not self.driver.is_provisioning_supported():
                logger.debug("Driver {} does not support provisioning, skipping", self.driver_name)
                return

            logger.info("Waiting for SSH on {}", self.name)
            self.wait_for_ssh(cancel_event)
            provisioner = self.detect_provisioner()
            try:
                logger.info("Provisioning {} with {}", self.name, provisioner.get_name())
                provisioner.provision(self.host_options.get_swarm_options(), self.host_options.auth_config)
            finally:
                provisioner.connection.disconnect()
        except Exception:
            logger.error(
                "Creating {} failed; anything already created is left in place (store: {})",
                self.name,
                self.store_path,
            )
            raise
        logger.info("Created {}", self.name)

    def start(self, cancel_event: Event | None = None) -> None:
        self.driver.start()
        self.save_config()
        self.wait_for_state(RunState.RUNNING, cancel_event)

    def stop(self, cancel_event: Event | None = None) -> None:
        self.driver.stop()
        self.save_config()
        self.wait_for_state(RunState.STOPPED, cancel_event)

    def kill(self, cancel_event: Event | None = None) -> None:
        self.driver.kill()
        self.save_config()
        self.wait_for_state(RunState.STOPPED, cancel_event)

    def restart(self, cancel_event: Event | None = None) -> None:
        """Stop the node if it is running, then start it. A node that is not running is only started."""
        if self.is_in_state(RunState.RUNNING):
            self.stop(cancel_event)
            self.wait_for_state(RunState.STOPPED, cancel_event)

        self.start(cancel_event)
        self.wait_for_state(RunState.RUNNING, cancel_event)
        self.save_config()

    def remove(self, force: bool = False) -> None:
        """Remove the node and delete the store directory.

        With force, a failure of the driver's remove() is logged and removal continues.
        """
        try:
            self.driver.remove()
        except Exception as e:
            if not force:
                raise
            logger.warning("Error removing {} (continuing because of force): {}", self.name, e)

        self.save_config()
        self._remove_store_path()
        logger.info("Removed {}", self.name)

    def _remove_store_path(self) -> None:
        if not self.store_path.exists():
            raise StorePathNotFoundError(self.store_path)
        if not self.store_path.is_dir():
            raise StorePathNotDirectoryError(self.store_path)
        shutil.rmtree(self.store_path)

    def upgrade(self) -> None:
        raise UpgradeNotImplementedError()

    # =========================================================================
    # State
    # =========================================================================

    def is_in_state(self, desired_state: RunState) -> bool:
        """Query the driver for its current state. Query errors count as "not in state"."""
        return MachineInState(driver=self.driver, desired_state=desired_state)()

    def wait_for_state(self, desired_state: RunState, cancel_event: Event | None = None) -> None:
        check = MachineInState(driver=self.driver, desired_state=desired_state)
        wait_for_config(check, self.machine_ctx.config.wait, cancel_event)

    def wait_for_ssh(self, cancel_event: Event | None = None) -> None:
        """Poll until `ssh <node> exit 0` succeeds, raising RetryExhaustedError with the last cause otherwise."""
        check = SSHAvailable(
            driver=self.driver,
            remote_shell=self.remote_shell,
            tcp_timeout_seconds=self.machine_ctx.config.wait.tcp_timeout_seconds,
        )
        wait_for_config(check, self.machine_ctx.config.wait, cancel_event)

    # =========================================================================
    # Access
    # =========================================================================

    def get_url(self) -> str:
        return self.driver.get_url()

    def get_ssh_command(self, *args: str) -> RemoteCommand:
        """Build an ssh invocation for the node. With no args, it opens an interactive shell."""
        return self.remote_shell.build_command(get_ssh_address(self.driver), args)

    # =========================================================================
    # Provisioning
    # =========================================================================

    def detect_provisioner(self, connection: RemoteConnectionInterface | None = None) -> ProvisionerInterface:
        return detect_provisioner(self.driver, self.machine_ctx.pm, self.remote_shell, connection)

    def configure_auth(self) -> None:
        """Install the TLS material named in AuthOptions on the node and restart its engine."""
        provisioner = self.detect_provisioner()
        try:
            auth.configure_auth(provisioner, self.get_auth_options())
        finally:
            provisioner.connection.disconnect()

    def get_auth_options(self) -> AuthOptions:
        return self.host_options.auth_config

    # =========================================================================
    # Persistence
    # =========================================================================

    def load_config(self) -> None:
        """Re-read config.json, replacing the driver with a freshly decoded one."""
        for field_name, value in _read_host_config(self.name, self.store_path, self.machine_ctx).items():
            setattr(self, field_name, value)

    def save_config(self) -> None:
        """Write config.json atomically, readable only by the owner."""
        data = self.model_dump_json(by_alias=True, indent=2)
        try:
            atomic_write(self.config_path, data)
        except OSError as e:
            raise PersistenceError(f"Cannot save host config {self.config_path}: {e}") from e
        logger.trace("Saved config of {} to {}", self.name, self.config_path)
