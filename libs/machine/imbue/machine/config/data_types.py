from pathlib import Path
from typing import Annotated
from typing import Any

import pluggy
from pydantic import BeforeValidator
from pydantic import ConfigDict
from pydantic import Field

from imbue.machine.models import FrozenModel
from imbue.machine.models import PersistedFrozenModel
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import LogLevel
from imbue.machine.primitives import NonNegativeFloat
from imbue.machine.primitives import PositiveInt

CONFIG_FILENAME = "config.json"
SETTINGS_FILENAME = "config.toml"
MACHINES_DIRNAME = "machines"
CERTS_DIRNAME = "certs"


def _empty_to_none(value: Any) -> Any:
    # Records written by older versions store unset paths as "".
    if value == "":
        return None
    return value


def _none_to_empty_tuple(value: Any) -> Any:
    if value is None:
        return ()
    return value


OptionalPath = Annotated[Path | None, BeforeValidator(_empty_to_none)]
StrTuple = Annotated[tuple[str, ...], BeforeValidator(_none_to_empty_tuple)]


# === Host option blocks (persisted under HostConfig) ===


class EngineOptions(PersistedFrozenModel):
    """Settings for the container engine daemon that the provisioner installs on the node."""

    arbitrary_flags: StrTuple = Field(default=(), description="Extra flags passed verbatim to the daemon")
    dns: StrTuple = Field(default=(), description="DNS servers for the daemon")
    graph_dir: str = Field(default="", description="Root of the daemon's data directory")
    env: StrTuple = Field(default=(), description="KEY=VALUE environment for the daemon")
    ipv6: bool = Field(default=False, description="Enable IPv6 networking")
    insecure_registry: StrTuple = Field(default=(), description="Registries allowed without TLS")
    labels: StrTuple = Field(default=(), description="Daemon labels")
    log_level: str = Field(default="", description="Daemon log level")
    storage_driver: str = Field(default="", description="Daemon storage driver")
    selinux_enabled: bool = Field(default=False, description="Enable SELinux support")
    tls_verify: bool = Field(default=True, description="Require TLS client verification")
    registry_mirror: StrTuple = Field(default=(), description="Registry mirrors")
    install_url: str = Field(default="", alias="InstallURL", description="URL of the engine install script")


class SwarmOptions(PersistedFrozenModel):
    """Swarm membership settings, applied by the provisioner."""

    is_swarm: bool = Field(default=False, description="Whether the host joins a swarm")
    address: str = Field(default="", description="Address advertised to the swarm")
    discovery: str = Field(default="", description="Discovery service URL")
    master: bool = Field(default=False, description="Whether the host is a swarm master")
    host: str = Field(default="", description="Listen address of the swarm manager")
    image: str = Field(default="", description="Swarm image")
    strategy: str = Field(default="", description="Scheduling strategy")
    heartbeat: int = Field(default=0, description="Heartbeat interval in seconds")
    overcommit: float = Field(default=0.0, description="Resource overcommit ratio")
    arbitrary_flags: StrTuple = Field(default=(), description="Extra flags passed to the swarm manager")


class AuthOptions(PersistedFrozenModel):
    """Locations of TLS material on the local machine and on the node."""

    store_path: OptionalPath = Field(default=None, description="Directory holding the host's certificates")
    ca_cert_path: OptionalPath = Field(default=None, description="Local CA certificate")
    ca_private_key_path: OptionalPath = Field(default=None, description="Local CA private key")
    private_key_path: OptionalPath = Field(default=None, description="Local private key used to sign certificates")
    server_cert_path: OptionalPath = Field(default=None, description="Local server certificate")
    server_key_path: OptionalPath = Field(default=None, description="Local server key")
    client_cert_path: OptionalPath = Field(default=None, description="Local client certificate")
    client_key_path: OptionalPath = Field(default=None, description="Local client key")
    ca_cert_remote_path: OptionalPath = Field(default=None, description="CA certificate location on the node")
    server_cert_remote_path: OptionalPath = Field(default=None, description="Server certificate location on the node")
    server_key_remote_path: OptionalPath = Field(default=None, description="Server key location on the node")


class HostOptions(PersistedFrozenModel):
    """The authoritative options bundle of a host (persisted as HostConfig)."""

    driver: DriverName | None = Field(default=None, description="Driver tag the host was created with")
    memory: int = Field(default=0, description="Memory hint in MB (0 means driver default)")
    disk: int = Field(default=0, description="Disk hint in MB (0 means driver default)")
    engine_config: EngineOptions | None = Field(default=None, description="Engine daemon options")
    swarm_config: SwarmOptions | None = Field(default=None, description="Swarm options")
    auth_config: AuthOptions = Field(default_factory=AuthOptions, description="TLS material locations")

    def get_swarm_options(self) -> SwarmOptions:
        return self.swarm_config if self.swarm_config is not None else SwarmOptions()


# === Library configuration ===


class WaitConfig(FrozenModel):
    """Polling parameters used by every state-waiting operation."""

    poll_interval_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(3.0),
        description="Seconds to sleep between readiness checks",
    )
    max_attempts: PositiveInt = Field(
        default=PositiveInt(60),
        description="Maximum number of readiness checks before giving up",
    )
    tcp_timeout_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(5.0),
        description="How long a single readiness check waits for the SSH port to accept connections",
    )


class SSHConfig(FrozenModel):
    """Options for the ssh client used to reach hosts."""

    connect_timeout_seconds: PositiveInt = Field(
        default=PositiveInt(10),
        description="Value passed to ssh -o ConnectTimeout",
    )
    is_strict_host_key_checking: bool = Field(
        default=False,
        description="Verify host keys (hosts are usually freshly created, so this is off by default)",
    )
    command_timeout_seconds: NonNegativeFloat = Field(
        default=NonNegativeFloat(60.0),
        description="Timeout for a single remote command",
    )


class LoggingConfig(FrozenModel):
    """Logging configuration."""

    console_level: LogLevel = Field(default=LogLevel.INFO, description="Log level for console output")
    file_level: LogLevel = Field(default=LogLevel.DEBUG, description="Log level for file logging")
    log_dir: Path = Field(
        default=Path("logs"),
        description="Directory for log files (relative to the storage path if relative)",
    )
    max_log_size_mb: PositiveInt = Field(default=PositiveInt(10), description="Maximum size of each log file in MB")
    max_log_files: PositiveInt = Field(default=PositiveInt(20), description="Maximum number of log files to keep")


class MachineConfig(FrozenModel):
    """Top-level configuration for the machine library."""

    storage_path: Path = Field(
        default=Path("~/.machine"),
        description="Base directory holding host stores, certificates and logs",
    )
    wait: WaitConfig = Field(default_factory=WaitConfig, description="Readiness polling parameters")
    ssh: SSHConfig = Field(default_factory=SSHConfig, description="ssh client options")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging options")

    def get_machines_dir(self) -> Path:
        return self.storage_path.expanduser() / MACHINES_DIRNAME

    def get_certs_dir(self) -> Path:
        return self.storage_path.expanduser() / CERTS_DIRNAME

    def get_store_path(self, name: str) -> Path:
        return self.get_machines_dir() / name


class MachineContext(FrozenModel):
    """Context object containing configuration and plugin manager.

    Passed to every host so that drivers and provisioners can be looked up and
    waits can be tuned without global state.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    config: MachineConfig = Field(description="Configuration for machine")
    pm: pluggy.PluginManager = Field(description="Plugin manager for driver and provisioner registration")
