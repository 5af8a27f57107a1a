from pathlib import Path

from click import ClickException


class BaseMachineError(Exception):
    """Base exception for all machine errors."""


class MachineError(ClickException, BaseMachineError):
    """Base exception for all user-facing machine errors.

    All MachineError subclasses can provide a user_help_text attribute that contains
    additional context to help the user understand and resolve the error.
    """

    user_help_text: str | None = None

    def format_message(self) -> str:
        if self.user_help_text:
            return str(self) + "  [" + self.user_help_text + "]"
        return str(self)


class UserInputError(MachineError):
    """Raised when user input is invalid."""


class InvalidHostNameError(UserInputError, ValueError):
    """Raised when a host name contains characters outside [A-Za-z0-9-.]."""

    user_help_text = "Host names may only contain letters, digits, '-' and '.'."

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid host name: {name!r}")


class HostNotFoundError(MachineError):
    """No host store exists for this name."""

    def __init__(self, name: str, store_path: Path | None = None) -> None:
        self.name = name
        self.store_path = store_path
        super().__init__(f"Host {name!r} does not exist")


# === Drivers ===


class DriverError(MachineError):
    """Base class for errors raised by the built-in drivers.

    Errors raised by third-party drivers are propagated as-is and need not derive from this.
    """


class DriverNotSupportedError(DriverError):
    """Raised when a driver does not support an operation."""

    def __init__(self, driver_name: str, operation: str) -> None:
        self.driver_name = driver_name
        self.operation = operation
        super().__init__(f"Driver {driver_name!r} does not support {operation}")


class UnknownDriverError(MachineError):
    """No driver is registered under this name."""

    user_help_text = "Install the plugin that provides this driver, or check the spelling of the driver name."

    def __init__(self, driver_name: str, registered: list[str]) -> None:
        self.driver_name = driver_name
        self.registered = registered
        super().__init__(f"Unknown driver: {driver_name}. Registered drivers: {', '.join(registered) or '(none)'}")


# === Waiting ===


class RetryExhaustedError(MachineError):
    """Raised when a readiness condition did not become true within the attempt budget."""

    def __init__(self, attempts: int, last_error: str | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        message = f"Too many retries ({attempts} attempts)."
        if last_error:
            message = f"{message} Last error: {last_error}"
        super().__init__(message)


class WaitCancelledError(MachineError):
    """Raised when a wait was aborted through its cancel event."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Wait cancelled after {attempts} attempts")


# === Persistence ===


class PersistenceError(MachineError):
    """Raised when a host record cannot be read, decoded or written."""


class HostConfigError(PersistenceError):
    """Raised when a host's config.json is missing, malformed, or does not match the schema."""

    def __init__(self, config_path: Path, reason: str) -> None:
        self.config_path = config_path
        self.reason = reason
        super().__init__(f"Cannot load host config {config_path}: {reason}")


# === Removal ===


class RemovalError(MachineError):
    """Base class for errors deleting a host's store."""


class StorePathNotFoundError(RemovalError):
    """The store path to delete does not exist."""

    def __init__(self, store_path: Path) -> None:
        self.store_path = store_path
        super().__init__(f"Store path {str(store_path)!r} does not exist")


class StorePathNotDirectoryError(RemovalError):
    """The store path to delete is not a directory."""

    def __init__(self, store_path: Path) -> None:
        self.store_path = store_path
        super().__init__(f"{str(store_path)!r} is not a directory")


class UpgradeNotImplementedError(MachineError, NotImplementedError):
    """Upgrades are handled by provisioners, not by the host lifecycle."""

    def __init__(self) -> None:
        super().__init__("centralized upgrade coming in the provisioner")


# === Provisioning ===


class ProvisionerError(MachineError):
    """Base class for provisioner errors."""


class ProvisionerNotFoundError(ProvisionerError):
    """No registered provisioner is compatible with the host's operating system."""

    user_help_text = "Install a provisioner plugin for this operating system."

    def __init__(self, os_description: str) -> None:
        self.os_description = os_description
        super().__init__(f"No provisioner found for operating system: {os_description}")


class AuthConfigurationError(ProvisionerError):
    """Raised when auth material cannot be distributed to a host."""


class RemoteCommandError(ProvisionerError):
    """Raised when a command run on the host during provisioning fails."""

    def __init__(self, command: str, stderr: str) -> None:
        self.command = command
        self.stderr = stderr
        super().__init__(f"Remote command failed: {command}: {stderr.strip()}")


# === Remote shell ===


class SSHError(BaseMachineError):
    """Base class for remote shell errors."""


class TCPTimeoutError(SSHError):
    """Raised when a TCP port did not accept connections in time."""

    def __init__(self, address: str, timeout_seconds: float) -> None:
        self.address = address
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{address} not reachable after {timeout_seconds}s")


# === Config ===


class ConfigError(MachineError):
    """Base class for config errors."""


class ConfigParseError(ConfigError):
    """Failed to parse a config file."""
