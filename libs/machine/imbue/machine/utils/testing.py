"""In-process stand-ins for drivers, provisioners and SSH, used by the test suite.

Nothing here touches the network: FakeDriver keeps its node state in memory,
FakeRemoteShell answers readiness checks from counters, and FakeConnection records every
command and upload so tests can assert on them.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Final

from pydantic import Field

from imbue.machine import hookimpl
from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import SSHConfig
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.drivers.base import BaseDriver
from imbue.machine.errors import DriverError
from imbue.machine.errors import TCPTimeoutError
from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.data_types import RemoteCommand
from imbue.machine.interfaces.data_types import SSHAddress
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import OsRelease
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.interfaces.provisioner import RemoteConnectionInterface
from imbue.machine.interfaces.remote_shell import RemoteShellInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import ProvisionerName
from imbue.machine.primitives import RunState
from imbue.machine.provision.base import BaseProvisioner
from imbue.machine.provision.registry import OS_RELEASE_COMMAND
from imbue.machine.shell import build_ssh_args

MOCK_DRIVER_NAME: Final[DriverName] = DriverName("mock")
FAKE_PROVISIONER_NAME: Final[ProvisionerName] = ProvisionerName("fake")
FAKE_OS_RELEASE: Final[str] = 'ID=fakeos\nVERSION_ID="1.0"\nPRETTY_NAME="Fake OS 1.0"\n'
FAKE_IP_ADDRESS: Final[str] = "10.0.0.2"
FAKE_INSTALL_COMMAND: Final[str] = "install-engine"


class FakeDriver(BaseDriver):
    """Driver whose node lives in memory.

    state and instance_id are persisted like a real driver's fields; the knobs and call
    records are excluded from config.json.
    """

    state: RunState = Field(default=RunState.NONE, description="Current state of the fake node")
    instance_id: str = Field(default="", description="Identifier assigned at create time")

    pending_state_calls: int = Field(
        default=0,
        exclude=True,
        description="Number of get_state() calls that report STARTING before the real state shows",
    )
    is_remove_failing: bool = Field(default=False, exclude=True, description="Make remove() raise")
    is_get_state_failing: bool = Field(default=False, exclude=True, description="Make get_state() raise")
    get_state_calls: int = Field(default=0, exclude=True, description="Number of get_state() calls so far")
    calls: list[str] = Field(default_factory=list, exclude=True, description="Lifecycle methods called, in order")

    @staticmethod
    def get_driver_name() -> DriverName:
        return MOCK_DRIVER_NAME

    def create(self) -> None:
        self.calls.append("create")
        self.instance_id = f"mock-{self.machine_name}"
        self.ip_address = FAKE_IP_ADDRESS
        self.state = RunState.RUNNING

    def start(self) -> None:
        self.calls.append("start")
        self.state = RunState.RUNNING

    def stop(self) -> None:
        self.calls.append("stop")
        self.state = RunState.STOPPED

    def kill(self) -> None:
        self.calls.append("kill")
        self.state = RunState.STOPPED

    def remove(self) -> None:
        self.calls.append("remove")
        if self.is_remove_failing:
            raise DriverError(f"cannot remove {self.machine_name}")
        self.state = RunState.NONE

    def get_state(self) -> RunState:
        self.get_state_calls += 1
        if self.is_get_state_failing:
            raise DriverError("state unavailable")
        if self.get_state_calls <= self.pending_state_calls:
            return RunState.STARTING
        return self.state


class FakeConnection(RemoteConnectionInterface):
    """Connection that answers os-release queries and records everything else."""

    os_release_content: str = Field(default=FAKE_OS_RELEASE, description="Content served for /etc/os-release")
    failing_commands: tuple[str, ...] = Field(default=(), description="Commands that exit non-zero")
    commands: list[str] = Field(default_factory=list, description="Commands executed, in order")
    sudo_commands: list[str] = Field(default_factory=list, description="Commands executed with sudo")
    uploads: dict[str, bytes] = Field(default_factory=dict, description="Uploaded content by remote path")
    is_disconnected: bool = Field(default=False, description="Whether disconnect() was called")

    def execute_command(self, command: str, is_sudo: bool = False) -> CommandResult:
        self.commands.append(command)
        if is_sudo:
            self.sudo_commands.append(command)
        if command in self.failing_commands:
            return CommandResult(stdout="", stderr="command failed", success=False, returncode=1)
        if command == OS_RELEASE_COMMAND:
            return CommandResult(stdout=self.os_release_content, stderr="", success=True, returncode=0)
        return CommandResult(stdout="", stderr="", success=True, returncode=0)

    def put_file(self, content: bytes, remote_path: Path) -> None:
        self.uploads[str(remote_path)] = content

    def disconnect(self) -> None:
        self.is_disconnected = True


class FakeRemoteShell(RemoteShellInterface):
    """Remote shell whose SSH checks succeed after a configurable number of failures."""

    connection: FakeConnection = Field(default_factory=FakeConnection, description="Connection handed to provisioners")
    ssh_config: SSHConfig = Field(default_factory=SSHConfig, description="Options used to build ssh argv")
    failing_ssh_runs: int = Field(default=0, description="Number of ssh runs that fail before one succeeds")
    is_tcp_unreachable: bool = Field(default=False, description="Make every TCP check time out")
    run_commands: list[RemoteCommand] = Field(default_factory=list, description="ssh invocations run, in order")
    tcp_checks: list[str] = Field(default_factory=list, description="host:port pairs checked, in order")

    def build_command(self, address: SSHAddress, args: Sequence[str]) -> RemoteCommand:
        return RemoteCommand(args=tuple(build_ssh_args(address, self.ssh_config, args)))

    def wait_for_tcp(self, hostname: str, port: int, timeout_seconds: float) -> None:
        address = f"{hostname}:{port}"
        self.tcp_checks.append(address)
        if self.is_tcp_unreachable:
            raise TCPTimeoutError(address, timeout_seconds)

    def run(self, command: RemoteCommand) -> CommandResult:
        self.run_commands.append(command)
        if len(self.run_commands) <= self.failing_ssh_runs:
            return CommandResult(stdout="", stderr="Connection refused\n", success=False, returncode=255)
        return CommandResult(stdout="", stderr="", success=True, returncode=0)

    def open_connection(self, address: SSHAddress) -> RemoteConnectionInterface:
        return self.connection


class FakeProvisioner(BaseProvisioner):
    """Provisioner for the fake OS: runs one install command and nothing else."""

    @staticmethod
    def get_name() -> ProvisionerName:
        return FAKE_PROVISIONER_NAME

    @staticmethod
    def is_compatible_with(os_release: OsRelease) -> bool:
        return os_release.id == "fakeos"

    def provision(self, swarm_options: SwarmOptions, auth_options: AuthOptions) -> None:
        self.run_checked(FAKE_INSTALL_COMMAND, is_sudo=True)


class FakePlugin:
    """Plugin registering FakeDriver and FakeProvisioner."""

    @hookimpl
    def register_driver(self) -> type[DriverInterface]:
        return FakeDriver

    @hookimpl
    def register_provisioner(self) -> type[ProvisionerInterface]:
        return FakeProvisioner
