from abc import ABC
from abc import abstractmethod
from collections.abc import Sequence

from imbue.machine.interfaces.data_types import CommandResult
from imbue.machine.interfaces.data_types import RemoteCommand
from imbue.machine.interfaces.data_types import SSHAddress
from imbue.machine.interfaces.provisioner import RemoteConnectionInterface
from imbue.machine.models import MutableModel


class RemoteShellInterface(MutableModel, ABC):
    """How the host lifecycle talks to a node over SSH.

    Builds ssh invocations, checks TCP reachability, runs commands, and opens the persistent
    connections that provisioners use.
    """

    @abstractmethod
    def build_command(self, address: SSHAddress, args: Sequence[str]) -> RemoteCommand:
        """Build an ssh invocation running args on the node (an interactive shell if args is empty)."""

    @abstractmethod
    def wait_for_tcp(self, hostname: str, port: int, timeout_seconds: float) -> None:
        """Block until hostname:port accepts TCP connections, raising TCPTimeoutError otherwise."""

    @abstractmethod
    def run(self, command: RemoteCommand) -> CommandResult:
        """Run an ssh invocation to completion."""

    @abstractmethod
    def open_connection(self, address: SSHAddress) -> RemoteConnectionInterface:
        """Open a connection for running several commands and uploading files."""
