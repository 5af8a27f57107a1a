from typing import Any

from pydantic import Field
from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema
from pyinfra.api import Host as PyinfraHost

from imbue.machine.models import FrozenModel


class CommandResult(FrozenModel):
    """Result of executing a command, locally or on a host."""

    stdout: str = Field(description="Standard output from the command")
    stderr: str = Field(description="Standard error from the command")
    success: bool = Field(description="True if the command exited with status 0")
    returncode: int | None = Field(default=None, description="Exit status, when known")


class RemoteCommand(FrozenModel):
    """A fully-built ssh invocation, ready to be run by a RemoteShellInterface."""

    args: tuple[str, ...] = Field(description="argv of the ssh client, including the remote command")

    def __str__(self) -> str:
        return " ".join(self.args)


class SSHAddress(FrozenModel):
    """Everything needed to open an SSH session to a node."""

    hostname: str = Field(description="Host name or IP address")
    port: int = Field(description="TCP port of sshd")
    username: str = Field(description="Login user")
    key_path: str | None = Field(default=None, description="Private key file, or None to use the ssh agent")


class PyinfraConnector:
    """Pydantic-compatible wrapper for pyinfra Host objects.

    Stores the actual pyinfra Host instance while providing serialization
    based on the host name and connector class name. Access the underlying
    pyinfra Host via the `host` property for all operations.
    """

    __slots__ = ("_host",)

    def __init__(self, host: PyinfraHost) -> None:
        self._host = host

    @property
    def host(self) -> PyinfraHost:
        return self._host

    @property
    def name(self) -> str:
        return self._host.name

    @property
    def connector_cls_name(self) -> str:
        return self._host.connector_cls.__name__

    def __repr__(self) -> str:
        return f"PyinfraConnector(name={self.name!r}, connector={self.connector_cls_name})"

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                cls._serialize,
                info_arg=False,
            ),
        )

    @classmethod
    def _validate(cls, value: Any) -> "PyinfraConnector":
        if isinstance(value, cls):
            return value
        if isinstance(value, PyinfraHost):
            return cls(value)
        raise TypeError(f"Expected PyinfraConnector or pyinfra Host, got {type(value)}")

    def _serialize(self) -> dict[str, str]:
        return {
            "name": self.name,
            "connector_cls": self.connector_cls_name,
        }
