from typing import Final

from pydantic import Field

from imbue.machine import hookimpl
from imbue.machine.drivers.base import BaseDriver
from imbue.machine.errors import DriverError
from imbue.machine.errors import DriverNotSupportedError
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import RunState

NONE_DRIVER_NAME: Final[DriverName] = DriverName("none")


class NoneDriver(BaseDriver):
    """Driver for a node that already exists and is reached only through its engine URL.

    Nothing is created or destroyed. The node cannot be started, stopped or killed from
    here, removing it only forgets the record, and there is no SSH access.
    """

    url: str = Field(default="", alias="URL", description="Engine URL of the existing node")

    @staticmethod
    def get_driver_name() -> DriverName:
        return NONE_DRIVER_NAME

    @staticmethod
    def is_provisioning_supported() -> bool:
        return False

    def create(self) -> None:
        if not self.url:
            raise DriverError(f"The none driver requires a URL for {self.machine_name}")

    def start(self) -> None:
        raise DriverNotSupportedError(NONE_DRIVER_NAME, "start")

    def stop(self) -> None:
        raise DriverNotSupportedError(NONE_DRIVER_NAME, "stop")

    def kill(self) -> None:
        raise DriverNotSupportedError(NONE_DRIVER_NAME, "kill")

    def remove(self) -> None:
        pass

    def get_state(self) -> RunState:
        return RunState.RUNNING

    def get_url(self) -> str:
        return self.url

    def get_ssh_hostname(self) -> str:
        raise DriverNotSupportedError(NONE_DRIVER_NAME, "SSH")

    def get_ssh_key_path(self) -> str | None:
        raise DriverNotSupportedError(NONE_DRIVER_NAME, "SSH")


@hookimpl
def register_driver() -> type[DriverInterface]:
    """Register the none driver."""
    return NoneDriver
