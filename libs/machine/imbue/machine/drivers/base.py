from pydantic import Field

from imbue.machine.errors import DriverError
from imbue.machine.interfaces.data_types import SSHAddress
from imbue.machine.interfaces.driver import DriverInterface

DEFAULT_ENGINE_PORT = 2376


def get_ssh_address(driver: DriverInterface) -> SSHAddress:
    """Resolve the SSH address of a driver's node. Raises whatever the driver raises."""
    return SSHAddress(
        hostname=driver.get_ssh_hostname(),
        port=driver.get_ssh_port(),
        username=driver.get_ssh_username(),
        key_path=driver.get_ssh_key_path(),
    )


class BaseDriver(DriverInterface):
    """Abstract base class for drivers, holding the addressing state most drivers share.

    Drivers fill in ip_address during create() (or start(), for infrastructures that assign
    a new address on every boot). kill() falls back to a graceful stop() unless overridden.
    """

    ip_address: str = Field(default="", alias="IPAddress", description="Address of the node once known")
    ssh_user: str = Field(default="root", alias="SSHUser", description="Login user for SSH")
    ssh_port: int = Field(default=22, alias="SSHPort", description="Port of sshd on the node")
    ssh_key_path: str = Field(default="", alias="SSHKeyPath", description="Private key for SSH (empty: id_rsa in the store)")

    def kill(self) -> None:
        self.stop()

    def get_ip(self) -> str:
        if not self.ip_address:
            raise DriverError(f"IP address of {self.machine_name} is not set")
        return self.ip_address

    def get_url(self) -> str:
        return f"tcp://{self.get_ip()}:{DEFAULT_ENGINE_PORT}"

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_port(self) -> int:
        return self.ssh_port

    def get_ssh_username(self) -> str:
        return self.ssh_user

    def get_ssh_key_path(self) -> str | None:
        if self.ssh_key_path:
            return self.ssh_key_path
        return str(self.store_path / "id_rsa")
