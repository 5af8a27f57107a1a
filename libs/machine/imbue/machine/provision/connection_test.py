from pathlib import Path

from pyinfra.api import Host as PyinfraHost
from pyinfra.api import State as PyinfraState
from pyinfra.api.inventory import Inventory

from imbue.machine.config.data_types import SSHConfig
from imbue.machine.interfaces.data_types import PyinfraConnector
from imbue.machine.interfaces.data_types import SSHAddress
from imbue.machine.provision.connection import PyinfraConnection
from imbue.machine.provision.connection import create_pyinfra_host


def _create_local_pyinfra_host() -> PyinfraHost:
    """A host name starting with '@' makes pyinfra use its LocalConnector, so no SSH is needed."""
    names_data = (["@local"], {})
    inventory = Inventory(names_data)
    state = PyinfraState(inventory=inventory)
    pyinfra_host = inventory.get_host("@local")
    pyinfra_host.init(state)
    return pyinfra_host


def test_create_pyinfra_host_carries_ssh_settings() -> None:
    address = SSHAddress(hostname="10.0.0.2", port=2222, username="docker", key_path="/keys/id_rsa")

    pyinfra_host = create_pyinfra_host(address, SSHConfig())

    assert pyinfra_host.name == "10.0.0.2"
    assert pyinfra_host.data.ssh_user == "docker"
    assert pyinfra_host.data.ssh_port == 2222
    assert pyinfra_host.data.ssh_key == "/keys/id_rsa"
    assert pyinfra_host.data.ssh_known_hosts_file == "/dev/null"


def test_connection_executes_commands() -> None:
    connection = PyinfraConnection(connector=PyinfraConnector(_create_local_pyinfra_host()))

    try:
        success = connection.execute_command("echo hello")
        failure = connection.execute_command("exit 4")
    finally:
        connection.disconnect()

    assert success.success
    assert success.stdout.strip() == "hello"
    assert not failure.success


def test_connection_uploads_files(tmp_path: Path) -> None:
    connection = PyinfraConnection(connector=PyinfraConnector(_create_local_pyinfra_host()))
    target = tmp_path / "ca.pem"

    try:
        connection.put_file(b"certificate", target)
    finally:
        connection.disconnect()

    assert target.read_bytes() == b"certificate"
