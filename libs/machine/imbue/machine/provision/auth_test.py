from pathlib import Path

import pytest

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.errors import AuthConfigurationError
from imbue.machine.errors import RemoteCommandError
from imbue.machine.interfaces.provisioner import OsRelease
from imbue.machine.provision.auth import configure_auth
from imbue.machine.utils.testing import FakeConnection
from imbue.machine.utils.testing import FakeDriver
from imbue.machine.utils.testing import FakeProvisioner


def _make_provisioner(tmp_path: Path, connection: FakeConnection) -> FakeProvisioner:
    driver = FakeDriver(machine_name="dev", store_path=tmp_path)
    return FakeProvisioner(driver=driver, connection=connection, os_release=OsRelease(id="fakeos"))


def _write_certs(tmp_path: Path) -> AuthOptions:
    certs = {"ca.pem": b"ca", "server.pem": b"server", "server-key.pem": b"key"}
    for name, content in certs.items():
        (tmp_path / name).write_bytes(content)
    return AuthOptions(
        ca_cert_path=tmp_path / "ca.pem",
        server_cert_path=tmp_path / "server.pem",
        server_key_path=tmp_path / "server-key.pem",
    )


def test_configure_auth_uploads_certs_and_restarts_engine(tmp_path: Path) -> None:
    connection = FakeConnection()

    configure_auth(_make_provisioner(tmp_path, connection), _write_certs(tmp_path))

    assert connection.uploads == {
        "/etc/docker/ca.pem": b"ca",
        "/etc/docker/server.pem": b"server",
        "/etc/docker/server-key.pem": b"key",
    }
    assert connection.sudo_commands == ["mkdir -p /etc/docker", "systemctl restart docker"]


def test_configure_auth_honors_remote_paths(tmp_path: Path) -> None:
    connection = FakeConnection()
    auth_options = _write_certs(tmp_path).model_copy(update={"ca_cert_remote_path": Path("/opt/tls/ca.pem")})

    configure_auth(_make_provisioner(tmp_path, connection), auth_options)

    assert connection.uploads["/opt/tls/ca.pem"] == b"ca"
    assert connection.sudo_commands[0] == "mkdir -p /etc/docker /opt/tls"


def test_configure_auth_requires_local_material(tmp_path: Path) -> None:
    connection = FakeConnection()
    auth_options = AuthOptions(ca_cert_path=tmp_path / "missing.pem")

    with pytest.raises(AuthConfigurationError):
        configure_auth(_make_provisioner(tmp_path, connection), auth_options)

    assert connection.commands == []


def test_configure_auth_fails_when_engine_restart_fails(tmp_path: Path) -> None:
    connection = FakeConnection(failing_commands=("systemctl restart docker",))

    with pytest.raises(RemoteCommandError):
        configure_auth(_make_provisioner(tmp_path, connection), _write_certs(tmp_path))
