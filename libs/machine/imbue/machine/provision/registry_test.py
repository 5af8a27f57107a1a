from pathlib import Path

import pluggy
import pytest

from imbue.machine.errors import ProvisionerNotFoundError
from imbue.machine.errors import RemoteCommandError
from imbue.machine.provision.registry import OS_RELEASE_COMMAND
from imbue.machine.provision.registry import detect_provisioner
from imbue.machine.provision.registry import parse_os_release
from imbue.machine.utils.testing import FAKE_IP_ADDRESS
from imbue.machine.utils.testing import FakeConnection
from imbue.machine.utils.testing import FakeDriver
from imbue.machine.utils.testing import FakeProvisioner
from imbue.machine.utils.testing import FakeRemoteShell

UBUNTU_OS_RELEASE = """NAME="Ubuntu"
VERSION="22.04.3 LTS (Jammy Jellyfish)"
ID=ubuntu
ID_LIKE=debian
PRETTY_NAME="Ubuntu 22.04.3 LTS"
VERSION_ID="22.04"
# comment
"""


def _make_driver(tmp_path: Path) -> FakeDriver:
    return FakeDriver(machine_name="dev", store_path=tmp_path, ip_address=FAKE_IP_ADDRESS)


def test_parse_os_release_unquotes_values() -> None:
    os_release = parse_os_release(UBUNTU_OS_RELEASE)

    assert os_release.id == "ubuntu"
    assert os_release.id_like == ("debian",)
    assert os_release.version_id == "22.04"
    assert os_release.describe() == "Ubuntu 22.04.3 LTS"


def test_parse_os_release_skips_malformed_lines() -> None:
    os_release = parse_os_release("garbage\nID='rhel'\nID_LIKE=\"fedora centos\"\nPRETTY_NAME=\"unterminated\n")

    assert os_release.id == "rhel"
    assert os_release.id_like == ("fedora", "centos")
    assert os_release.pretty_name == ""
    assert os_release.describe() == "rhel"


def test_detect_provisioner_returns_compatible_provisioner(
    tmp_path: Path, plugin_manager: pluggy.PluginManager
) -> None:
    remote_shell = FakeRemoteShell()

    provisioner = detect_provisioner(_make_driver(tmp_path), plugin_manager, remote_shell)

    assert isinstance(provisioner, FakeProvisioner)
    assert provisioner.connection is remote_shell.connection
    assert provisioner.os_release.id == "fakeos"
    assert remote_shell.connection.commands == [OS_RELEASE_COMMAND]


def test_detect_provisioner_uses_given_connection(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    connection = FakeConnection()

    provisioner = detect_provisioner(_make_driver(tmp_path), plugin_manager, FakeRemoteShell(), connection)

    assert provisioner.connection is connection


def test_detect_provisioner_without_match_raises_and_disconnects(
    tmp_path: Path, plugin_manager: pluggy.PluginManager
) -> None:
    connection = FakeConnection(os_release_content=UBUNTU_OS_RELEASE)

    with pytest.raises(ProvisionerNotFoundError) as exc_info:
        detect_provisioner(_make_driver(tmp_path), plugin_manager, FakeRemoteShell(), connection)

    assert "Ubuntu 22.04.3 LTS" in str(exc_info.value)
    assert connection.is_disconnected


def test_detect_provisioner_when_os_release_is_unreadable(
    tmp_path: Path, plugin_manager: pluggy.PluginManager
) -> None:
    connection = FakeConnection(failing_commands=(OS_RELEASE_COMMAND,))

    with pytest.raises(RemoteCommandError):
        detect_provisioner(_make_driver(tmp_path), plugin_manager, FakeRemoteShell(), connection)

    assert connection.is_disconnected
