from pathlib import Path

import pytest

from imbue.machine.drivers.base import get_ssh_address
from imbue.machine.errors import DriverError
from imbue.machine.primitives import RunState
from imbue.machine.utils.testing import FakeDriver


def test_get_ip_requires_address(tmp_path: Path) -> None:
    driver = FakeDriver(machine_name="dev", store_path=tmp_path)

    with pytest.raises(DriverError):
        driver.get_ip()


def test_url_and_ssh_address_come_from_ip(tmp_path: Path) -> None:
    driver = FakeDriver(machine_name="dev", store_path=tmp_path, ip_address="10.0.0.9", ssh_port=2222)

    address = get_ssh_address(driver)

    assert driver.get_url() == "tcp://10.0.0.9:2376"
    assert address.hostname == "10.0.0.9"
    assert address.port == 2222
    assert address.username == "root"
    assert address.key_path == str(tmp_path / "id_rsa")


def test_explicit_ssh_key_path_wins(tmp_path: Path) -> None:
    driver = FakeDriver(machine_name="dev", store_path=tmp_path, ssh_key_path="/keys/custom")

    assert driver.get_ssh_key_path() == "/keys/custom"


def test_kill_falls_back_to_stop(tmp_path: Path) -> None:
    class _StopOnlyDriver(FakeDriver):
        def kill(self) -> None:
            super(FakeDriver, self).kill()

    driver = _StopOnlyDriver(machine_name="dev", store_path=tmp_path, state=RunState.RUNNING)

    driver.kill()

    assert driver.calls == ["stop"]
    assert driver.state == RunState.STOPPED
