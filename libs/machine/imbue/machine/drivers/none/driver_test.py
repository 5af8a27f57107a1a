from pathlib import Path

import pytest

from imbue.machine.drivers.none.driver import NoneDriver
from imbue.machine.errors import DriverError
from imbue.machine.errors import DriverNotSupportedError
from imbue.machine.primitives import RunState


def _make_driver(tmp_path: Path, url: str = "tcp://10.0.0.5:2376") -> NoneDriver:
    return NoneDriver(machine_name="existing", store_path=tmp_path, url=url)


def test_none_driver_reports_running_and_its_url(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path)

    driver.create()

    assert driver.get_state() == RunState.RUNNING
    assert driver.get_url() == "tcp://10.0.0.5:2376"


def test_none_driver_requires_url_to_create(tmp_path: Path) -> None:
    with pytest.raises(DriverError):
        _make_driver(tmp_path, url="").create()


def test_none_driver_has_no_ssh(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path)

    with pytest.raises(DriverNotSupportedError):
        driver.get_ssh_hostname()
    assert NoneDriver.is_provisioning_supported() is False


def test_none_driver_persists_url_under_url_key(tmp_path: Path) -> None:
    dumped = _make_driver(tmp_path).model_dump(by_alias=True, mode="json")

    assert dumped["URL"] == "tcp://10.0.0.5:2376"
    assert dumped["MachineName"] == "existing"


@pytest.mark.parametrize("operation", ["start", "stop", "kill"])
def test_none_driver_rejects_power_operations(tmp_path: Path, operation: str) -> None:
    driver = _make_driver(tmp_path)

    with pytest.raises(DriverNotSupportedError, match=operation):
        getattr(driver, operation)()


def test_none_driver_remove_is_a_no_op(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path)

    driver.remove()

    assert driver.get_state() == RunState.RUNNING
