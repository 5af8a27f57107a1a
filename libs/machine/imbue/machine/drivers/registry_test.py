from pathlib import Path

import pluggy
import pytest

from imbue.machine import hookimpl
from imbue.machine.drivers.none.driver import NoneDriver
from imbue.machine.drivers.registry import decode_driver
from imbue.machine.drivers.registry import get_driver_class
from imbue.machine.drivers.registry import list_drivers
from imbue.machine.drivers.registry import new_driver
from imbue.machine.errors import UnknownDriverError
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.utils.testing import FakeDriver


class _ShadowingDriver(FakeDriver):
    """Registered under the same name as FakeDriver."""


class _ShadowingPlugin:
    @hookimpl
    def register_driver(self) -> type[DriverInterface]:
        return _ShadowingDriver


def test_list_drivers_includes_builtin_and_plugin_drivers(plugin_manager: pluggy.PluginManager) -> None:
    assert list_drivers(plugin_manager) == ["mock", "none"]


def test_get_driver_class_by_name(plugin_manager: pluggy.PluginManager) -> None:
    assert get_driver_class("none", plugin_manager) is NoneDriver
    assert get_driver_class("mock", plugin_manager) is FakeDriver


def test_unknown_driver_raises(plugin_manager: pluggy.PluginManager) -> None:
    with pytest.raises(UnknownDriverError) as exc_info:
        get_driver_class("virtualbox", plugin_manager)

    assert exc_info.value.registered == ["mock", "none"]


def test_most_recently_registered_plugin_wins(plugin_manager: pluggy.PluginManager) -> None:
    plugin_manager.register(_ShadowingPlugin(), name="shadowing")

    assert get_driver_class("mock", plugin_manager) is _ShadowingDriver


def test_new_driver_sets_identity_fields(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    driver = new_driver("mock", "dev", tmp_path, tmp_path / "ca.pem", None, plugin_manager)

    assert isinstance(driver, FakeDriver)
    assert driver.machine_name == "dev"
    assert driver.store_path == tmp_path
    assert driver.ca_cert_path == tmp_path / "ca.pem"
    assert driver.private_key_path is None


def test_decode_driver_overlays_persisted_fields(tmp_path: Path, plugin_manager: pluggy.PluginManager) -> None:
    fresh = new_driver("mock", "dev", tmp_path, None, None, plugin_manager)

    decoded = decode_driver(fresh, {"IPAddress": "10.1.2.3", "InstanceId": "i-123", "SomethingNew": 1})

    assert isinstance(decoded, FakeDriver)
    assert decoded.ip_address == "10.1.2.3"
    assert decoded.instance_id == "i-123"
    assert decoded.machine_name == "dev"


def test_decode_driver_without_persisted_object_keeps_fresh_driver(
    tmp_path: Path, plugin_manager: pluggy.PluginManager
) -> None:
    fresh = new_driver("mock", "dev", tmp_path, None, None, plugin_manager)

    assert decode_driver(fresh, None) is fresh
