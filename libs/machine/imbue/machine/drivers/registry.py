from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pluggy
from loguru import logger

from imbue.machine.errors import UnknownDriverError
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DriverName


def get_registered_drivers(pm: pluggy.PluginManager) -> dict[DriverName, type[DriverInterface]]:
    """Collect driver classes from every plugin implementing register_driver.

    pluggy calls implementations last-registered-first, so when two plugins register the same
    name, the most recently registered plugin wins.
    """
    drivers: dict[DriverName, type[DriverInterface]] = {}
    for driver_class in pm.hook.register_driver():
        if driver_class is None:
            continue
        name = driver_class.get_driver_name()
        if name in drivers:
            logger.debug("Ignoring duplicate registration of driver {} ({})", name, driver_class.__name__)
            continue
        drivers[name] = driver_class
    return drivers


def get_driver_class(driver_name: str, pm: pluggy.PluginManager) -> type[DriverInterface]:
    """Get a driver class by name, raising UnknownDriverError if no plugin provides it."""
    drivers = get_registered_drivers(pm)
    driver_class = drivers.get(DriverName(driver_name))
    if driver_class is None:
        raise UnknownDriverError(driver_name, sorted(str(k) for k in drivers))
    return driver_class


def list_drivers(pm: pluggy.PluginManager) -> list[str]:
    return sorted(str(k) for k in get_registered_drivers(pm))


def new_driver(
    driver_name: str,
    host_name: str,
    store_path: Path,
    ca_cert_path: Path | None,
    private_key_path: Path | None,
    pm: pluggy.PluginManager,
) -> DriverInterface:
    """Instantiate a fresh driver of the given type for a host."""
    driver_class = get_driver_class(driver_name, pm)
    return driver_class(
        machine_name=host_name,
        store_path=store_path,
        ca_cert_path=ca_cert_path,
        private_key_path=private_key_path,
    )


def decode_driver(driver: DriverInterface, raw_driver: Mapping[str, Any] | None) -> DriverInterface:
    """Overlay the persisted "Driver" object onto a freshly built driver of the same type.

    The fresh driver supplies the identity fields (name, store path, TLS paths); the persisted
    object supplies everything the driver recorded about its node. Persisted values win.
    """
    if not raw_driver:
        return driver
    merged = {**driver.model_dump(by_alias=True), **raw_driver}
    return type(driver).model_validate(merged)
