from types import ModuleType
from typing import Final

import pluggy

from imbue.machine.drivers.none import driver as none_driver
from imbue.machine.plugins import hookspecs

PLUGIN_PROJECT_NAME: Final[str] = "machine"

BUILTIN_PLUGINS: Final[tuple[tuple[str, ModuleType], ...]] = ((none_driver.NONE_DRIVER_NAME, none_driver),)


def create_plugin_manager(is_loading_entrypoints: bool = True) -> pluggy.PluginManager:
    """Initialize the plugin manager with the machine hookspecs and all available plugins.

    Built-in plugins are registered first; third-party drivers and provisioners are then
    discovered via setuptools entry points in the "machine" group.
    """
    pm = pluggy.PluginManager(PLUGIN_PROJECT_NAME)
    pm.add_hookspecs(hookspecs)

    for name, module in BUILTIN_PLUGINS:
        pm.register(module, name=name)

    if is_loading_entrypoints:
        pm.load_setuptools_entrypoints(PLUGIN_PROJECT_NAME)

    return pm
