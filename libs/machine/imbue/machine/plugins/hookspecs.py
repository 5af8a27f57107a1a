import pluggy

from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import ProvisionerInterface

hookspec = pluggy.HookspecMarker("machine")


@hookspec
def register_driver() -> type[DriverInterface] | None:
    """Register a driver with machine.

    Plugins should implement this hook to make a driver available under the name returned
    by its get_driver_name(). That name is what NewHost accepts and what is persisted as
    DriverName in each host's config.json.

    Return the driver class, or None if not registering a driver.
    """


@hookspec
def register_provisioner() -> type[ProvisionerInterface] | None:
    """Register a provisioner with machine.

    detect_provisioner() considers provisioners in hook-call order (most recently registered
    plugin first) and returns the first one whose is_compatible_with() accepts the node's
    /etc/os-release.

    Return the provisioner class, or None if not registering a provisioner.
    """
