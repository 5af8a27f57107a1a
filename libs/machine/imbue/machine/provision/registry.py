import shlex

import pluggy
from loguru import logger

from imbue.machine.drivers.base import get_ssh_address
from imbue.machine.errors import ProvisionerNotFoundError
from imbue.machine.errors import RemoteCommandError
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import OsRelease
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.interfaces.provisioner import RemoteConnectionInterface
from imbue.machine.interfaces.remote_shell import RemoteShellInterface
from imbue.machine.utils.pure import pure

OS_RELEASE_COMMAND = "cat /etc/os-release"


@pure
def parse_os_release(content: str) -> OsRelease:
    """Parse the KEY=VALUE lines of /etc/os-release.

    Values may be unquoted, single-quoted or double-quoted. Comments, blank lines and
    malformed lines are skipped.
    """
    values: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        try:
            parts = shlex.split(raw_value)
        except ValueError:
            continue
        values[key.strip()] = parts[0] if parts else ""

    return OsRelease(
        id=values.get("ID", "").lower(),
        id_like=tuple(values.get("ID_LIKE", "").lower().split()),
        version_id=values.get("VERSION_ID", ""),
        pretty_name=values.get("PRETTY_NAME", ""),
    )


def get_registered_provisioners(pm: pluggy.PluginManager) -> list[type[ProvisionerInterface]]:
    return [p for p in pm.hook.register_provisioner() if p is not None]


def detect_provisioner(
    driver: DriverInterface,
    pm: pluggy.PluginManager,
    remote_shell: RemoteShellInterface,
    connection: RemoteConnectionInterface | None = None,
) -> ProvisionerInterface:
    """Find the provisioner for the operating system running on the driver's node.

    Reads /etc/os-release over a connection to the node (opened through remote_shell unless
    one is given) and returns the first registered provisioner compatible with it, bound to
    that connection. Raises ProvisionerNotFoundError when none matches.
    """
    if connection is None:
        connection = remote_shell.open_connection(get_ssh_address(driver))

    result = connection.execute_command(OS_RELEASE_COMMAND)
    if not result.success:
        connection.disconnect()
        raise RemoteCommandError(OS_RELEASE_COMMAND, result.stderr)
    os_release = parse_os_release(result.stdout)
    logger.debug("Detected operating system on {}: {}", driver.machine_name, os_release.describe())

    for provisioner_class in get_registered_provisioners(pm):
        if provisioner_class.is_compatible_with(os_release):
            logger.debug("Using provisioner {} for {}", provisioner_class.get_name(), driver.machine_name)
            return provisioner_class(driver=driver, connection=connection, os_release=os_release)

    connection.disconnect()
    raise ProvisionerNotFoundError(os_release.describe())
