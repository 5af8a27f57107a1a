from pathlib import Path

import pluggy
import pytest

from imbue.machine.config.data_types import HostOptions
from imbue.machine.config.data_types import MachineConfig
from imbue.machine.config.data_types import MachineContext
from imbue.machine.config.data_types import WaitConfig
from imbue.machine.host import Host
from imbue.machine.host import new_host
from imbue.machine.plugins.manager import create_plugin_manager
from imbue.machine.primitives import NonNegativeFloat
from imbue.machine.primitives import PositiveInt
from imbue.machine.utils.testing import FakePlugin
from imbue.machine.utils.testing import FakeRemoteShell
from imbue.machine.utils.testing import MOCK_DRIVER_NAME


@pytest.fixture
def temp_storage_dir(tmp_path: Path) -> Path:
    """Create a temporary storage directory so tests never write to the real ~/.machine."""
    storage_dir = tmp_path / ".machine"
    storage_dir.mkdir()
    return storage_dir


@pytest.fixture
def plugin_manager() -> pluggy.PluginManager:
    """Plugin manager with the built-in plugins plus the fake driver and provisioner.

    Entry points are not loaded, so installed third-party plugins cannot leak into tests.
    """
    pm = create_plugin_manager(is_loading_entrypoints=False)
    pm.register(FakePlugin(), name="fake")
    return pm


@pytest.fixture
def temp_config(temp_storage_dir: Path) -> MachineConfig:
    """MachineConfig rooted at the temp storage dir, with waits that never sleep."""
    return MachineConfig(
        storage_path=temp_storage_dir,
        wait=WaitConfig(
            poll_interval_seconds=NonNegativeFloat(0.0),
            max_attempts=PositiveInt(5),
            tcp_timeout_seconds=NonNegativeFloat(0.1),
        ),
    )


@pytest.fixture
def temp_machine_ctx(temp_config: MachineConfig, plugin_manager: pluggy.PluginManager) -> MachineContext:
    return MachineContext(config=temp_config, pm=plugin_manager)


@pytest.fixture
def fake_remote_shell() -> FakeRemoteShell:
    return FakeRemoteShell()


@pytest.fixture
def mock_host(temp_machine_ctx: MachineContext, fake_remote_shell: FakeRemoteShell) -> Host:
    """An in-memory host named "dev" backed by the fake driver. Nothing is created yet."""
    return new_host(
        "dev",
        MOCK_DRIVER_NAME,
        HostOptions(driver=MOCK_DRIVER_NAME),
        temp_machine_ctx,
        remote_shell=fake_remote_shell,
    )
