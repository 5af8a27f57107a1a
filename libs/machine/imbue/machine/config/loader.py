import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from typing import Final

import pluggy
from loguru import logger
from pydantic import ValidationError

from imbue.machine.config.data_types import MachineConfig
from imbue.machine.config.data_types import MachineContext
from imbue.machine.config.data_types import SETTINGS_FILENAME
from imbue.machine.config.storage_dir import read_default_storage_path
from imbue.machine.errors import ConfigParseError

# Environment variables that override individual settings after the config file is applied.
# Maps env var name -> (section, key).
_ENV_OVERRIDES: Final[dict[str, tuple[str, str]]] = {
    "MACHINE_LOG_LEVEL": ("logging", "console_level"),
    "MACHINE_WAIT_MAX_ATTEMPTS": ("wait", "max_attempts"),
    "MACHINE_WAIT_POLL_INTERVAL": ("wait", "poll_interval_seconds"),
}


def load_config(
    pm: pluggy.PluginManager,
    storage_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> MachineContext:
    """Load configuration and return a MachineContext.

    Precedence (lowest to highest):
    1. Built-in defaults
    2. <storage_path>/config.toml
    3. Environment variables (MACHINE_LOG_LEVEL, MACHINE_WAIT_MAX_ATTEMPTS, MACHINE_WAIT_POLL_INTERVAL)

    The storage path itself comes from the explicit argument, else MACHINE_STORAGE_PATH, else ~/.machine.
    """
    env = os.environ if environ is None else environ
    if storage_path is None:
        storage_path = read_default_storage_path()
    storage_path = storage_path.expanduser()

    raw: dict[str, Any] = {}
    settings_path = storage_path / SETTINGS_FILENAME
    if settings_path.exists():
        logger.debug("Loading settings from {}", settings_path)
        raw = _load_toml(settings_path)

    raw = _apply_env_overrides(raw, env)
    raw["storage_path"] = storage_path

    try:
        config = MachineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid configuration in {settings_path}: {e}") from e

    return MachineContext(config=config, pm=pm)


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Failed to parse {path}: {e}") from e


def _apply_env_overrides(raw: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    result = dict(raw)
    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = env.get(env_var)
        if value is None:
            continue
        logger.trace("Applying {}={} to config", env_var, value)
        if key.endswith("_level"):
            value = value.upper()
        section_values = dict(result.get(section, {}))
        section_values[key] = value
        result[section] = section_values
    return result
