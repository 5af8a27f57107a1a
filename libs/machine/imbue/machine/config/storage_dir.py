"""Resolve the default machine storage directory from environment variables.

Stdlib-only so it can be imported from lightweight modules without pulling in third-party deps.
"""

import os
from pathlib import Path

STORAGE_PATH_ENV_VAR = "MACHINE_STORAGE_PATH"


def read_default_storage_path() -> Path:
    """Return the base directory under which host stores live.

    Resolves MACHINE_STORAGE_PATH (explicit override) or falls back to ~/.machine.
    """
    env_storage_path = os.environ.get(STORAGE_PATH_ENV_VAR)
    base_dir = Path(env_storage_path) if env_storage_path else Path("~/.machine")
    return base_dir.expanduser()
