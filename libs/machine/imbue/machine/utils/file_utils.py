import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str, mode: int = 0o600) -> None:
    """Write content to a file atomically using a temp file and rename.

    Writes to a temporary file in the same directory, flushes to disk with
    fsync, then atomically replaces the target file. Readers never see a
    partially-written file, and a crash mid-write leaves the old file intact.

    The parent directory must already exist. The file always ends up with the
    given mode (0600 by default), regardless of what the previous file had.

    The caller is responsible for catching OSError if the write fails.
    """
    with tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tmp_file:
        tmp_file.write(content)
        tmp_file.flush()
        os.fsync(tmp_file.fileno())
        tmp_path = Path(tmp_file.name)

    try:
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
