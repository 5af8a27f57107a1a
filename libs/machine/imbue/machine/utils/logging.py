import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any
from typing import Final

from loguru import logger

from imbue.machine.config.data_types import LoggingConfig
from imbue.machine.primitives import LogLevel

WARNING_COLOR = "\x1b[1;38;5;178m"
ERROR_COLOR = "\x1b[1;38;5;196m"
DEBUG_COLOR = "\x1b[38;5;33m"
TRACE_COLOR = "\x1b[38;5;99m"
RESET_COLOR = "\x1b[0m"

LEVEL_MAP: Final[dict[LogLevel, str]] = {
    LogLevel.TRACE: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARN: "WARNING",
    LogLevel.ERROR: "ERROR",
    LogLevel.NONE: "CRITICAL",
}


def _dynamic_stderr_sink(message: Any) -> None:
    """Loguru sink that always writes to the current sys.stderr."""
    sys.stderr.write(str(message))
    sys.stderr.flush()


def _format_user_message(record: Any) -> str:
    """Format console messages, adding colored prefixes for warnings and errors.

    The record parameter is a loguru Record TypedDict, but the type is only available
    in type stubs so we use Any here.
    """
    level_name = record["level"].name
    if level_name == "WARNING":
        return f"{WARNING_COLOR}WARNING: {{message}}{RESET_COLOR}\n"
    if level_name == "ERROR":
        return f"{ERROR_COLOR}ERROR: {{message}}{RESET_COLOR}\n"
    if level_name == "DEBUG":
        return f"{DEBUG_COLOR}{{message}}{RESET_COLOR}\n"
    if level_name == "TRACE":
        return f"{TRACE_COLOR}{{message}}{RESET_COLOR}\n"
    return "{message}\n"


class _PyinfraToLoguruHandler(logging.Handler):
    """Forward pyinfra log messages to loguru at TRACE level.

    pyinfra logs through the standard logging module (connection errors, retries) for
    conditions that provisioning already reports through exceptions.
    """

    def emit(self, record: logging.LogRecord) -> None:
        logger.trace("[pyinfra] {}", record.getMessage())


def suppress_warnings() -> None:
    pyinfra_logger = logging.getLogger("pyinfra")
    pyinfra_logger.setLevel(logging.DEBUG)
    pyinfra_logger.handlers.clear()
    pyinfra_logger.addHandler(_PyinfraToLoguruHandler())
    pyinfra_logger.propagate = False


def setup_logging(logging_config: LoggingConfig, storage_path: Path) -> Path:
    """Configure loguru for console and file output.

    Sets up:
    - stderr logging at console_level (clean format, colored WARNING/ERROR prefixes)
    - JSON file logging at file_level to <log_dir>/<timestamp>-<pid>.json, rotated by size
    - removal of the oldest log files beyond max_log_files

    Returns the path of the log file.
    """
    logger.remove()
    suppress_warnings()

    if logging_config.console_level != LogLevel.NONE:
        logger.add(
            _dynamic_stderr_sink,
            level=LEVEL_MAP[logging_config.console_level],
            format=_format_user_message,
            colorize=False,
            diagnose=False,
        )

    log_dir = resolve_log_dir(logging_config, storage_path)
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_file = log_dir / f"{timestamp}-{os.getpid()}.json"

    logger.add(
        log_file,
        level=LEVEL_MAP[logging_config.file_level],
        format="{message}",
        serialize=True,
        diagnose=False,
        rotation=f"{logging_config.max_log_size_mb} MB",
    )

    _rotate_old_logs(log_dir, logging_config.max_log_files)
    return log_file


def resolve_log_dir(logging_config: LoggingConfig, storage_path: Path) -> Path:
    """Resolve the log directory; a relative log_dir is relative to the storage path."""
    log_dir = logging_config.log_dir
    if not log_dir.is_absolute():
        log_dir = storage_path.expanduser() / log_dir
    return log_dir.expanduser()


def _rotate_old_logs(log_dir: Path, max_files: int) -> None:
    """Remove the least-recently-modified log files beyond max_files.

    Another process may be rotating the same directory, so deletion failures are ignored.
    """
    try:
        log_files = sorted(log_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
    except OSError:
        return

    for old_log in log_files[max_files:]:
        try:
            old_log.unlink()
        except OSError:
            continue
