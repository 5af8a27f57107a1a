import logging
import os
import time
from pathlib import Path

from loguru import logger

from imbue.machine.config.data_types import LoggingConfig
from imbue.machine.primitives import LogLevel
from imbue.machine.primitives import PositiveInt
from imbue.machine.utils.logging import _format_user_message
from imbue.machine.utils.logging import _rotate_old_logs
from imbue.machine.utils.logging import resolve_log_dir
from imbue.machine.utils.logging import setup_logging
from imbue.machine.utils.logging import suppress_warnings


def test_resolve_log_dir_is_relative_to_storage_path(tmp_path: Path) -> None:
    assert resolve_log_dir(LoggingConfig(), tmp_path) == tmp_path / "logs"


def test_resolve_log_dir_keeps_absolute_path(tmp_path: Path) -> None:
    log_dir = tmp_path / "elsewhere"

    assert resolve_log_dir(LoggingConfig(log_dir=log_dir), tmp_path / "storage") == log_dir


def test_format_user_message_prefixes_warnings_and_errors() -> None:
    warning = _format_user_message({"level": type("Level", (), {"name": "WARNING"})()})
    error = _format_user_message({"level": type("Level", (), {"name": "ERROR"})()})
    info = _format_user_message({"level": type("Level", (), {"name": "INFO"})()})

    assert "WARNING: {message}" in warning
    assert "ERROR: {message}" in error
    assert info == "{message}\n"


def test_rotate_old_logs_keeps_newest_files(tmp_path: Path) -> None:
    now = time.time()
    for index in range(5):
        log_file = tmp_path / f"{index}.json"
        log_file.write_text("{}")
        os.utime(log_file, (now - 100 + index, now - 100 + index))

    _rotate_old_logs(tmp_path, 2)

    assert sorted(p.name for p in tmp_path.glob("*.json")) == ["3.json", "4.json"]


def test_setup_logging_writes_json_log_file(tmp_path: Path) -> None:
    config = LoggingConfig(console_level=LogLevel.NONE, file_level=LogLevel.DEBUG, max_log_files=PositiveInt(3))

    try:
        log_file = setup_logging(config, tmp_path)
        logger.debug("hello from {}", "test")
    finally:
        logger.remove()
        logger.add(lambda _: None)

    assert log_file.parent == tmp_path / "logs"
    assert "hello from test" in log_file.read_text()


def test_suppress_warnings_routes_pyinfra_logs_to_loguru() -> None:
    suppress_warnings()

    pyinfra_logger = logging.getLogger("pyinfra")
    assert pyinfra_logger.propagate is False
    assert len(pyinfra_logger.handlers) == 1
