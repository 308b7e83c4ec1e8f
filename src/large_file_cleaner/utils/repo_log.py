"""Per-repository log files."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

PACKAGE_LOGGER = "large_file_cleaner"
LOG_FORMAT = "[%(levelname)s] %(asctime)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@contextmanager
def repository_log(log_file: Path, level: int = logging.DEBUG) -> Iterator[Path]:
    """
    Mirror package log records into ``log_file`` while the block runs.

    Args:
        log_file: Destination file (parent directories are created)
        level: Minimum level written to the file

    Yields:
        The log file path
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.touch()

    handler = logging.FileHandler(
        log_file, encoding="utf-8", errors="backslashreplace"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = package_logger.level
    if previous_level == logging.NOTSET or previous_level > level:
        package_logger.setLevel(level)
    package_logger.addHandler(handler)
    try:
        yield log_file
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
        handler.close()


def append_command_output(log_file: Path, header: str, output: str) -> None:
    """Append raw tool output (rewrite engine, push) to a repository log."""
    with open(log_file, "a", encoding="utf-8", errors="backslashreplace") as f:
        f.write(f"--- {header} ---\n")
        if output:
            f.write(output if output.endswith("\n") else output + "\n")
