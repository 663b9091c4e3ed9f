from __future__ import annotations

import logging
import re
import sys
from datetime import datetime
from pathlib import Path

from . import config

LOGGER = logging.getLogger("firx")
_LOGGER_INITIALISED = False
_CURRENT_LOG_FILE: Path = config.LOG_FILE

_PATH_HOSTILE = re.compile(r"[\/\\:*?\"<>|]")


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED, _CURRENT_LOG_FILE

    log_path.parent.mkdir(parents=True, exist_ok=True)

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False

    _CURRENT_LOG_FILE = log_path
    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return

    _configure_logger(config.LOG_FILE)


def setup_run_logger() -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"extract_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def get_current_log_path() -> Path:
    """Return the path to the log file currently receiving log lines."""

    _ensure_logger()
    return _CURRENT_LOG_FILE


def ensure_dirs() -> None:
    """Ensure that the application's expected directory structure exists."""

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    config.DOWNLOAD_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def sanitize_path_component(component: str | None) -> str:
    """Replace path-hostile characters so *component* is one directory level."""

    if not component:
        return config.PATH_PLACEHOLDER

    cleaned = "".join(ch if ord(ch) >= 32 else config.PATH_PLACEHOLDER for ch in component)
    cleaned = _PATH_HOSTILE.sub(config.PATH_PLACEHOLDER, cleaned.strip())
    # "." and ".." would escape or collapse the directory level.
    if cleaned.strip(".") == "":
        return config.PATH_PLACEHOLDER
    return cleaned


def request_folder_name(request_name: str, request_id: int) -> str:
    """Return the per-request directory name under the download root."""

    base = re.sub(r"\s+", "_", (request_name or "").strip())
    return f"{sanitize_path_component(base)}_request_{request_id}"


def build_artifact_path(
    root: Path,
    *,
    request_name: str,
    request_id: int,
    target_name: str,
    child_name: str,
    record_no: str,
) -> Path:
    """Return the deterministic location of one record's PDF."""

    return (
        Path(root)
        / request_folder_name(request_name, request_id)
        / sanitize_path_component(target_name)
        / sanitize_path_component(child_name)
        / f"{sanitize_path_component(record_no)}.pdf"
    )


def to_source_date(value: str) -> str:
    """Convert ``YYYY-MM-DD`` into the ``DD/MM/YYYY`` form the source expects."""

    return datetime.strptime(value.strip(), "%Y-%m-%d").strftime("%d/%m/%Y")
