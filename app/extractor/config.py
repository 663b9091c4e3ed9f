"""Configuration constants for the FIR extraction service."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("FIRX_DATA_DIR", "/app/data"))
DOWNLOAD_DIR: Path = DATA_DIR / "download"
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
RUNS_DIR: Path = DATA_DIR / "runs"
EXPORTS_DIR: Path = DATA_DIR / "exports"
DB_PATH: Path = DATA_DIR / "firs.db"

SOURCE_URL: str = os.getenv(
    "FIRX_SOURCE_URL",
    "https://citizen.mahapolice.gov.in/citizen/mh/PublishedFIRs.aspx",
)

# Value of the state dropdown the district list hangs off; the public page
# preselects it, so an empty value means "leave the default alone".
DEFAULT_STATE_VALUE: str = os.getenv("FIRX_DEFAULT_STATE_VALUE", "").strip()

HEADLESS: bool = os.getenv("FIRX_HEADLESS", "1").strip().lower() not in {"0", "false"}


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _parse_delay_seconds(env_var: str, default: float) -> float:
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


# Page navigation (goto/reload and postback navigations).
NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds("FIRX_NAV_TIMEOUT_SECONDS", 60)
# Waiting for a dropdown to be populated after its parent changes.
POPULATE_TIMEOUT_SECONDS: int = _parse_timeout_seconds("FIRX_POPULATE_TIMEOUT_SECONDS", 30)
# Search submission until the result view re-renders.
SEARCH_TIMEOUT_SECONDS: int = _parse_timeout_seconds("FIRX_SEARCH_TIMEOUT_SECONDS", 60)
# Single budget for one artifact download to start and complete.
ARTIFACT_TIMEOUT_SECONDS: int = _parse_timeout_seconds("FIRX_ARTIFACT_TIMEOUT_SECONDS", 20)

# Settle delays (seconds) applied after stateful actions on the source page.
SEARCH_SETTLE_SECONDS: float = _parse_delay_seconds("FIRX_SEARCH_SETTLE_SECONDS", 2.0)
PAGE_SIZE_SETTLE_SECONDS: float = _parse_delay_seconds("FIRX_PAGE_SIZE_SETTLE_SECONDS", 1.0)
FULL_RENDER_SETTLE_SECONDS: float = _parse_delay_seconds("FIRX_FULL_RENDER_SETTLE_SECONDS", 2.0)
DOWNLOAD_SETTLE_SECONDS: float = _parse_delay_seconds("FIRX_DOWNLOAD_SETTLE_SECONDS", 1.0)


def _parse_section_codes(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ("281", "125(A)", "125(B)", "106")
    return tuple(code.strip() for code in raw.split(",") if code.strip())


# Statutory sections a FIR must mention (substring, case-insensitive) to be kept.
SECTION_CODES: tuple[str, ...] = _parse_section_codes(os.getenv("FIRX_SECTION_CODES"))

# Replacement for characters that cannot appear in a directory or file name.
PATH_PLACEHOLDER: str = "_"

EXPORTS_KEEP_MAX: int = int(os.getenv("FIRX_EXPORTS_KEEP_MAX", "5"))

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}
