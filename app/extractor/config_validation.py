from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _extractor_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "seed", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _extractor_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    """

    timeout_fields = [
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("POPULATE_TIMEOUT_SECONDS", config.POPULATE_TIMEOUT_SECONDS),
        ("SEARCH_TIMEOUT_SECONDS", config.SEARCH_TIMEOUT_SECONDS),
        ("ARTIFACT_TIMEOUT_SECONDS", config.ARTIFACT_TIMEOUT_SECONDS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    delay_fields = [
        ("SEARCH_SETTLE_SECONDS", config.SEARCH_SETTLE_SECONDS),
        ("PAGE_SIZE_SETTLE_SECONDS", config.PAGE_SIZE_SETTLE_SECONDS),
        ("FULL_RENDER_SETTLE_SECONDS", config.FULL_RENDER_SETTLE_SECONDS),
        ("DOWNLOAD_SETTLE_SECONDS", config.DOWNLOAD_SETTLE_SECONDS),
    ]
    for field_name, value in delay_fields:
        if value < 0:
            _raise_config_error(
                f"{field_name} must be non-negative.",
                entrypoint=entrypoint,
                error="invalid_delay",
            )

    if not config.SECTION_CODES:
        _raise_config_error(
            "SECTION_CODES must contain at least one code.",
            entrypoint=entrypoint,
            error="empty_section_codes",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
