from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from . import config, db
from .config_validation import validate_runtime_config
from .logging_utils import _extractor_event
from .utils import ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def run_health_checks(entrypoint: str = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint or "cli")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    try:
        ensure_dirs()
        checks["filesystem"] = {
            "ok": os.access(config.DOWNLOAD_DIR, os.W_OK),
            "download_dir": str(config.DOWNLOAD_DIR),
        }
    except OSError as exc:
        checks["filesystem"] = {"ok": False, "error": str(exc)}

    try:
        db.initialize_schema()
        conn = db.get_connection()
        conn.execute("SELECT COUNT(*) FROM requests")
        checks["database"] = {"ok": True, "cached_cities": len(db.list_cities())}
    except Exception as exc:  # noqa: BLE001
        checks["database"] = {"ok": False, "error": str(exc)}

    overall_ok = all(check.get("ok", False) for check in checks.values())

    _extractor_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
