"""Per-request telemetry written alongside the database state."""

from __future__ import annotations

import json
import os
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

from . import config


class RunTelemetry:
    """Collect per-record outcomes for one extraction request."""

    def __init__(self, request_id: int) -> None:
        self.request_id = request_id
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, Any] = defaultdict(int)

    def add(self, status: str, reason: str, meta: Dict[str, Any]) -> None:
        self.entries.append(
            {
                "status": status,
                "reason": reason,
                **meta,
            }
        )
        self.summary[f"count_{status}"] += 1

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> str:
        payload = {
            "request_id": self.request_id,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "entries": self.entries,
            **(extra or {}),
        }
        os.makedirs(config.RUNS_DIR, exist_ok=True)
        path = os.path.join(config.RUNS_DIR, f"request_{self.request_id}.json")
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        return path


def prune_old_exports() -> None:
    if not os.path.isdir(config.EXPORTS_DIR):
        return
    files = sorted(
        [
            os.path.join(config.EXPORTS_DIR, p)
            for p in os.listdir(config.EXPORTS_DIR)
            if p.endswith(".xlsx")
        ],
        key=os.path.getmtime,
    )
    while len(files) > config.EXPORTS_KEEP_MAX:
        old = files.pop(0)
        try:
            os.remove(old)
        except OSError:
            continue


__all__ = [
    "RunTelemetry",
    "prune_old_exports",
]
