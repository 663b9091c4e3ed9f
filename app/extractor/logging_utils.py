from __future__ import annotations

from typing import Any

from .utils import log_line


def _extractor_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Write one ``[EXTRACTOR][LABEL] key='value', ...`` line.

    Without a label, ``phase`` becomes the label; with both, ``phase`` is
    kept in the fields.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={repr(v)}" for k, v in sorted(fields.items()))
        log_line(f"[EXTRACTOR][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break the traversal.
        return


__all__ = ["_extractor_event", "log_line"]
