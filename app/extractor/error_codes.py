from __future__ import annotations

"""Error codes persisted on failed records.

These values land in the records.error_code column and in structured logs so
that a failed artifact can be explained after the fact. Treat them as stable.
"""


class ErrorCode:
    ARTIFACT_TIMEOUT = "artifact_timeout"
    ARTIFACT_ERROR = "artifact_error"
    STORAGE_ERROR = "storage_error"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
