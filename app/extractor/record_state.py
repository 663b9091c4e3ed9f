from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import db
from .error_codes import ErrorCode
from .logging_utils import _extractor_event


class RecordStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


@dataclass
class RecordDownloadState:
    request_id: int
    record_id: int
    record_no: str
    status: RecordStatus = RecordStatus.PENDING
    artifact_path: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        request_id: int,
        city_name: str,
        station_name: str,
        record_no: str,
        codes: str,
    ) -> "RecordDownloadState":
        """Persist a new pending record and return its state handle."""

        record_id = db.insert_record(
            request_id,
            station_name,
            record_no,
            codes,
            city_name=city_name,
        )
        _extractor_event(
            "state",
            request_id=request_id,
            record_id=record_id,
            record_no=record_no,
            to_status=RecordStatus.PENDING.value,
        )
        return cls(request_id=request_id, record_id=record_id, record_no=record_no)

    def _ensure_can_transition(self, target: RecordStatus) -> bool:
        if self.status == RecordStatus.DOWNLOADED and target != RecordStatus.DOWNLOADED:
            _extractor_event(
                "error",
                request_id=self.request_id,
                record_id=self.record_id,
                current_status=self.status.value,
                attempted_status=target.value,
                error="invalid_transition_after_download",
            )
            return False
        return True

    def mark_downloaded(self, artifact_path: str) -> None:
        """Mark this record as downloaded to ``artifact_path``."""

        if not self._ensure_can_transition(RecordStatus.DOWNLOADED):
            return

        db.update_record_status(self.record_id, artifact_path, RecordStatus.DOWNLOADED.value)
        prev, self.status = self.status, RecordStatus.DOWNLOADED
        self.artifact_path = artifact_path
        _extractor_event(
            "state",
            request_id=self.request_id,
            record_id=self.record_id,
            from_status=prev.value,
            to_status=self.status.value,
            artifact_path=artifact_path,
        )

    def mark_failed(
        self,
        *,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Mark this record as failed; ``internal_error`` when no code is given."""

        if not self._ensure_can_transition(RecordStatus.FAILED):
            return

        final_error_code = error_code or ErrorCode.INTERNAL
        db.update_record_status(
            self.record_id,
            None,
            RecordStatus.FAILED.value,
            error_code=final_error_code,
            error_message=error_message,
        )
        prev, self.status = self.status, RecordStatus.FAILED
        _extractor_event(
            "state",
            request_id=self.request_id,
            record_id=self.record_id,
            from_status=prev.value,
            to_status=self.status.value,
            error_code=final_error_code,
            error_message=error_message,
        )


__all__ = ["RecordDownloadState", "RecordStatus"]
