from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from . import db
from .errors import RequestNotFoundError


@dataclass
class RequestSummary:
    """Aggregate record outcomes for a single extraction request."""

    request_id: int
    status: str
    total_downloaded: int
    status_counts: Dict[str, int]
    fail_reasons: Dict[str, int]


def list_requests_with_records() -> List[Dict[str, Any]]:
    """Return every request with its downloaded records grouped by station.

    Requests are ordered newest first. Each entry has the shape::

        {"id", "request_name", "city", "created_at",
         "stations": {station_name: [{"record_no", "artifact_path"}, ...]}}
    """

    conn = db.get_connection()
    requests = conn.execute(
        """
        SELECT id, request_name, city_name, created_at
        FROM requests
        ORDER BY created_at DESC, id DESC
        """
    ).fetchall()

    result: List[Dict[str, Any]] = []
    by_id: Dict[int, Dict[str, Any]] = {}
    for row in requests:
        entry = {
            "id": int(row["id"]),
            "request_name": row["request_name"],
            "city": row["city_name"],
            "created_at": row["created_at"],
            "stations": {},
        }
        result.append(entry)
        by_id[entry["id"]] = entry

    records = conn.execute(
        """
        SELECT request_id, station_name, record_no, artifact_path
        FROM records
        WHERE download_status = 'downloaded'
        ORDER BY id
        """
    ).fetchall()
    for row in records:
        entry = by_id.get(int(row["request_id"]))
        if entry is None:
            continue
        entry["stations"].setdefault(row["station_name"], []).append(
            {"record_no": row["record_no"], "artifact_path": row["artifact_path"]}
        )

    return result


def summarise_request(request_id: int) -> RequestSummary:
    """Compute status counts and failure codes for one request."""

    row = db.get_request(request_id)
    if row is None:
        raise RequestNotFoundError(f"Request {request_id} does not exist")

    conn = db.get_connection()
    status_counts: Dict[str, int] = {}
    for status_row in conn.execute(
        """
        SELECT download_status, COUNT(*) AS n
        FROM records
        WHERE request_id = ?
        GROUP BY download_status
        """,
        (request_id,),
    ).fetchall():
        status_counts[status_row["download_status"]] = int(status_row["n"])

    fail_reasons: Dict[str, int] = {}
    for reason_row in conn.execute(
        """
        SELECT COALESCE(error_code, '') AS error_code, COUNT(*) AS n
        FROM records
        WHERE request_id = ? AND download_status = 'failed'
        GROUP BY error_code
        """,
        (request_id,),
    ).fetchall():
        code = (reason_row["error_code"] or "").strip() or "unknown"
        fail_reasons[code] = int(reason_row["n"])

    return RequestSummary(
        request_id=request_id,
        status=row["status"],
        total_downloaded=int(row["total_downloaded"]),
        status_counts=status_counts,
        fail_reasons=fail_reasons,
    )


def list_records_for_request(request_id: int) -> List[Dict[str, Any]]:
    """Return every record of ``request_id`` in creation order."""

    if db.get_request(request_id) is None:
        raise RequestNotFoundError(f"Request {request_id} does not exist")

    conn = db.get_connection()
    rows = conn.execute(
        """
        SELECT id, city_name, station_name, record_no, codes, artifact_path,
               download_status, error_code, error_message, created_at
        FROM records
        WHERE request_id = ?
        ORDER BY id
        """,
        (request_id,),
    ).fetchall()
    return [dict(row) for row in rows]


__all__ = [
    "RequestSummary",
    "list_requests_with_records",
    "list_records_for_request",
    "summarise_request",
]
