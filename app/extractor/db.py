"""SQLite helpers for the FIR extraction service.

This module defines the database path, connection helper, schema
initialisation, and the single-statement operations used to record
extraction requests, extracted records and the cached city/station lists.
"""
from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from . import config
from .errors import PersistenceError

DB_PATH: Path = config.DB_PATH


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing and ``check_same_thread`` is
    disabled because a traversal worker thread and the HTTP thread both use
    the store. Foreign keys are enforced so a record can never point at a
    missing request.
    """

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema() -> None:
    """Create the baseline tables if they do not yet exist.

    Safe to call multiple times; each statement uses ``IF NOT EXISTS`` and
    columns added after the first release are backfilled by
    :func:`_ensure_columns`.
    """

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS requests (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            request_name      TEXT NOT NULL,
            city_name         TEXT,
            city_values       TEXT,
            from_date         TEXT NOT NULL,
            to_date           TEXT NOT NULL,
            status            TEXT NOT NULL,
            total_downloaded  INTEGER NOT NULL DEFAULT 0,
            created_at        TEXT NOT NULL
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_requests_created_at
            ON requests(created_at DESC);
        """,
        """
        CREATE TABLE IF NOT EXISTS records (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id       INTEGER NOT NULL,
            city_name        TEXT,
            station_name     TEXT NOT NULL,
            record_no        TEXT NOT NULL,
            codes            TEXT,
            artifact_path    TEXT,
            download_status  TEXT NOT NULL,
            error_code       TEXT,
            error_message    TEXT,
            created_at       TEXT NOT NULL,
            updated_at       TEXT NOT NULL,
            FOREIGN KEY(request_id) REFERENCES requests(id)
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_records_request_status
            ON records(request_id, download_status);
        """,
        """
        CREATE TABLE IF NOT EXISTS cities (
            value     TEXT PRIMARY KEY,
            text      TEXT NOT NULL,
            position  INTEGER NOT NULL
        );
        """,
        """
        CREATE TABLE IF NOT EXISTS stations (
            city_value  TEXT NOT NULL,
            value       TEXT NOT NULL,
            text        TEXT NOT NULL,
            position    INTEGER NOT NULL,
            PRIMARY KEY (city_value, value)
        );
        """,
    )

    conn = get_connection()
    with conn:
        for statement in statements:
            conn.execute(statement)
    _ensure_columns(conn)


# Columns introduced after the first schema; added in place on old databases.
_ADDITIVE_COLUMNS: Sequence[tuple[str, str, str]] = (
    ("requests", "city_values", "TEXT"),
    ("records", "city_name", "TEXT"),
    ("records", "error_code", "TEXT"),
    ("records", "error_message", "TEXT"),
)


def _ensure_columns(conn: sqlite3.Connection) -> None:
    with conn:
        for table, column, decl in _ADDITIVE_COLUMNS:
            existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
            if column not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl}")


def _utc_now() -> str:
    """Return a UTC timestamp formatted as ISO8601 without fractional seconds."""

    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _execute_write(sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
    """Run one write statement in its own transaction."""

    try:
        conn = get_connection()
        with conn:
            return conn.execute(sql, params)
    except sqlite3.Error as exc:
        raise PersistenceError(str(exc)) from exc


def insert_request(
    *,
    request_name: str,
    city_values: Sequence[str],
    from_date: str,
    to_date: str,
) -> int:
    """Insert a ``requests`` row with status ``running`` and return its id.

    ``city_name`` initially holds the submitted identifiers; it is replaced
    with the resolved display names when the request is finalised.
    """

    cursor = _execute_write(
        """
        INSERT INTO requests (
            request_name, city_name, city_values, from_date, to_date,
            status, total_downloaded, created_at
        ) VALUES (?, ?, ?, ?, ?, 'running', 0, ?)
        """,
        (
            request_name,
            ", ".join(city_values),
            json.dumps(list(city_values)),
            from_date,
            to_date,
            _utc_now(),
        ),
    )
    return int(cursor.lastrowid)


def insert_record(
    request_id: int,
    station_name: str,
    record_no: str,
    codes: str,
    *,
    city_name: Optional[str] = None,
) -> int:
    """Insert a pending ``records`` row and return its id."""

    now = _utc_now()
    cursor = _execute_write(
        """
        INSERT INTO records (
            request_id, city_name, station_name, record_no, codes,
            download_status, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
        """,
        (request_id, city_name, station_name, record_no, codes, now, now),
    )
    return int(cursor.lastrowid)


def update_record_status(
    record_id: int,
    artifact_path: Optional[str],
    status: str,
    *,
    error_code: Optional[str] = None,
    error_message: Optional[str] = None,
) -> None:
    """Update the status (and artifact path) of one record."""

    _execute_write(
        """
        UPDATE records
        SET artifact_path = ?, download_status = ?, error_code = ?,
            error_message = ?, updated_at = ?
        WHERE id = ?
        """,
        (artifact_path, status, error_code, error_message, _utc_now(), record_id),
    )


def get_record(record_id: int) -> Optional[sqlite3.Row]:
    conn = get_connection()
    return conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()


def count_downloaded(request_id: int) -> int:
    """Return how many records of ``request_id`` reached ``downloaded``."""

    conn = get_connection()
    row = conn.execute(
        """
        SELECT COUNT(*) AS total
        FROM records
        WHERE request_id = ? AND download_status = 'downloaded'
        """,
        (request_id,),
    ).fetchone()
    return int(row["total"])


def finalize_request(
    request_id: int,
    total: int,
    status: str,
    names: Sequence[str],
) -> None:
    """Write the final count, status and resolved city names of a request."""

    _execute_write(
        """
        UPDATE requests
        SET total_downloaded = ?, status = ?, city_name = ?
        WHERE id = ?
        """,
        (total, status, ", ".join(names), request_id),
    )


def get_request(request_id: int) -> Optional[sqlite3.Row]:
    """Return the ``requests`` row for ``request_id``, if any."""

    conn = get_connection()
    return conn.execute("SELECT * FROM requests WHERE id = ?", (request_id,)).fetchone()


def list_cities() -> list[dict[str, str]]:
    """Return cached cities as ``{value, text}`` in source order."""

    conn = get_connection()
    rows = conn.execute("SELECT value, text FROM cities ORDER BY position, value").fetchall()
    return [{"value": row["value"], "text": row["text"]} for row in rows]


def list_stations(city_value: str) -> list[dict[str, str]]:
    """Return cached stations of ``city_value`` as ``{value, text}``."""

    conn = get_connection()
    rows = conn.execute(
        """
        SELECT value, text FROM stations
        WHERE city_value = ?
        ORDER BY position, value
        """,
        (city_value,),
    ).fetchall()
    return [{"value": row["value"], "text": row["text"]} for row in rows]


def replace_cities(entries: Sequence[dict[str, str]]) -> None:
    """Replace the cached city list with ``entries``."""

    try:
        conn = get_connection()
        with conn:
            conn.execute("DELETE FROM cities")
            conn.executemany(
                "INSERT INTO cities (value, text, position) VALUES (?, ?, ?)",
                [(e["value"], e["text"], pos) for pos, e in enumerate(entries)],
            )
    except sqlite3.Error as exc:
        raise PersistenceError(str(exc)) from exc


def replace_stations(city_value: str, entries: Sequence[dict[str, str]]) -> None:
    """Replace the cached station list of one city with ``entries``."""

    try:
        conn = get_connection()
        with conn:
            conn.execute("DELETE FROM stations WHERE city_value = ?", (city_value,))
            conn.executemany(
                """
                INSERT INTO stations (city_value, value, text, position)
                VALUES (?, ?, ?, ?)
                """,
                [(city_value, e["value"], e["text"], pos) for pos, e in enumerate(entries)],
            )
    except sqlite3.Error as exc:
        raise PersistenceError(str(exc)) from exc
