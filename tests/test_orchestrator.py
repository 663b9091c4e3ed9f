from __future__ import annotations

import argparse
import sqlite3
from pathlib import Path
from typing import List

import pytest

from app.extractor import config, db
from app.extractor.orchestrator import (
    CancellationToken,
    TraversalSpec,
    _parse_station_filter,
    effective_children,
    run_extraction,
)
from app.extractor.adapter import Target
from app.extractor.errors import PersistenceError
from app.extractor.progress import ProgressEmitter
from tests.fake_source import FakeAdapter, scenario_adapter


def _spec(**overrides) -> TraversalSpec:
    params = dict(
        request_name="Jan run",
        target_ids=["A"],
        from_date="2024-01-01",
        to_date="2024-01-31",
        child_filter={"A": ["S1"]},
    )
    params.update(overrides)
    return TraversalSpec(**params)


def _run(adapter: FakeAdapter, spec: TraversalSpec, **kwargs):
    lines: List[str] = []
    sleeps: List[float] = []
    summary = run_extraction(
        spec,
        ProgressEmitter(lines.append),
        adapter_factory=lambda: adapter,
        sleep=sleeps.append,
        **kwargs,
    )
    return summary, [line.rstrip("\n") for line in lines], sleeps


def _records(request_id: int):
    conn = db.get_connection()
    return conn.execute(
        "SELECT * FROM records WHERE request_id = ? ORDER BY id", (request_id,)
    ).fetchall()


def test_matching_rows_are_downloaded_and_counted() -> None:
    adapter = scenario_adapter()

    summary, lines, sleeps = _run(adapter, _spec())

    assert summary is not None
    assert summary.total_downloaded == 2
    assert summary.resolved_target_names == ["Pune City"]

    records = _records(summary.request_id)
    assert [r["record_no"] for r in records] == ["0001/2024", "0003/2024"]
    assert {r["download_status"] for r in records} == {"downloaded"}
    assert [r["station_name"] for r in records] == ["Station One", "Station One"]

    expected_dir = config.DOWNLOAD_DIR / "Jan_run_request_1" / "Pune City" / "Station One"
    assert Path(records[0]["artifact_path"]) == expected_dir / "0001_2024.pdf"
    assert (expected_dir / "0001_2024.pdf").read_bytes().startswith(b"%PDF")
    assert (expected_dir / "0003_2024.pdf").exists()

    # Only the original row indexes of matched rows are fetched.
    fetched = [call[2] for call in adapter.calls if call[0] == "fetch"]
    assert fetched == [0, 2]
    assert len(sleeps) == 2

    request = db.get_request(summary.request_id)
    assert request["status"] == "completed"
    assert request["total_downloaded"] == 2
    assert request["city_name"] == "Pune City"
    assert adapter.closed is True


def test_progress_lines_follow_traversal_order() -> None:
    summary, lines, _ = _run(scenario_adapter(), _spec())

    assert lines == [
        "Download started...",
        f"Request ID: {summary.request_id}",
        "Selected city: Pune City",
        "Total stations in Pune City: 1",
        "Processing station: Station One",
        "Total FIRs in Station One: 3",
        "Matched FIRs in Station One: 2",
        "Saved FIR: 0001_2024.pdf",
        "Saved FIR: 0003_2024.pdf",
        "Total downloaded FIRs: 2",
        "Download completed successfully!",
    ]


@pytest.mark.parametrize("child_filter", [{"A": []}, {"OTHER": ["S1"]}, {}])
def test_city_without_selected_stations_processes_nothing(child_filter) -> None:
    adapter = scenario_adapter()

    summary, lines, _ = _run(adapter, _spec(child_filter=child_filter))

    assert summary.total_downloaded == 0
    assert _records(summary.request_id) == []
    assert not any(call[0] == "search" for call in adapter.calls)
    assert "No stations selected for Pune City, skipping" in lines
    assert not config.DOWNLOAD_DIR.joinpath("Jan_run_request_1").exists()


def test_no_filter_processes_every_station() -> None:
    adapter = scenario_adapter()

    summary, lines, _ = _run(adapter, _spec(child_filter=None))

    assert "Processing station: Station One" in lines
    assert "Processing station: Station Two" in lines
    assert "No FIRs in Station Two, skipping" in lines
    assert summary.total_downloaded == 2


def test_station_without_rows_creates_no_folder() -> None:
    adapter = scenario_adapter()

    summary, lines, _ = _run(adapter, _spec(child_filter={"A": ["S2"]}))

    assert lines[-3:] == [
        "No FIRs in Station Two, skipping",
        "Total downloaded FIRs: 0",
        "Download completed successfully!",
    ]
    assert _records(summary.request_id) == []
    assert not config.DOWNLOAD_DIR.joinpath("Jan_run_request_1").exists()


def test_station_without_matches_creates_no_folder() -> None:
    adapter = scenario_adapter(
        results={"S1": [{"FIR No.": "0009/2024", "Sections": "302, 307"}]},
    )

    summary, lines, _ = _run(adapter, _spec())

    assert "No matched FIRs in Station One, skipping" in lines
    assert _records(summary.request_id) == []
    assert not config.DOWNLOAD_DIR.joinpath("Jan_run_request_1").exists()


def test_search_timeout_abandons_only_that_station() -> None:
    adapter = scenario_adapter(
        stations={"A": [("S0", "Station Zero"), ("S1", "Station One")]},
        search_timeouts=["S0"],
    )

    summary, lines, _ = _run(adapter, _spec(child_filter={"A": ["S0", "S1"]}))

    failure = [line for line in lines if line.startswith("Error processing station Station Zero")]
    assert len(failure) == 1
    assert lines.index(failure[0]) < lines.index("Processing station: Station One")
    assert summary.total_downloaded == 2


def test_failed_city_is_skipped_and_run_completes_once() -> None:
    adapter = scenario_adapter(failing_cities=["BAD"])

    summary, lines, _ = _run(
        adapter, _spec(target_ids=["BAD", "A"], child_filter={"BAD": ["X"], "A": ["S1"]})
    )

    assert lines[2].startswith("Error processing city BAD:")
    assert lines[3] == "Selected city: Pune City"
    assert summary.total_downloaded == 2
    assert summary.resolved_target_names == ["Pune City"]
    assert sum(1 for line in lines if line.startswith("Download completed")) == 1
    assert db.get_request(summary.request_id)["city_name"] == "Pune City"


def test_artifact_timeout_marks_record_failed_and_continues() -> None:
    adapter = scenario_adapter(artifact_timeouts=[("S1", 0)])

    summary, lines, sleeps = _run(adapter, _spec())

    assert summary.total_downloaded == 1
    records = _records(summary.request_id)
    assert [r["download_status"] for r in records] == ["failed", "downloaded"]
    assert records[0]["error_code"] == "artifact_timeout"
    assert records[0]["artifact_path"] is None
    assert any(line.startswith("Failed FIR: 0001/2024") for line in lines)
    assert "Saved FIR: 0003_2024.pdf" in lines
    assert len(sleeps) == 1

    request = db.get_request(summary.request_id)
    assert request["total_downloaded"] == db.count_downloaded(summary.request_id) == 1


def test_cached_stations_take_precedence_over_live_list() -> None:
    db.replace_stations("A", [{"value": "S1", "text": "Station One"}])
    adapter = scenario_adapter()

    summary, lines, _ = _run(adapter, _spec(child_filter=None))

    assert "Processing station: Station Two" not in lines
    assert ("options", "child") not in adapter.calls
    assert summary.total_downloaded == 2


def test_cancellation_stops_traversal_and_finalises() -> None:
    token = CancellationToken()
    adapter = scenario_adapter(on_fetch=lambda station, idx: token.cancel())

    summary, lines, _ = _run(adapter, _spec(), cancel_token=token)

    assert summary.cancelled is True
    assert summary.total_downloaded == 1
    assert lines[-1] == "Download stopped early (cancelled)."
    assert "Cancellation requested; stopping traversal" in lines
    assert db.get_request(summary.request_id)["status"] == "completed"


def test_session_failure_leaves_request_running() -> None:
    adapter = scenario_adapter(open_error=True)

    summary, lines, _ = _run(adapter, _spec())

    assert summary is None
    assert lines[-1] == "Error occurred. Check server logs."
    conn = db.get_connection()
    row = conn.execute("SELECT status, total_downloaded FROM requests").fetchone()
    assert row["status"] == "running"
    assert row["total_downloaded"] == 0


def test_telemetry_written_per_request() -> None:
    summary, _, _ = _run(scenario_adapter(), _spec())

    path = config.RUNS_DIR / f"request_{summary.request_id}.json"
    assert path.exists()
    assert '"count_downloaded": 2' in path.read_text(encoding="utf-8")


def test_effective_children_intersects_in_source_order() -> None:
    children = [Target("1", "One"), Target("2", "Two"), Target("3", "Three")]

    assert effective_children("A", children, None) == children
    assert effective_children("A", children, {"A": ["3", "1"]}) == [children[0], children[2]]
    assert effective_children("A", children, {"A": ["9"]}) == []
    assert effective_children("A", children, {"B": ["1"]}) == []


def test_cli_station_filter_parsing() -> None:
    assert _parse_station_filter(None) is None
    assert _parse_station_filter(["A:S1", "A:S2", "B:S9"]) == {"A": ["S1", "S2"], "B": ["S9"]}
    with pytest.raises(argparse.ArgumentTypeError):
        _parse_station_filter(["A"])


def test_record_store_error_skips_only_that_record(monkeypatch: pytest.MonkeyPatch) -> None:
    real_insert = db.insert_record
    calls = {"n": 0}

    def _flaky_insert(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise PersistenceError("database is locked")
        return real_insert(*args, **kwargs)

    monkeypatch.setattr(db, "insert_record", _flaky_insert)
    adapter = scenario_adapter()

    summary, lines, _ = _run(adapter, _spec())

    fetched = [call[2] for call in adapter.calls if call[0] == "fetch"]
    assert fetched == [2]
    assert summary.total_downloaded == 1
    assert "Failed FIR: 0001/2024 (database is locked)" in lines
    assert "Saved FIR: 0003_2024.pdf" in lines
    assert not any(line.startswith("Error processing station") for line in lines)


def test_unexpected_fetch_error_marks_record_internal() -> None:
    def _broken_first_row(station, idx):
        if idx == 0:
            raise OSError("download file vanished")

    adapter = scenario_adapter(on_fetch=_broken_first_row)

    summary, lines, _ = _run(adapter, _spec())

    records = _records(summary.request_id)
    assert [r["download_status"] for r in records] == ["failed", "downloaded"]
    assert records[0]["error_code"] == "internal_error"
    assert summary.total_downloaded == 1


def test_status_update_error_fails_record_and_continues(monkeypatch: pytest.MonkeyPatch) -> None:
    real_update = db.update_record_status
    calls = {"n": 0}

    def _flaky_update(record_id, artifact_path, status, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise PersistenceError("disk I/O error")
        return real_update(record_id, artifact_path, status, **kwargs)

    monkeypatch.setattr(db, "update_record_status", _flaky_update)

    summary, lines, _ = _run(scenario_adapter(), _spec())

    records = _records(summary.request_id)
    assert [r["download_status"] for r in records] == ["failed", "downloaded"]
    assert records[0]["error_code"] == "internal_error"
    assert summary.total_downloaded == 1
    assert any(line.startswith("Failed FIR: 0001/2024") for line in lines)


def test_storage_setup_failure_still_ends_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_database():
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(db, "initialize_schema", _no_database)

    summary, lines, _ = _run(scenario_adapter(), _spec())

    assert summary is None
    assert lines == ["Download started...", "Error occurred. Check server logs."]
