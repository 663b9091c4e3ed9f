"""Traversal engine for published-FIR extraction.

Workflow for one request:

- Persist the request (status ``running``) and open one source session.
- For each submitted city, in order: select it, read back its display name,
  resolve its stations and narrow them to the client's station selection.
- For each station: search the date window, expand the grid to all rows,
  keep the rows whose sections mention a configured code, and download each
  kept row's PDF under ``<request>/<city>/<station>/<fir-no>.pdf``.
- Count downloaded records and mark the request ``completed``.

Failures are absorbed at the record, station and city level so one bad unit
never aborts the run; the progress stream is the only failure report.
"""
from __future__ import annotations

import argparse
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import config, db
from .adapter import CHILD, TARGET, SourceAdapter, Target
from .config_validation import validate_runtime_config
from .error_codes import ErrorCode
from .errors import ArtifactTimeout, ExtractorError, PersistenceError
from .logging_utils import _extractor_event
from .progress import ProgressEmitter
from .record_state import RecordDownloadState, RecordStatus
from .rows import FirRow, filter_rows
from .targets import AdapterFactory, TargetResolver
from .telemetry import RunTelemetry
from .utils import build_artifact_path, ensure_dirs, log_line, setup_run_logger


@dataclass
class TraversalSpec:
    """What to extract: cities in submission order plus an optional station filter.

    ``child_filter`` maps a city id to the station ids to process. When the
    mapping is given, a city with no entry (or an empty list) processes no
    stations at all.
    """

    request_name: str
    target_ids: List[str]
    from_date: str
    to_date: str
    child_filter: Optional[Dict[str, List[str]]] = None


@dataclass
class TraversalSummary:
    request_id: int
    total_downloaded: int
    resolved_target_names: List[str] = field(default_factory=list)
    cancelled: bool = False


class CancellationToken:
    """Cooperative stop signal checked between traversal steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _short_error_message(exc: BaseException, max_length: int = 200) -> str:
    message = f"{type(exc).__name__}: {exc}"
    return message if len(message) <= max_length else message[: max_length - 3] + "..."


def effective_children(
    target_id: str,
    children: Sequence[Target],
    child_filter: Optional[Dict[str, List[str]]],
) -> List[Target]:
    """Apply the station selection for ``target_id`` to ``children``."""

    if child_filter is None:
        return list(children)
    allowed = child_filter.get(target_id) or []
    if not allowed:
        return []
    allowed_ids = {str(value) for value in allowed}
    return [child for child in children if child.id in allowed_ids]


class TraversalOrchestrator:
    """Walk cities and stations strictly one at a time over one adapter session."""

    def __init__(
        self,
        adapter: SourceAdapter,
        emitter: ProgressEmitter,
        *,
        resolver: Optional[TargetResolver] = None,
        section_codes: Optional[Sequence[str]] = None,
        download_root: Optional[Path] = None,
        settle_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.adapter = adapter
        self.emitter = emitter
        self.resolver = resolver or TargetResolver(adapter=adapter)
        self.section_codes = tuple(section_codes or config.SECTION_CODES)
        self.download_root = Path(download_root or config.DOWNLOAD_DIR)
        self.settle_seconds = (
            config.DOWNLOAD_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )
        self._sleep = sleep
        self.cancel_token = cancel_token or CancellationToken()
        self.telemetry: Optional[RunTelemetry] = None

    @property
    def _cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def run(self, spec: TraversalSpec, request_id: int) -> TraversalSummary:
        """Traverse every submitted target and finalise ``request_id``."""

        self.telemetry = RunTelemetry(request_id)
        resolved_names: List[str] = []
        cancelled = False

        for target_id in spec.target_ids:
            if self._cancelled:
                cancelled = True
                self.emitter.cancelled()
                break
            try:
                self._process_target(spec, request_id, target_id, resolved_names)
            except Exception as exc:  # noqa: BLE001
                _extractor_event(
                    "error",
                    phase="target",
                    request_id=request_id,
                    target_id=target_id,
                    error=_short_error_message(exc),
                )
                self.emitter.target_failed(target_id, exc)

        if not cancelled and self._cancelled:
            cancelled = True
            self.emitter.cancelled()

        total = db.count_downloaded(request_id)
        db.finalize_request(request_id, total, "completed", resolved_names)
        self.emitter.summary(total)

        try:
            self.telemetry.finalize(
                {
                    "request_name": spec.request_name,
                    "total_downloaded": total,
                    "cities": resolved_names,
                    "cancelled": cancelled,
                }
            )
        except OSError as exc:
            log_line(f"[RUN][WARN] Unable to write telemetry for request {request_id}: {exc}")

        return TraversalSummary(
            request_id=request_id,
            total_downloaded=total,
            resolved_target_names=resolved_names,
            cancelled=cancelled,
        )

    def _process_target(
        self,
        spec: TraversalSpec,
        request_id: int,
        target_id: str,
        resolved_names: List[str],
    ) -> None:
        self.adapter.select_target(TARGET, target_id)
        self.adapter.wait_for_child_populated(CHILD)
        target_name = self.adapter.selected_name(TARGET)
        resolved_names.append(target_name)
        self.emitter.target_started(target_name)

        children = self.resolver.list_child_targets(target_id)
        selected = effective_children(target_id, children, spec.child_filter)
        _extractor_event(
            "plan",
            request_id=request_id,
            target_id=target_id,
            target_name=target_name,
            children_total=len(children),
            children_selected=len(selected),
        )
        if not selected:
            self.emitter.target_skipped(target_name)
            return
        self.emitter.target_children(target_name, len(selected))

        for child in selected:
            if self._cancelled:
                return
            self.emitter.child_started(child.name)
            try:
                self._process_child(spec, request_id, target_name, child)
            except Exception as exc:  # noqa: BLE001
                _extractor_event(
                    "error",
                    phase="child",
                    request_id=request_id,
                    target_name=target_name,
                    child_id=child.id,
                    error=_short_error_message(exc),
                )
                self.emitter.child_failed(child.name, exc)

    def _process_child(
        self,
        spec: TraversalSpec,
        request_id: int,
        target_name: str,
        child: Target,
    ) -> None:
        adapter = self.adapter
        adapter.select_target(CHILD, child.id)
        adapter.set_search_window(spec.from_date, spec.to_date)
        adapter.submit_search()
        adapter.force_full_page_render()

        total = adapter.result_count()
        if total == 0:
            self.emitter.child_empty(child.name)
            return
        self.emitter.child_total(child.name, total)

        matched = filter_rows(adapter.extract_rows(), self.section_codes)
        if not matched:
            self.emitter.child_unmatched(child.name)
            return
        self.emitter.child_matched(child.name, len(matched))

        for row in matched:
            if self._cancelled:
                return
            try:
                self._process_record(spec, request_id, target_name, child, row)
            except Exception as exc:  # noqa: BLE001
                record_no = row.record_no or f"row_{row.row_index}"
                _extractor_event(
                    "error",
                    phase="record",
                    request_id=request_id,
                    child_id=child.id,
                    record_no=record_no,
                    error=_short_error_message(exc),
                )
                self.emitter.artifact_failed(record_no, exc)

    def _process_record(
        self,
        spec: TraversalSpec,
        request_id: int,
        target_name: str,
        child: Target,
        row: FirRow,
    ) -> None:
        record_no = row.record_no or f"row_{row.row_index}"
        state = RecordDownloadState.create(
            request_id=request_id,
            city_name=target_name,
            station_name=child.name,
            record_no=record_no,
            codes=row.sections,
        )
        meta = {
            "record_id": state.record_id,
            "record_no": record_no,
            "city": target_name,
            "station": child.name,
            "sections": row.sections,
        }

        try:
            artifact = self.adapter.fetch_artifact(row.row_index)
        except ArtifactTimeout as exc:
            self._record_failure(state, ErrorCode.ARTIFACT_TIMEOUT, exc, meta)
            return
        except ExtractorError as exc:
            self._record_failure(state, ErrorCode.ARTIFACT_ERROR, exc, meta)
            return
        except Exception as exc:  # noqa: BLE001
            self._record_failure(state, ErrorCode.INTERNAL, exc, meta)
            return

        path = build_artifact_path(
            self.download_root,
            request_name=spec.request_name,
            request_id=request_id,
            target_name=target_name,
            child_name=child.name,
            record_no=record_no,
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(artifact.content)
        except OSError as exc:
            self._record_failure(state, ErrorCode.STORAGE_ERROR, exc, meta)
            return

        try:
            state.mark_downloaded(str(path))
        except PersistenceError as exc:
            self._record_failure(state, ErrorCode.INTERNAL, exc, meta)
            return
        self.emitter.artifact_saved(path.name)
        if self.telemetry is not None:
            self.telemetry.add(
                RecordStatus.DOWNLOADED.value,
                "ok",
                {**meta, "artifact_path": str(path), "size_bytes": len(artifact.content)},
            )
        # The source cannot serve overlapping downloads in one session.
        self._sleep(self.settle_seconds)

    def _record_failure(
        self,
        state: RecordDownloadState,
        error_code: str,
        exc: BaseException,
        meta: Dict[str, object],
    ) -> None:
        state.mark_failed(error_code=error_code, error_message=_short_error_message(exc))
        self.emitter.artifact_failed(state.record_no, exc)
        if self.telemetry is not None:
            self.telemetry.add(RecordStatus.FAILED.value, error_code, dict(meta))


def _default_adapter_factory() -> SourceAdapter:
    from .playwright_adapter import PlaywrightSourceAdapter

    return PlaywrightSourceAdapter()


def run_extraction(
    spec: TraversalSpec,
    emitter: ProgressEmitter,
    *,
    adapter_factory: Optional[AdapterFactory] = None,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[TraversalSummary]:
    """Run one extraction request end to end and emit exactly one terminal line.

    Returns the summary, or ``None`` when the run could not complete. If the
    source session cannot be opened the request stays ``running``.
    """

    factory = adapter_factory or _default_adapter_factory

    emitter.started()
    request_id: Optional[int] = None
    try:
        ensure_dirs()
        db.initialize_schema()
        request_id = db.insert_request(
            request_name=spec.request_name,
            city_values=spec.target_ids,
            from_date=spec.from_date,
            to_date=spec.to_date,
        )
        emitter.request_created(request_id)
        _extractor_event(
            "run",
            step="start",
            request_id=request_id,
            request_name=spec.request_name,
            cities=spec.target_ids,
            from_date=spec.from_date,
            to_date=spec.to_date,
        )

        with factory() as adapter:
            orchestrator = TraversalOrchestrator(
                adapter,
                emitter,
                resolver=TargetResolver(adapter=adapter),
                cancel_token=cancel_token,
                sleep=sleep,
            )
            summary = orchestrator.run(spec, request_id)
    except Exception as exc:  # noqa: BLE001
        _extractor_event(
            "error",
            phase="run",
            request_id=request_id,
            error=_short_error_message(exc),
        )
        emitter.failed()
        return None

    _extractor_event(
        "run",
        step="completed",
        request_id=request_id,
        total_downloaded=summary.total_downloaded,
        cancelled=summary.cancelled,
    )
    emitter.completed(cancelled=summary.cancelled)
    return summary


def _parse_station_filter(values: Optional[List[str]]) -> Optional[Dict[str, List[str]]]:
    if not values:
        return None
    stations: Dict[str, List[str]] = {}
    for value in values:
        city, sep, station = value.partition(":")
        if not sep or not city or not station:
            raise argparse.ArgumentTypeError(f"--station expects CITY:STATION, got {value!r}")
        stations.setdefault(city, []).append(station)
    return stations


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Extract published FIRs for one or more cities")
    parser.add_argument("--name", required=True, help="Request name used for the output folder")
    parser.add_argument("--from-date", required=True, help="YYYY-MM-DD")
    parser.add_argument("--to-date", required=True, help="YYYY-MM-DD")
    parser.add_argument("--city", action="append", required=True, help="City value (repeatable)")
    parser.add_argument(
        "--station",
        action="append",
        default=None,
        help="Restrict to CITY:STATION (repeatable); cities without one are skipped",
    )
    args = parser.parse_args(argv)

    ensure_dirs()
    validate_runtime_config("cli")
    setup_run_logger()

    spec = TraversalSpec(
        request_name=args.name,
        target_ids=args.city,
        from_date=args.from_date,
        to_date=args.to_date,
        child_filter=_parse_station_filter(args.station),
    )

    # Progress lines are mirrored to the log, which already writes to stdout.
    summary = run_extraction(spec, ProgressEmitter(lambda _text: None))
    raise SystemExit(0 if summary is not None else 1)


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = [
    "CancellationToken",
    "TraversalOrchestrator",
    "TraversalSpec",
    "TraversalSummary",
    "effective_children",
    "run_extraction",
]
