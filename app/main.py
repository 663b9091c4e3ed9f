from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import Flask, Response, jsonify, request, send_file

from app.extractor import config, db, db_reporting
from app.extractor.config_validation import validate_runtime_config
from app.extractor.errors import PersistenceError, RequestNotFoundError, ResolutionError
from app.extractor.export_excel import export_request_to_excel
from app.extractor.healthcheck import run_health_checks
from app.extractor.orchestrator import CancellationToken, TraversalSpec, run_extraction
from app.extractor.progress import ProgressEmitter, StreamChannel
from app.extractor.targets import TargetResolver
from app.extractor.utils import ensure_dirs, log_line

app = Flask(__name__)

# Initialise storage paths and SQLite schema on import so WSGI entrypoints
# also have the expected environment ready. Idempotent.
ensure_dirs()
db.initialize_schema()


def _adapter_factory():
    """Return the factory that opens one source session per call."""

    factory = app.config.get("ADAPTER_FACTORY")
    if factory is not None:
        return factory

    from app.extractor.playwright_adapter import PlaywrightSourceAdapter

    return PlaywrightSourceAdapter


def _parse_payload() -> Dict[str, Any]:
    if request.is_json:
        return dict(request.get_json(silent=True) or {})

    payload: Dict[str, Any] = {key: request.form.get(key) for key in request.form}
    cities = request.form.getlist("cityValue")
    if cities:
        payload["cityValue"] = cities
    return payload


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def _parse_station_filter(value: Any) -> Optional[Dict[str, List[str]]]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, dict):
        raise ValueError("stations must be an object of cityValue -> [stationValue]")
    return {str(city): _as_list(stations) for city, stations in value.items()}


def _parse_date(value: Any, field_name: str) -> str:
    try:
        return datetime.strptime(str(value or "").strip(), "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        raise ValueError(f"{field_name} must be YYYY-MM-DD") from None


def _build_spec(payload: Dict[str, Any]) -> TraversalSpec:
    from_date = _parse_date(payload.get("fromDate"), "fromDate")
    to_date = _parse_date(payload.get("toDate"), "toDate")
    if from_date > to_date:
        raise ValueError("fromDate must not be after toDate")

    cities = _as_list(payload.get("cityValue"))
    if not cities:
        raise ValueError("cityValue is required")

    request_name = str(payload.get("requestName") or "").strip()
    if not request_name:
        raise ValueError("requestName is required")

    try:
        child_filter = _parse_station_filter(payload.get("stations"))
    except json.JSONDecodeError:
        raise ValueError("stations is not valid JSON") from None

    return TraversalSpec(
        request_name=request_name,
        target_ids=cities,
        from_date=from_date,
        to_date=to_date,
        child_filter=child_filter,
    )


@app.get("/cities")
def list_cities() -> Response:
    """Return the selectable cities as ``[{value, text}]``."""

    resolver = TargetResolver(adapter_factory=_adapter_factory())
    try:
        cities = resolver.list_top_level_targets()
    except ResolutionError as exc:
        log_line(f"[HTTP][ERROR] City load failed: {exc}")
        return jsonify({"error": "Failed to load cities"}), 500
    return jsonify([city.as_option() for city in cities])


@app.get("/stations")
def list_stations() -> Response:
    """Return the police stations of ``cityValue`` as ``[{value, text}]``."""

    city_value = (request.args.get("cityValue") or "").strip()
    if not city_value:
        return jsonify({"error": "cityValue is required"}), 400

    resolver = TargetResolver(adapter_factory=_adapter_factory())
    try:
        stations = resolver.list_child_targets(city_value)
    except ResolutionError as exc:
        log_line(f"[HTTP][ERROR] Station load failed for {city_value}: {exc}")
        return jsonify({"error": "Failed to load stations"}), 500
    return jsonify([station.as_option() for station in stations])


@app.post("/download")
def start_download() -> Response:
    """Run one extraction request and stream its progress as plain text."""

    try:
        spec = _build_spec(_parse_payload())
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        validate_runtime_config("ui")
    except ValueError as exc:
        log_line(f"[HTTP][ERROR] Refusing download, configuration invalid: {exc}")
        return jsonify({"error": "Service misconfigured"}), 503

    cancel_token = CancellationToken()
    channel = StreamChannel(on_disconnect=cancel_token.cancel)
    emitter = ProgressEmitter(channel.write)
    factory = _adapter_factory()

    def _run() -> None:
        try:
            run_extraction(spec, emitter, adapter_factory=factory, cancel_token=cancel_token)
        except Exception as exc:  # noqa: BLE001
            log_line(f"Extraction thread failed: {exc}")
        finally:
            channel.close()

    threading.Thread(target=_run, daemon=True).start()

    response = Response(channel.iter_lines(), mimetype="text/plain")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


@app.get("/downloads")
def list_downloads() -> Response:
    """Return every request with its downloaded records grouped by station."""

    try:
        return jsonify(db_reporting.list_requests_with_records())
    except (sqlite3.Error, PersistenceError) as exc:
        log_line(f"[HTTP][ERROR] Loading downloads failed: {exc}")
        return jsonify({"error": "Failed to load downloads"}), 500


@app.get("/downloads/<int:request_id>/summary")
def download_summary(request_id: int) -> Response:
    """Return record status counts and failure codes for one request."""

    try:
        summary = db_reporting.summarise_request(request_id)
    except RequestNotFoundError:
        return jsonify({"ok": False, "error": "request_not_found", "request_id": request_id}), 404

    return jsonify(
        {
            "ok": True,
            "request_id": summary.request_id,
            "status": summary.status,
            "total_downloaded": summary.total_downloaded,
            "status_counts": summary.status_counts,
            "fail_reasons": summary.fail_reasons,
        }
    )


@app.get("/downloads/<int:request_id>/export.xlsx")
def export_download(request_id: int) -> Response:
    """Download an Excel workbook of one request's records."""

    try:
        path = export_request_to_excel(request_id)
    except RequestNotFoundError:
        return jsonify({"ok": False, "error": "request_not_found", "request_id": request_id}), 404
    return send_file(path, as_attachment=True, download_name=f"request_{request_id}.xlsx")


@app.get("/files/<path:filename>")
def download_file(filename: str) -> Response:
    """Serve a downloaded PDF if it lives under the download directory."""

    target = (config.DOWNLOAD_DIR / filename).resolve()
    root = config.DOWNLOAD_DIR.resolve()
    if root not in target.parents:
        return Response("Invalid path", status=400)
    if not target.is_file():
        return Response("File not found", status=404)
    return send_file(target, as_attachment=True, download_name=target.name)


@app.get("/api/health")
def api_health() -> Response:
    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status
