"""Excel export of one extraction request's records."""

from __future__ import annotations

import os
from typing import Optional

import pandas as pd

from . import config, db_reporting
from .telemetry import prune_old_exports


def export_request_to_excel(request_id: int, dest_path: Optional[str] = None) -> str:
    """Create an Excel workbook listing every record of ``request_id``."""

    records = db_reporting.list_records_for_request(request_id)

    df = pd.DataFrame(records)
    if df.empty:
        df = pd.DataFrame([{"info": "No records for this request"}])

    has_status = "download_status" in df.columns
    downloaded = df[df["download_status"] == "downloaded"].copy() if has_status else pd.DataFrame()
    failed = df[df["download_status"] == "failed"].copy() if has_status else pd.DataFrame()
    by_station = (
        df.groupby(["station_name", "download_status"]).size().reset_index(name="count")
        if has_status
        else pd.DataFrame()
    )

    os.makedirs(config.EXPORTS_DIR, exist_ok=True)
    if not dest_path:
        dest_path = os.path.join(config.EXPORTS_DIR, f"request_{request_id}.xlsx")

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="All")
        downloaded.to_excel(writer, index=False, sheet_name="Downloaded")
        failed.to_excel(writer, index=False, sheet_name="Failed")
        if not by_station.empty:
            by_station.to_excel(writer, index=False, sheet_name="Summary_Station")

    prune_old_exports()
    return dest_path


__all__ = ["export_request_to_excel"]
