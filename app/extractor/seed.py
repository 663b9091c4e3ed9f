"""Populate the cached city/station lists from the live source."""
from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import db
from .adapter import CHILD, TARGET, SourceAdapter
from .config_validation import validate_runtime_config
from .errors import ExtractorError
from .logging_utils import _extractor_event
from .utils import ensure_dirs, log_line


@dataclass
class SeedResult:
    cities: int = 0
    stations: int = 0
    failed_cities: Dict[str, str] = field(default_factory=dict)


def seed_reference_data(
    adapter: SourceAdapter,
    *,
    city_values: Optional[List[str]] = None,
) -> SeedResult:
    """Replace cached cities and their stations with what the source lists now.

    ``city_values`` limits station seeding to those cities; the city list
    itself is always refreshed. A city whose stations cannot be read keeps
    its previous cache and is reported in ``failed_cities``.
    """

    result = SeedResult()

    adapter.wait_for_child_populated(TARGET)
    cities = adapter.list_options(TARGET)
    db.replace_cities([city.as_option() for city in cities])
    result.cities = len(cities)
    log_line(f"[SEED] Cached {len(cities)} cities")

    wanted = set(city_values) if city_values else None
    for city in cities:
        if wanted is not None and city.id not in wanted:
            continue
        try:
            adapter.select_target(TARGET, city.id)
            adapter.wait_for_child_populated(CHILD)
            stations = adapter.list_options(CHILD)
        except ExtractorError as exc:
            result.failed_cities[city.id] = str(exc)
            _extractor_event("error", phase="seed", city=city.id, error=str(exc))
            continue
        db.replace_stations(city.id, [station.as_option() for station in stations])
        result.stations += len(stations)
        log_line(f"[SEED] Cached {len(stations)} stations for {city.name}")

    return result


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Cache city and station lists")
    parser.add_argument("--city", action="append", default=None, help="Only seed these cities")
    args = parser.parse_args(argv)

    from .playwright_adapter import PlaywrightSourceAdapter

    ensure_dirs()
    validate_runtime_config("seed")
    db.initialize_schema()
    with PlaywrightSourceAdapter() as adapter:
        result = seed_reference_data(adapter, city_values=args.city)
    log_line(
        f"[SEED] Done: cities={result.cities} stations={result.stations} "
        f"failed={len(result.failed_cities)}"
    )
    raise SystemExit(0 if not result.failed_cities else 1)


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["SeedResult", "seed_reference_data"]
