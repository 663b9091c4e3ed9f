from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from app.extractor.adapter import CHILD, TARGET, Artifact, Level, SourceAdapter, Target
from app.extractor.errors import ArtifactTimeout, ResolutionError, SearchTimeout, SessionError
from app.extractor.rows import FirRow, normalize_row

PDF_BYTES = b"%PDF-1.4\n% fake\n"


class FakeAdapter(SourceAdapter):
    """In-memory stand-in for the published-FIR page.

    ``stations`` maps city id -> [(station id, station name)] and ``results``
    maps station id -> grid rows (label -> text).
    """

    def __init__(
        self,
        *,
        cities: Dict[str, str],
        stations: Dict[str, List[Tuple[str, str]]],
        results: Optional[Dict[str, List[Dict[str, str]]]] = None,
        failing_cities: Iterable[str] = (),
        search_timeouts: Iterable[str] = (),
        artifact_timeouts: Iterable[Tuple[str, int]] = (),
        open_error: bool = False,
        on_fetch: Optional[Callable[[str, int], None]] = None,
    ) -> None:
        self.cities = cities
        self.stations = stations
        self.results = results or {}
        self.failing_cities: Set[str] = set(failing_cities)
        self.search_timeouts: Set[str] = set(search_timeouts)
        self.artifact_timeouts: Set[Tuple[str, int]] = set(artifact_timeouts)
        self.open_error = open_error
        self.on_fetch = on_fetch
        self.calls: List[Tuple] = []
        self.opened = False
        self.closed = False
        self._city: Optional[str] = None
        self._station: Optional[str] = None

    def __enter__(self) -> "FakeAdapter":
        if self.open_error:
            raise SessionError("browser failed to launch")
        self.opened = True
        return self

    def close(self) -> None:
        self.closed = True

    def load_search_page(self) -> None:
        self.calls.append(("load",))
        self._city = self._station = None

    def list_options(self, level: Level) -> List[Target]:
        self.calls.append(("options", level))
        if level == TARGET:
            return [Target(id=k, name=v) for k, v in self.cities.items()]
        return [Target(id=sid, name=name) for sid, name in self.stations.get(self._city, [])]

    def select_target(self, level: Level, target_id: str) -> None:
        self.calls.append(("select", level, target_id))
        if level == TARGET:
            if target_id in self.failing_cities or target_id not in self.cities:
                raise ResolutionError(f"cannot select city {target_id}")
            self._city = target_id
            self._station = None
        else:
            self._station = target_id

    def selected_name(self, level: Level) -> str:
        if level == TARGET:
            return self.cities[self._city]
        return dict(self.stations[self._city])[self._station]

    def wait_for_child_populated(self, level: Level) -> None:
        self.calls.append(("wait", level))
        if level == CHILD and not self.stations.get(self._city):
            raise ResolutionError("station list never populated")

    def set_search_window(self, from_date: str, to_date: str) -> None:
        self.calls.append(("window", from_date, to_date))

    def submit_search(self) -> None:
        self.calls.append(("search", self._station))
        if self._station in self.search_timeouts:
            raise SearchTimeout(f"search for {self._station} timed out")

    def force_full_page_render(self) -> None:
        self.calls.append(("render", self._station))

    def result_count(self) -> int:
        return len(self.results.get(self._station, []))

    def extract_rows(self) -> List[FirRow]:
        rows = self.results.get(self._station, [])
        return [normalize_row(idx, cells) for idx, cells in enumerate(rows)]

    def fetch_artifact(self, row_index: int) -> Artifact:
        self.calls.append(("fetch", self._station, row_index))
        if self.on_fetch is not None:
            self.on_fetch(self._station, row_index)
        if (self._station, row_index) in self.artifact_timeouts:
            raise ArtifactTimeout(f"no download for row {row_index}")
        return Artifact(content=PDF_BYTES, suggested_filename=f"{row_index}.pdf")


def scenario_adapter(**overrides) -> FakeAdapter:
    """City A / station S1 with three rows, two of which match the codes."""

    params = dict(
        cities={"A": "Pune City"},
        stations={"A": [("S1", "Station One"), ("S2", "Station Two")]},
        results={
            "S1": [
                {"Sr. No.": "1", "FIR No.": "0001/2024", "Sections": "106, 34"},
                {"Sr. No.": "2", "FIR No.": "0002/2024", "Sections": "302"},
                {"Sr. No.": "3", "FIR No": "0003/2024", "Sections": "125(B)"},
            ],
        },
    )
    params.update(overrides)
    return FakeAdapter(**params)
