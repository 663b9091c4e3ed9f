"""Result-grid parsing and section filtering for published FIR listings."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence

from bs4 import BeautifulSoup

# Column labels seen on the grid for the same field, in preference order.
RECORD_NO_KEYS: Sequence[str] = ("FIR No.", "FIR No", "FIR Number")
SECTIONS_KEYS: Sequence[str] = ("Sections", "Section", "Act & Sections")


@dataclass(frozen=True)
class FirRow:
    """One grid row normalised to named fields.

    ``row_index`` is the 0-based position among the grid's data rows and is
    what the source uses to address the row's download button.
    """

    row_index: int
    record_no: str
    sections: str
    raw: Dict[str, str] = field(default_factory=dict, compare=False)


def _first_present(cells: Mapping[str, str], keys: Iterable[str]) -> str:
    for key in keys:
        value = cells.get(key)
        if value:
            return value
    return ""


def normalize_row(row_index: int, cells: Mapping[str, str]) -> FirRow:
    """Map a label->text mapping onto :class:`FirRow`."""

    return FirRow(
        row_index=row_index,
        record_no=_first_present(cells, RECORD_NO_KEYS).strip(),
        sections=_first_present(cells, SECTIONS_KEYS).strip(),
        raw=dict(cells),
    )


def _cell_text(cell) -> str:
    return " ".join(cell.stripped_strings)


def parse_results_table(table_html: str) -> List[Dict[str, str]]:
    """Return the grid's data rows as label->text mappings.

    The first row carrying ``th`` cells supplies the labels; every later row
    with ``td`` cells is a data row. Missing trailing cells become ``""``.
    """

    soup = BeautifulSoup(table_html or "", "html5lib")
    rows = soup.find_all("tr")
    if not rows:
        return []

    header: List[str] = []
    body_start = 0
    for idx, tr in enumerate(rows):
        headings = tr.find_all("th")
        if headings:
            header = [_cell_text(th) for th in headings]
            body_start = idx + 1
            break

    parsed: List[Dict[str, str]] = []
    for tr in rows[body_start:]:
        cells = [_cell_text(td) for td in tr.find_all("td")]
        if not cells:
            continue
        parsed.append(
            {label: (cells[pos] if pos < len(cells) else "") for pos, label in enumerate(header)}
        )
    return parsed


def matches_sections(sections_text: str, codes: Sequence[str]) -> bool:
    """Return True when any code occurs in ``sections_text``, ignoring case.

    Matching is plain substring containment: ``"106"`` matches ``"106A, 34"``.
    """

    haystack = (sections_text or "").lower()
    return any(code.lower() in haystack for code in codes if code)


def filter_rows(rows: Iterable[FirRow], codes: Sequence[str]) -> List[FirRow]:
    """Keep the rows whose sections match ``codes``, in extraction order."""

    return [row for row in rows if matches_sections(row.sections, codes)]


__all__ = [
    "FirRow",
    "filter_rows",
    "matches_sections",
    "normalize_row",
    "parse_results_table",
]
