"""Boundary contract for the interactive external FIR source.

The traversal engine only talks to the source through :class:`SourceAdapter`.
One adapter instance owns one browser session; every call may block up to its
configured timeout and raises a typed error from :mod:`.errors` on expiry.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Literal

from .rows import FirRow

Level = Literal["target", "child"]

TARGET: Level = "target"
CHILD: Level = "child"


@dataclass(frozen=True)
class Target:
    """A selectable option of the source hierarchy (city or police station)."""

    id: str
    name: str

    def as_option(self) -> dict[str, str]:
        return {"value": self.id, "text": self.name}


@dataclass(frozen=True)
class Artifact:
    content: bytes
    suggested_filename: str


class SourceAdapter(ABC):
    """Abstract capability set used by the resolver and the orchestrator."""

    @abstractmethod
    def load_search_page(self) -> None:
        """(Re)load the search page and apply the default state selection."""

    @abstractmethod
    def list_options(self, level: Level) -> List[Target]:
        """Return the current options of ``level``'s selector, placeholder excluded."""

    @abstractmethod
    def select_target(self, level: Level, target_id: str) -> None:
        """Select ``target_id`` in ``level``'s selector."""

    @abstractmethod
    def selected_name(self, level: Level) -> str:
        """Return the display text of the option currently selected at ``level``."""

    @abstractmethod
    def wait_for_child_populated(self, level: Level) -> None:
        """Block until ``level``'s selector lists at least one real option."""

    @abstractmethod
    def set_search_window(self, from_date: str, to_date: str) -> None:
        """Fill the registration date range (``YYYY-MM-DD`` inputs)."""

    @abstractmethod
    def submit_search(self) -> None:
        """Submit the search and wait for the result view; ``SearchTimeout`` on expiry."""

    @abstractmethod
    def force_full_page_render(self) -> None:
        """Switch the result grid to show every row on one page."""

    @abstractmethod
    def result_count(self) -> int:
        """Return how many data rows the result grid currently shows."""

    @abstractmethod
    def extract_rows(self) -> List[FirRow]:
        """Return the grid's rows in display order, normalised."""

    @abstractmethod
    def fetch_artifact(self, row_index: int) -> Artifact:
        """Download the PDF of row ``row_index``; ``ArtifactTimeout`` on expiry."""

    def close(self) -> None:
        """Release the session. Default: nothing to release."""

    def __enter__(self) -> "SourceAdapter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["Artifact", "CHILD", "Level", "SourceAdapter", "TARGET", "Target"]
