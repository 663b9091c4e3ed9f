"""City and police-station lookup with a cache-first policy."""
from __future__ import annotations

import sqlite3
from typing import Callable, List, Optional

from . import db
from .adapter import CHILD, TARGET, SourceAdapter, Target
from .errors import ExtractorError, PersistenceError, ResolutionError
from .logging_utils import _extractor_event

AdapterFactory = Callable[[], SourceAdapter]


class TargetResolver:
    """Resolve top-level targets and their children.

    The cached reference tables are consulted first. When they hold no rows
    (or cannot be read) the list is resolved live through the adapter and
    returned as-is; live results are never written back here, seeding owns
    the cache.

    ``adapter`` is an already-open session to reuse (a running traversal);
    otherwise ``adapter_factory`` opens a short-lived one per live lookup.
    """

    def __init__(
        self,
        *,
        adapter: Optional[SourceAdapter] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ) -> None:
        self._adapter = adapter
        self._adapter_factory = adapter_factory

    def list_top_level_targets(self) -> List[Target]:
        cached = self._from_cache("cities", db.list_cities)
        if cached:
            return cached
        return self._live("cities", self._live_top_level)

    def list_child_targets(self, parent_id: str) -> List[Target]:
        cached = self._from_cache("stations", lambda: db.list_stations(parent_id), parent_id=parent_id)
        if cached:
            return cached
        return self._live(
            "stations",
            lambda adapter: self._live_children(adapter, parent_id),
            parent_id=parent_id,
        )

    def _from_cache(self, kind: str, loader, **context) -> List[Target]:
        try:
            rows = loader()
        except (sqlite3.Error, PersistenceError) as exc:
            _extractor_event("error", phase="resolve", kind=kind, source="cache", error=str(exc), **context)
            return []
        return [Target(id=row["value"], name=row["text"]) for row in rows]

    def _live(self, kind: str, resolve: Callable[[SourceAdapter], List[Target]], **context) -> List[Target]:
        _extractor_event("state", phase="resolve", kind=kind, source="live", **context)
        try:
            if self._adapter is not None:
                return resolve(self._adapter)
            if self._adapter_factory is None:
                raise ResolutionError(f"No cached {kind} and no source session available")
            with self._adapter_factory() as adapter:
                return resolve(adapter)
        except ResolutionError:
            raise
        except ExtractorError as exc:
            raise ResolutionError(f"Live {kind} lookup failed: {exc}") from exc

    @staticmethod
    def _live_top_level(adapter: SourceAdapter) -> List[Target]:
        adapter.wait_for_child_populated(TARGET)
        return adapter.list_options(TARGET)

    @staticmethod
    def _live_children(adapter: SourceAdapter, parent_id: str) -> List[Target]:
        adapter.select_target(TARGET, parent_id)
        adapter.wait_for_child_populated(CHILD)
        return adapter.list_options(CHILD)


__all__ = ["AdapterFactory", "TargetResolver"]
