"""Playwright implementation of :class:`SourceAdapter` for the published-FIR page.

Workflow on the source page:

- Load the search page (a reload is needed before the district list fills).
- Select a district; the police-station dropdown is repopulated by postback.
- Select a station, fill the registration date range and click Search.
- Switch the grid page size to "all" so every row is on one page.
- Read the grid HTML and click a row's download button to receive its PDF.

The sync API is used, so an adapter must stay on the thread that opened it.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PWError,
    Page,
    Playwright,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .adapter import CHILD, TARGET, Artifact, Level, SourceAdapter, Target
from .errors import ArtifactTimeout, ExtractorError, ResolutionError, SearchTimeout, SessionError
from .logging_utils import _extractor_event
from .rows import FirRow, normalize_row, parse_results_table
from .selectors_mahapolice import PUBLISHED_FIR_SELECTORS, PublishedFirSelectors
from .utils import log_line, to_source_date

_OPTIONS_SCRIPT = """
opts => opts
    .filter(o => o.value && o.value !== '0')
    .map(o => ({value: o.value, text: o.textContent.trim()}))
"""

_POPULATED_SCRIPT = """
sel => {
    const ddl = document.querySelector(sel);
    return !!ddl && ddl.options.length > 1;
}
"""

_SELECTED_TEXT_SCRIPT = "ddl => ddl.options[ddl.selectedIndex].text.trim()"

_FILL_DATES_SCRIPT = """
({fromSel, toSel, from, to}) => {
    const f = document.querySelector(fromSel);
    const t = document.querySelector(toSel);
    f.value = from;
    t.value = to;
    ["input", "change", "blur"].forEach(e => {
        f.dispatchEvent(new Event(e, {bubbles: true}));
        t.dispatchEvent(new Event(e, {bubbles: true}));
    });
}
"""

_ROW_COUNT_SCRIPT = "rows => rows.length > 1 ? rows.length - 1 : 0"


def wait_seconds(page: Optional[Page], seconds: float) -> None:
    """Wait for ``seconds`` only if *page* remains open."""

    if page is None or seconds is None or seconds <= 0:
        return
    if not page.is_closed():
        page.wait_for_timeout(int(seconds * 1000))


class PlaywrightSourceAdapter(SourceAdapter):
    """Drives one headless Chromium page for the lifetime of a run."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        headless: Optional[bool] = None,
        selectors: PublishedFirSelectors = PUBLISHED_FIR_SELECTORS,
    ) -> None:
        self.base_url = base_url or config.SOURCE_URL
        self.headless = config.HEADLESS if headless is None else headless
        self.selectors = selectors
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "PlaywrightSourceAdapter":
        """Launch the browser and load the search page; ``SessionError`` on failure."""

        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=self.headless)
            self._context = self._browser.new_context(
                user_agent=config.COMMON_HEADERS["User-Agent"],
                locale="en-US",
                accept_downloads=True,
            )
            self._page = self._context.new_page()
            self._page.set_default_timeout(config.NAV_TIMEOUT_SECONDS * 1000)
            self._page.set_default_navigation_timeout(config.NAV_TIMEOUT_SECONDS * 1000)
            self.load_search_page()
        except (PWError, ExtractorError) as exc:
            _extractor_event("error", phase="session", step="open", url=self.base_url, error=str(exc))
            self.close()
            raise SessionError(f"Unable to open source page {self.base_url}: {exc}") from exc
        return self

    def close(self) -> None:
        for name, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._pw.stop if self._pw else None),
        ):
            if closer is None:
                continue
            try:
                closer()
            except PWError as exc:
                log_line(f"[SESSION][WARN] Closing {name} failed: {exc}")
        self._page = self._context = self._browser = self._pw = None

    def __enter__(self) -> "PlaywrightSourceAdapter":
        return self.open()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SessionError("Source session is not open")
        return self._page

    def _selector_for(self, level: Level) -> str:
        if level == TARGET:
            return self.selectors.district_select
        if level == CHILD:
            return self.selectors.station_select
        raise ValueError(f"Unknown level {level!r}")

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    def load_search_page(self) -> None:
        page = self.page
        _extractor_event("nav", step="goto", url=self.base_url)
        try:
            page.goto(self.base_url, wait_until="load")
            page.reload(wait_until="load")
            if config.DEFAULT_STATE_VALUE:
                page.select_option(self.selectors.state_select, config.DEFAULT_STATE_VALUE)
                page.wait_for_load_state("load")
        except PWTimeout as exc:
            raise ResolutionError(f"Search page did not load: {exc}") from exc
        self.wait_for_child_populated(TARGET)

    def list_options(self, level: Level) -> List[Target]:
        selector = self._selector_for(level)
        try:
            options = self.page.eval_on_selector_all(f"{selector} option", _OPTIONS_SCRIPT)
        except PWError as exc:
            raise ResolutionError(f"Unable to read {level} options: {exc}") from exc
        return [Target(id=str(o["value"]), name=str(o["text"])) for o in options]

    def select_target(self, level: Level, target_id: str) -> None:
        selector = self._selector_for(level)
        try:
            self.page.select_option(
                selector, target_id, timeout=config.POPULATE_TIMEOUT_SECONDS * 1000
            )
            self.page.wait_for_load_state("load")
        except PWTimeout as exc:
            raise ResolutionError(f"Selecting {level}={target_id!r} timed out: {exc}") from exc
        except PWError as exc:
            raise ResolutionError(f"Selecting {level}={target_id!r} failed: {exc}") from exc

    def selected_name(self, level: Level) -> str:
        try:
            return str(self.page.eval_on_selector(self._selector_for(level), _SELECTED_TEXT_SCRIPT))
        except PWError as exc:
            raise ResolutionError(f"Unable to read selected {level}: {exc}") from exc

    def wait_for_child_populated(self, level: Level) -> None:
        try:
            self.page.wait_for_function(
                _POPULATED_SCRIPT,
                arg=self._selector_for(level),
                timeout=config.POPULATE_TIMEOUT_SECONDS * 1000,
            )
        except PWTimeout as exc:
            raise ResolutionError(f"{level} selector was not populated in time") from exc

    # ------------------------------------------------------------------
    # Search and results
    # ------------------------------------------------------------------

    def set_search_window(self, from_date: str, to_date: str) -> None:
        self.page.evaluate(
            _FILL_DATES_SCRIPT,
            {
                "fromSel": self.selectors.date_from_input,
                "toSel": self.selectors.date_to_input,
                "from": to_source_date(from_date),
                "to": to_source_date(to_date),
            },
        )

    def submit_search(self) -> None:
        page = self.page
        try:
            with page.expect_navigation(
                wait_until="load", timeout=config.SEARCH_TIMEOUT_SECONDS * 1000
            ):
                page.click(self.selectors.search_button)
        except PWTimeout as exc:
            raise SearchTimeout(f"Search did not render within budget: {exc}") from exc
        wait_seconds(page, config.SEARCH_SETTLE_SECONDS)

    def force_full_page_render(self) -> None:
        page = self.page
        if page.query_selector(self.selectors.page_size_select) is None:
            # No grid pager means no results to expand.
            return
        try:
            page.select_option(self.selectors.page_size_select, self.selectors.page_size_warmup)
            wait_seconds(page, config.PAGE_SIZE_SETTLE_SECONDS)
            page.select_option(self.selectors.page_size_select, self.selectors.page_size_all)
            wait_seconds(page, config.FULL_RENDER_SETTLE_SECONDS)
        except PWTimeout as exc:
            raise SearchTimeout(f"Result grid did not re-render: {exc}") from exc

    def result_count(self) -> int:
        count = self.page.eval_on_selector_all(
            f"{self.selectors.results_table} tr", _ROW_COUNT_SCRIPT
        )
        return int(count or 0)

    def extract_rows(self) -> List[FirRow]:
        table = self.page.query_selector(self.selectors.results_table)
        if table is None:
            return []
        html = table.evaluate("t => t.outerHTML")
        return [normalize_row(idx, cells) for idx, cells in enumerate(parse_results_table(html))]

    def fetch_artifact(self, row_index: int) -> Artifact:
        page = self.page
        button = self.selectors.download_button(row_index)
        timeout_ms = config.ARTIFACT_TIMEOUT_SECONDS * 1000
        try:
            with page.expect_download(timeout=timeout_ms) as download_info:
                page.click(button, timeout=timeout_ms)
            download = download_info.value
            local_path = download.path()
        except PWTimeout as exc:
            raise ArtifactTimeout(
                f"No download for row {row_index} within {config.ARTIFACT_TIMEOUT_SECONDS}s"
            ) from exc
        except PWError as exc:
            raise ExtractorError(f"Download for row {row_index} failed: {exc}") from exc

        if local_path is None:
            raise ExtractorError(f"Download for row {row_index} produced no file")
        return Artifact(
            content=Path(local_path).read_bytes(),
            suggested_filename=download.suggested_filename,
        )


__all__ = ["PlaywrightSourceAdapter", "wait_seconds"]
