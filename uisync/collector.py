"""Exhaustive, de-duplicated traversal of a paginated grid."""

from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from .config import SyncConfig
from .pagination import Direction, PaginationNavigator

log = logging.getLogger(__name__)

Scraper = Callable[[], List[Any]]
PageCallback = Callable[[int], Any]
TimingCallback = Callable[[int, int, int], Any]


class Sweep(str, enum.Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    BOTH = "both"


@dataclass
class PageRecord:
    page_number: int
    fingerprint: str
    rows: List[Any]


@dataclass
class TraversalState:
    page_number: int = 1
    seen: Set[str] = field(default_factory=set)
    record_count: int = 0
    direction: Direction = Direction.FORWARD
    pages: List[PageRecord] = field(default_factory=list)
    hops: int = 0
    stalls: int = 0


class GridCollector:
    """Walks every page reachable through the navigator and scrapes each once.

    Pages are de-duplicated by fingerprint, so a pager click that silently did
    nothing never yields the same rows twice. Running out of pages is the
    normal way to finish; only errors raised by ``scrape`` escape.
    """

    def __init__(
        self,
        navigator: PaginationNavigator,
        scrape: Scraper,
        *,
        fingerprint=None,
        config: Optional[SyncConfig] = None,
        stall_limit: int = 2,
        hop_timeout_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.navigator = navigator
        self.scrape = scrape
        self.fingerprint = fingerprint or navigator.fingerprint
        self.config = config or getattr(navigator, "config", None) or SyncConfig()
        self.stall_limit = max(1, stall_limit)
        self.hop_timeout_ms = hop_timeout_ms
        self.clock = clock
        self.last_state: Optional[TraversalState] = None

    def collect(
        self,
        expected_total: Optional[int] = None,
        on_page: Optional[PageCallback] = None,
        on_timing: Optional[TimingCallback] = None,
        sweep: Sweep | str = Sweep.BOTH,
    ) -> Dict[int, List[Any]]:
        """Collect from the current page outward; returns ``{page_number: rows}``."""

        sweep = Sweep(sweep)
        indicator = self.navigator.current_page_number()
        state = TraversalState(page_number=indicator or 1)
        self.last_state = state
        log.info("Collecting grid starting at page %d (sweep=%s)", state.page_number, sweep.value)

        self._store(state, self.fingerprint.capture(), list(self.scrape()), on_page)

        if sweep in (Sweep.BACKWARD, Sweep.BOTH):
            if indicator == 1:
                log.info("Page indicator reads 1; skipping backward sweep")
            else:
                self._sweep(state, Direction.BACKWARD, None, on_page, on_timing)

        if sweep in (Sweep.FORWARD, Sweep.BOTH):
            self._sweep(state, Direction.FORWARD, expected_total, on_page, on_timing)

        result = self._keyed(state.pages)
        log.info(
            "Collected %d row(s) from %d page(s) in %d hop(s)",
            state.record_count,
            len(result),
            state.hops,
        )
        return result

    def collect_from_first_page(
        self,
        expected_total: Optional[int] = None,
        on_page: Optional[PageCallback] = None,
        on_timing: Optional[TimingCallback] = None,
    ) -> Dict[int, List[Any]]:
        """Return to page 1 first, then walk forward until the data runs out."""

        if self.navigator.current_page_number() != 1:
            if not self.navigator.go_to_first_page(self.hop_timeout_ms):
                log.warning("Could not confirm first page; collecting from the current page")

        state = TraversalState(page_number=1)
        self.last_state = state
        max_pages = self.config.max_collect_pages

        while len(state.pages) < max_pages:
            fingerprint = self.fingerprint.capture()
            if fingerprint in state.seen:
                log.warning("Page %d was already collected; stopping", state.page_number)
                break

            rows = list(self.scrape())
            if not rows:
                log.info("Page %d has no rows; stopping", state.page_number)
                break
            self._store(state, fingerprint, rows, on_page)

            if expected_total and state.record_count >= expected_total:
                log.info("Reached expected total of %d row(s)", expected_total)
                break
            if not self._hop(state, Direction.FORWARD, on_timing):
                break
        else:
            log.warning("Page cap of %d reached; stopping collection", max_pages)

        if expected_total and state.record_count < expected_total:
            log.warning(
                "Collected %d row(s) but %d were expected",
                state.record_count,
                expected_total,
            )
        return self._keyed(state.pages)

    # -- sweeps --------------------------------------------------------------

    def _sweep(
        self,
        state: TraversalState,
        direction: Direction,
        expected_total: Optional[int],
        on_page: Optional[PageCallback],
        on_timing: Optional[TimingCallback],
    ) -> None:
        state.direction = direction
        state.stalls = 0
        max_pages = self.config.max_collect_pages
        hops = 0
        repeats = 0
        while hops < max_pages:
            if direction is Direction.FORWARD and self._all_expected_seen(state, expected_total):
                log.info("All %d expected row(s) seen; stopping forward sweep", expected_total)
                return
            before = self.fingerprint.capture()
            previous = state.page_number
            if not self._hop(state, direction, on_timing):
                return
            hops += 1
            after = self.fingerprint.capture()

            if after == before:
                state.page_number = previous
                state.stalls += 1
                log.warning("Grid unchanged after advancing %s (%d in a row)", direction.value, state.stalls)
                if state.stalls >= self.stall_limit:
                    return
                continue
            state.stalls = 0

            if after in state.seen:
                repeats += 1
                log.info("Page %d already collected; not recording again", state.page_number)
                if repeats > len(state.seen):
                    log.warning("Pager keeps revisiting collected pages going %s; stopping", direction.value)
                    return
                continue
            repeats = 0
            self._store(state, after, list(self.scrape()), on_page)
        log.warning("Page cap of %d reached going %s", max_pages, direction.value)

    def _hop(self, state: TraversalState, direction: Direction, on_timing: Optional[TimingCallback]) -> bool:
        previous = state.page_number
        started = self.clock()
        if not self.navigator.advance(direction, self.hop_timeout_ms):
            log.info("No further pages going %s from page %d", direction.value, previous)
            return False
        elapsed_ms = int(round((self.clock() - started) * 1000))
        state.hops += 1
        state.page_number = self._reconcile(previous, direction)
        self._notify(on_timing, "timing", previous, state.page_number, elapsed_ms)
        return True

    def _all_expected_seen(self, state: TraversalState, expected_total: Optional[int]) -> bool:
        if not expected_total:
            return False
        if state.record_count >= expected_total:
            return True
        page_size = self.navigator.visible_row_count()
        if page_size <= 0:
            return False
        return math.ceil(state.record_count / page_size) >= math.ceil(expected_total / page_size)

    # -- bookkeeping ---------------------------------------------------------

    def _store(self, state: TraversalState, fingerprint: str, rows: List[Any], on_page: Optional[PageCallback]) -> None:
        state.seen.add(fingerprint)
        state.pages.append(PageRecord(state.page_number, fingerprint, rows))
        state.record_count += len(rows)
        log.info("Page %d: %d row(s)", state.page_number, len(rows))
        self._notify(on_page, "page", state.page_number)

    def _reconcile(self, previous: int, direction: Direction) -> int:
        read = self.navigator.current_page_number()
        if direction is Direction.FORWARD:
            if read is not None and read > previous:
                return read
            return previous + 1
        if read is not None and read < previous:
            return read
        return previous - 1

    @staticmethod
    def _keyed(records: List[PageRecord]) -> Dict[int, List[Any]]:
        keyed: Dict[int, List[Any]] = {}
        for record in records:
            key = record.page_number
            if key in keyed:
                replacement = max(keyed) + 1
                log.warning("Page number %d collided; storing those rows as page %d", key, replacement)
                key = replacement
            keyed[key] = record.rows
        if keyed and min(keyed) < 1:
            offset = 1 - min(keyed)
            keyed = {key + offset: rows for key, rows in keyed.items()}
        return dict(sorted(keyed.items()))

    @staticmethod
    def _notify(callback: Optional[Callable[..., Any]], kind: str, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            log.warning("Ignoring %s callback failure: %s", kind, exc)
