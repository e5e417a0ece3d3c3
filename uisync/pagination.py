"""Pagination controls located under uncertainty, with change-confirmed hops."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from playwright.sync_api import Page

from .actions import ActionExecutor
from .config import SyncConfig
from .errors import ActionFailure, WaitTimeout
from .fingerprint import GridFingerprint, normalize
from .handles import UIHandle, is_actionable, iter_candidates, pin_first
from .waiter import ReadinessWaiter

log = logging.getLogger(__name__)

_NEXT_TEXT = "normalize-space()='Next' or normalize-space()='›' or normalize-space()='>'"
_PREV_TEXT = (
    "normalize-space()='Prev' or normalize-space()='Previous' "
    "or normalize-space()='‹' or normalize-space()='<'"
)
_FIRST_TEXT = "normalize-space()='First' or normalize-space()='«' or normalize-space()='<<'"


def _loose_button(text_test: str) -> str:
    return f"xpath=//button[.//span[{text_test}]] | //button[{text_test}]"


class Direction(str, enum.Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class PagerControls:
    """Ranked strategies for each pager control, most specific first."""

    forward: Tuple[str, ...] = (
        "li.ant-pagination-next button",
        "xpath=//li[contains(@class,'pagination-next')]//button",
        "button[aria-label='Go to next page'], button[aria-label='Next'], button[aria-label='next']",
        _loose_button(_NEXT_TEXT),
    )
    backward: Tuple[str, ...] = (
        "li.ant-pagination-prev button",
        "xpath=//li[contains(@class,'pagination-prev')]//button",
        "button[aria-label='Go to previous page'], button[aria-label='Previous'], "
        "button[aria-label='Prev'], button[aria-label='prev']",
        _loose_button(_PREV_TEXT),
    )
    first: Tuple[str, ...] = (
        "button[aria-label='Go to first page'], button[aria-label='First'], button[aria-label='first']",
        _loose_button(_FIRST_TEXT),
    )
    current_page: Tuple[str, ...] = (
        "li.ant-pagination-item-active",
        "[aria-current='page']",
        "xpath=//li[contains(@class,'active') or contains(@class,'selected')]"
        "//*[self::button or self::a or self::span][normalize-space()]",
        "xpath=//button[contains(@class,'active') or @data-selected='true'][normalize-space()]",
    )


def _parse_page(text: str) -> Optional[int]:
    try:
        value = int(normalize(text))
    except ValueError:
        return None
    return value if value > 0 else None


class PaginationNavigator:
    """Moves the grid one page at a time and confirms the move by fingerprint.

    Nothing here raises on the normal path: a missing control, a click that
    could not be performed, or a grid that did not change all come back as
    ``False`` and the caller decides whether that means "end of data".
    """

    def __init__(
        self,
        page: Page,
        executor: ActionExecutor,
        fingerprint: GridFingerprint,
        *,
        controls: Optional[PagerControls] = None,
        config: Optional[SyncConfig] = None,
        waiter: Optional[ReadinessWaiter] = None,
        wait_rows_ready: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.page = page
        self.executor = executor
        self.fingerprint = fingerprint
        self.controls = controls or PagerControls()
        self.config = config or executor.config
        self.waiter = waiter or executor.waiter
        self.wait_rows_ready = wait_rows_ready
        self.clock = clock
        self.last_hop_ms = 0

    # -- control discovery ---------------------------------------------------

    def find_control(self, direction: Direction | str) -> Optional[UIHandle]:
        direction = Direction(direction)
        strategies = self.controls.forward if direction is Direction.FORWARD else self.controls.backward
        label = "Next page" if direction is Direction.FORWARD else "Previous page"
        return pin_first(self.page, label, strategies, accept=is_actionable)

    def find_first_control(self) -> Optional[UIHandle]:
        return pin_first(self.page, "First page", self.controls.first, accept=is_actionable)

    def has_control(self, direction: Direction | str) -> bool:
        return self.find_control(direction) is not None

    def current_page_number(self) -> Optional[int]:
        """Best-effort read of the active page indicator; None when nothing parses."""

        try:
            for strategy, _, candidate in iter_candidates(self.page, self.controls.current_page):
                number = _parse_page(candidate.inner_text(timeout=500))
                if number:
                    log.debug("Current page %d (via %s)", number, strategy)
                    return number
        except Exception as exc:
            log.debug("Page indicator unreadable: %s", exc)
        return None

    def visible_row_count(self) -> int:
        return self.fingerprint.visible_row_count()

    # -- navigation ----------------------------------------------------------

    def advance(self, direction: Direction | str, timeout_ms: Optional[int] = None) -> bool:
        """Click the pager control for ``direction``; True only if the grid visibly changed."""

        direction = Direction(direction)
        control = self.find_control(direction)
        if control is None:
            log.info("No usable %s control; nothing to advance to", direction.value)
            return False
        return self._hop(control, direction.value, timeout_ms)

    def wait_for_change(self, before: str, timeout_ms: Optional[int] = None) -> bool:
        timeout = self.config.nav_hop_timeout_ms if timeout_ms is None else timeout_ms
        try:
            self.waiter.until(
                lambda: self.fingerprint.capture() != before,
                timeout_ms=timeout,
                interval_ms=self.config.fingerprint_poll_ms,
                label="grid change",
            )
        except WaitTimeout:
            log.warning("Grid did not change within %d ms", timeout)
            return False
        return True

    def go_to_first_page(self, timeout_ms: Optional[int] = None) -> bool:
        """Return to page 1; False means "could not confirm" (stall or hop cap)."""

        if self.current_page_number() == 1:
            log.info("Already on first page")
            return True

        first = self.find_first_control()
        if first is not None:
            if self._jump_with_first_control(first, timeout_ms):
                return True
        else:
            log.debug("No dedicated first-page control; stepping backward")

        max_hops = self.config.max_first_page_hops
        hops = 0
        while hops < max_hops:
            if not self.has_control(Direction.BACKWARD):
                log.info("Backward control unavailable; treating current page as first")
                return True
            if self.current_page_number() == 1:
                return True

            hops += 1
            before = self.fingerprint.capture()
            if not self.advance(Direction.BACKWARD, timeout_ms):
                if not self.has_control(Direction.BACKWARD):
                    return True
                log.warning("Backward hop %d did not change the grid; stopping", hops)
                return False
            if self.current_page_number() == 1:
                log.info("Reached first page after %d hop(s)", hops)
                return True
            if self.fingerprint.capture() == before:
                log.warning("Fingerprint unchanged after backward hop %d; stopping", hops)
                return False

        log.warning("Hop cap of %d reached; cannot confirm first page", max_hops)
        return False

    # -- internals -----------------------------------------------------------

    def _jump_with_first_control(self, first: UIHandle, timeout_ms: Optional[int]) -> bool:
        log.info("Using dedicated first-page control")
        if not self._hop(first, "first", timeout_ms):
            log.warning("First-page control produced no change; falling back to backward hops")
            return False
        # Some pagers step one page per "first" click; repeat a few times.
        for _ in range(5):
            if self.current_page_number() == 1 or not self.has_control(Direction.BACKWARD):
                return True
            again = self.find_first_control()
            if again is None or not self._hop(again, "first", timeout_ms):
                break
        return self.current_page_number() == 1 or not self.has_control(Direction.BACKWARD)

    def _hop(self, control: UIHandle, name: str, timeout_ms: Optional[int]) -> bool:
        before = self.fingerprint.capture()
        started = self.clock()
        try:
            self.executor.click(control)
        except ActionFailure as exc:
            log.warning("Could not click %s control: %s", name, exc)
            return False

        changed = self.wait_for_change(before, timeout_ms)
        if changed and self.wait_rows_ready:
            try:
                self.waiter.until(self.fingerprint.rows_ready, timeout_ms=timeout_ms, label="rows ready")
            except WaitTimeout:
                log.warning("Rows not populated after %s hop", name)

        self.last_hop_ms = int((self.clock() - started) * 1000)
        if changed:
            log.info("Pagination (%s) completed in %.2f s", name, self.last_hop_ms / 1000)
        return changed
