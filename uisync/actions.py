"""Click and type helpers that survive re-renders, overlays and slow widgets."""

from __future__ import annotations

import enum
import logging
import time
from typing import Callable, List, Optional, Tuple, TypeVar

from playwright.sync_api import Error as PlaywrightError, Locator, Page

from .config import SyncConfig
from .diagnostics import NullSink
from .errors import ActionFailure, StaleReference, WaitTimeout, is_stale_error
from .handles import UIHandle, as_handle
from .waiter import ReadinessWaiter

log = logging.getLogger(__name__)

T = TypeVar("T")

STRATEGY_TIMEOUT_MS = 2_000
POINTER_PAUSE_S = 0.08

_CENTER_SCRIPT = "el => el.scrollIntoView({block: 'center', inline: 'center'})"

_UNOBSTRUCTED_SCRIPT = """
(el) => {
    const r = el.getBoundingClientRect();
    const x = Math.floor(r.left + r.width / 2);
    const y = Math.floor(r.top + r.height / 2);
    const top = document.elementFromPoint(x, y);
    return !!top && (top === el || el.contains(top));
}
"""


class ActionKind(str, enum.Enum):
    CLICK = "click"
    TYPE = "type"


class ActionExecutor:
    """Performs single UI actions with bounded retries.

    Clicks escalate through three strategies (native, pointer, forced DOM
    click) inside each attempt; stale nodes and readiness timeouts end an
    attempt early and the handle is re-resolved on the next one.
    """

    def __init__(
        self,
        page: Page,
        waiter: Optional[ReadinessWaiter] = None,
        config: Optional[SyncConfig] = None,
        *,
        sink=None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.page = page
        self.config = config or (waiter.config if waiter else SyncConfig())
        self.waiter = waiter or ReadinessWaiter(page, self.config)
        self.sink = sink or NullSink()
        self.sleep = sleep

    def perform(self, handle: UIHandle | str, kind: ActionKind | str, value: Optional[str] = None) -> bool:
        handle = as_handle(handle)
        kind = ActionKind(kind)
        if kind is ActionKind.CLICK:
            self.click(handle)
            return True
        if value is None:
            raise ValueError(f"typing into '{handle.label}' needs a value")
        self.type_text(handle, value)
        return True

    def click(self, handle: UIHandle | str, *, timeout_ms: Optional[int] = None) -> str:
        """Click ``handle`` and return the name of the strategy that worked."""

        handle = as_handle(handle)
        timeout = self.config.explicit_wait_ms if timeout_ms is None else timeout_ms
        attempts = max(1, self.config.click_attempts)
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            log.info("Attempt %d to click '%s'", attempt, handle.label)
            try:
                target = self.waiter.clickable(handle, timeout_ms=timeout)
                self._center(target, handle.label)
                self._clear_overlap(target, handle.label)
                strategy, errors = self._click_with_fallbacks(target, handle.label, timeout)
                if strategy:
                    log.info("Clicked '%s' via %s click", handle.label, strategy)
                    return strategy
                last_error = errors[-1] if errors else None
            except StaleReference as exc:
                log.warning("'%s' went stale on attempt %d; re-resolving", handle.label, attempt)
                last_error = exc
            except WaitTimeout as exc:
                log.warning("Timeout waiting for '%s' to be visible/clickable on attempt %d", handle.label, attempt)
                last_error = exc

            if attempt < attempts:
                self.sleep(self.config.click_retry_delay_ms / 1000)

        failure = ActionFailure(handle.label, attempts, reason=str(last_error) if last_error else None)
        log.error("Failed to click '%s' after %d attempts", handle.label, attempts)
        self.sink.failure("click", handle.label, failure, attempts=attempts)
        raise failure from last_error

    def type_text(self, handle: UIHandle | str, value: str, *, timeout_ms: Optional[int] = None) -> None:
        handle = as_handle(handle)
        timeout = self.config.explicit_wait_ms if timeout_ms is None else timeout_ms
        try:
            target = self.waiter.clickable(handle, timeout_ms=timeout)
            target.click(timeout=timeout)
            target.fill("", timeout=timeout)
            if value:
                target.press_sequentially(value, timeout=timeout)
        except (WaitTimeout, StaleReference, PlaywrightError) as exc:
            log.error("Failed to type into '%s': %s", handle.label, exc)
            failure = ActionFailure(handle.label, 1, reason=str(exc))
            self.sink.failure("type", handle.label, failure)
            raise failure from exc
        log.info("Typed %d character(s) into '%s'", len(value), handle.label)

    def retry(self, attempts: int, action: Callable[[], T], name: str) -> T:
        """Run ``action`` up to ``attempts`` times, re-raising the last error as ActionFailure."""

        last: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return action()
            except Exception as exc:
                last = exc
                log.warning("Attempt %d/%d failed for %s: %s", attempt, attempts, name, exc)
        raise ActionFailure(name, attempts, reason=str(last)) from last

    # -- click internals -----------------------------------------------------

    def _center(self, target: Locator, label: str) -> None:
        try:
            target.evaluate(_CENTER_SCRIPT)
        except PlaywrightError as exc:
            if is_stale_error(exc):
                raise StaleReference(label, reason=str(exc)) from exc
            log.debug("Centering '%s' failed: %s", label, exc)
        self.sleep(self.config.settle_delay_ms / 1000)

    def _clear_overlap(self, target: Locator, label: str) -> None:
        """Hit-test the centre point; nudge the page up once if something covers it.

        This is a heuristic: partial overlaps can slip through and transparent
        wrappers can be flagged, so its result never decides success.
        """

        try:
            if target.evaluate(_UNOBSTRUCTED_SCRIPT):
                return
            log.warning("'%s' centre point overlapped; nudging scroll", label)
            self.page.evaluate("(dy) => window.scrollBy(0, -dy)", self.config.scroll_nudge_px)
            self.sleep(self.config.settle_delay_ms / 1000)
            if not target.evaluate(_UNOBSTRUCTED_SCRIPT):
                log.debug("'%s' still looks covered after nudge", label)
        except PlaywrightError as exc:
            if is_stale_error(exc):
                raise StaleReference(label, reason=str(exc)) from exc
            log.debug("Overlap check skipped for '%s': %s", label, exc)

    def _click_with_fallbacks(
        self, target: Locator, label: str, timeout_ms: int
    ) -> Tuple[Optional[str], List[BaseException]]:
        strategy_timeout = min(timeout_ms, STRATEGY_TIMEOUT_MS)
        strategies: List[Tuple[str, Callable[[], None]]] = [
            ("native", lambda: target.click(timeout=strategy_timeout)),
            ("pointer", lambda: self._pointer_click(target)),
            ("forced", lambda: target.evaluate("el => el.click()")),
        ]
        errors: List[BaseException] = []
        for name, run in strategies:
            try:
                run()
                return name, errors
            except PlaywrightError as exc:
                if is_stale_error(exc):
                    raise StaleReference(label, reason=str(exc)) from exc
                log.warning("%s click failed for '%s': %s", name.capitalize(), label, exc)
                errors.append(exc)
        return None, errors

    def _pointer_click(self, target: Locator) -> None:
        box = target.bounding_box()
        if not box:
            raise PlaywrightError("element has no bounding box")
        x = box["x"] + box["width"] / 2
        y = box["y"] + box["height"] / 2
        self.page.mouse.move(x, y)
        self.sleep(POINTER_PAUSE_S)
        self.page.mouse.click(x, y)
