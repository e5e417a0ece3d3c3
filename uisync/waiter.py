"""Readiness waits: block until a named UI condition holds or time runs out."""

from __future__ import annotations

import enum
import logging
import time
from typing import Any, Callable, Optional

from playwright.sync_api import ElementHandle, Error as PlaywrightError, Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .config import SyncConfig
from .errors import StaleReference, WaitTimeout, is_stale_error
from .handles import Presence, UIHandle, as_handle
from .stability import DEFAULT_STABILIZE_TIMEOUT, stabilize_page

log = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], None]

_ENABLED_POLL_MS = 100


def _shown(locator: Locator) -> bool:
    return locator.is_visible()


class Condition(str, enum.Enum):
    VISIBLE = "visibility"
    CLICKABLE = "clickability"
    INVISIBLE = "invisibility"
    TEXT_EQUALS = "text_equals"
    TEXT_CONTAINS = "text_contains"
    URL_CONTAINS = "url_contains"
    STALE = "staleness"
    CUSTOM = "custom"


class ReadinessWaiter:
    """Bounded waits over the live page.

    Built-in conditions lean on Playwright's own wait primitives; custom
    predicates are polled every ``poll_interval_ms``. A wait that runs out of
    time raises :class:`WaitTimeout`; a target that detaches mid-wait raises
    :class:`StaleReference` instead, so callers can tell the two apart.
    """

    def __init__(
        self,
        page: Page,
        config: Optional[SyncConfig] = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ) -> None:
        self.page = page
        self.config = config or SyncConfig()
        self.clock = clock
        self.sleep = sleep

    def wait_for(
        self,
        condition: Condition | str,
        target: Any = None,
        *,
        timeout_ms: Optional[int] = None,
        expected: Optional[str] = None,
        predicate: Optional[Callable[[], Any]] = None,
    ) -> Any:
        condition = Condition(condition)
        timeout = self.config.explicit_wait_ms if timeout_ms is None else int(timeout_ms)

        if condition is Condition.CUSTOM:
            if predicate is None:
                raise ValueError("custom waits need a predicate")
            return self.until(predicate, timeout_ms=timeout)
        if condition is Condition.URL_CONTAINS:
            return self.url_contains(expected or "", timeout_ms=timeout)
        if condition is Condition.STALE:
            return self.staleness_of(target, timeout_ms=timeout)

        if target is None:
            raise ValueError(f"{condition.value} waits need a target")
        handle = as_handle(target)
        if condition is Condition.VISIBLE:
            return self.visible(handle, timeout_ms=timeout)
        if condition is Condition.CLICKABLE:
            return self.clickable(handle, timeout_ms=timeout)
        if condition is Condition.INVISIBLE:
            return self.invisible(handle, timeout_ms=timeout)
        if condition is Condition.TEXT_EQUALS:
            return self.text_equals(handle, expected or "", timeout_ms=timeout)
        return self.text_contains(handle, expected or "", timeout_ms=timeout)

    # -- built-in conditions -------------------------------------------------

    def visible(self, handle: UIHandle, *, timeout_ms: Optional[int] = None):
        """Return the first displayed candidate across all of the handle's strategies."""

        timeout = self._timeout(timeout_ms)
        shown = handle.resolve(self.page, accept=_shown)
        if shown is not None:
            return shown
        if len(handle.strategies) == 1:
            target = handle.locator(self.page)
            self._driver_wait(Condition.VISIBLE, handle, lambda: target.wait_for(state="visible", timeout=timeout), timeout)
            return target
        # A hidden match on an earlier strategy must not shadow a later one.
        return self._poll(
            Condition.VISIBLE,
            lambda: handle.resolve(self.page, accept=_shown),
            timeout_ms=timeout,
            interval_ms=_ENABLED_POLL_MS,
            label=handle.label,
        )

    def clickable(self, handle: UIHandle, *, timeout_ms: Optional[int] = None):
        timeout = self._timeout(timeout_ms)
        started = self.clock()
        target = self.visible(handle, timeout_ms=timeout)
        remaining = max(0, timeout - int((self.clock() - started) * 1000))
        self._poll(
            Condition.CLICKABLE,
            lambda: target.is_visible() and target.is_enabled(),
            timeout_ms=remaining,
            interval_ms=_ENABLED_POLL_MS,
            label=handle.label,
        )
        return target

    def invisible(self, handle: UIHandle, *, timeout_ms: Optional[int] = None) -> bool:
        timeout = self._timeout(timeout_ms)
        target = handle.locator(self.page)
        self._driver_wait(Condition.INVISIBLE, handle, lambda: target.wait_for(state="hidden", timeout=timeout), timeout)
        return True

    def text_equals(self, handle: UIHandle, expected: str, *, timeout_ms: Optional[int] = None) -> str:
        return self._text(Condition.TEXT_EQUALS, handle, lambda text: text == expected.strip(), timeout_ms)

    def text_contains(self, handle: UIHandle, expected: str, *, timeout_ms: Optional[int] = None) -> str:
        return self._text(Condition.TEXT_CONTAINS, handle, lambda text: expected in text, timeout_ms)

    def url_contains(self, expected: str, *, timeout_ms: Optional[int] = None) -> str:
        timeout = self._timeout(timeout_ms)
        try:
            self.page.wait_for_url(lambda url: expected in url, timeout=timeout, wait_until="commit")
        except PlaywrightTimeoutError as exc:
            raise WaitTimeout(Condition.URL_CONTAINS.value, timeout) from exc
        return self.page.url

    def staleness_of(self, target: UIHandle | ElementHandle, *, timeout_ms: Optional[int] = None) -> bool:
        """Wait until a previously resolved node leaves the document.

        A :class:`UIHandle` is pinned to the node it resolves to right now; a
        same-selector replacement rendered later does not keep the wait alive.
        Locators re-resolve on every call, so they are rejected.
        """

        if isinstance(target, Locator):
            raise TypeError("staleness_of needs a UIHandle or ElementHandle, not a Locator")
        timeout = self._timeout(timeout_ms)
        if isinstance(target, UIHandle):
            found = target.resolve(self.page)
            if found is None:
                log.debug("'%s' matches nothing; already stale", target.label)
                return True
            try:
                element = found.element_handle(timeout=_ENABLED_POLL_MS)
            except PlaywrightError as exc:
                log.debug("'%s' went away before it could be pinned: %s", target.label, exc)
                return True
        else:
            element = target

        def detached() -> bool:
            try:
                return not element.evaluate("el => el.isConnected")
            except PlaywrightError as exc:
                if is_stale_error(exc):
                    return True
                raise

        return self.until(detached, timeout_ms=timeout, label=Condition.STALE.value)

    # -- custom predicates ---------------------------------------------------

    def until(
        self,
        predicate: Callable[[], Any],
        *,
        timeout_ms: Optional[int] = None,
        interval_ms: Optional[int] = None,
        label: str = Condition.CUSTOM.value,
    ) -> Any:
        """Poll ``predicate`` until it returns a truthy value and return that value."""

        return self._poll(
            Condition.CUSTOM,
            predicate,
            timeout_ms=self._timeout(timeout_ms),
            interval_ms=self.config.poll_interval_ms if interval_ms is None else interval_ms,
            label=label,
            tolerate_stale=True,
        )

    # -- non-raising helpers -------------------------------------------------

    def probe(self, handle: UIHandle, *, timeout_ms: int = 0) -> Presence:
        """Tri-state presence check that never raises."""

        presence = handle.probe(self.page)
        if presence is Presence.READY or timeout_ms <= 0:
            return presence
        try:
            self.until(lambda: handle.probe(self.page) is Presence.READY, timeout_ms=timeout_ms, label=handle.label)
        except WaitTimeout:
            return handle.probe(self.page)
        return Presence.READY

    def url_changed_or_visible(self, old_url: str, handle: UIHandle, *, timeout_ms: Optional[int] = None) -> bool:
        log.info("Waiting for URL to leave '%s' or '%s' to appear", old_url, handle.label)

        def moved() -> bool:
            if self.page.url != old_url:
                log.info("URL changed: %s -> %s", old_url, self.page.url)
                return True
            return handle.resolve(self.page, accept=lambda loc: loc.is_visible()) is not None

        try:
            self.until(moved, timeout_ms=timeout_ms, label="url_change_or_visible")
        except WaitTimeout:
            log.warning("Neither URL changed nor '%s' became visible", handle.label)
            return False
        return True

    def document_ready(self, *, timeout_ms: Optional[int] = None) -> bool:
        try:
            self.until(
                lambda: self.page.evaluate("() => document.readyState") == "complete",
                timeout_ms=timeout_ms,
                interval_ms=200,
                label="document_ready",
            )
        except WaitTimeout:
            return False
        return True

    def settle(self, *, timeout_ms: Optional[int] = None) -> bool:
        """Let network, DOM mutations and loading spinners quiet down; never raises."""

        timeout = DEFAULT_STABILIZE_TIMEOUT if timeout_ms is None else int(timeout_ms)
        settled = stabilize_page(self.page, timeout_ms=timeout, clock=self.clock)
        if not settled:
            log.debug("Page still busy after %d ms settle", timeout)
        return settled

    # -- internals -----------------------------------------------------------

    def _timeout(self, timeout_ms: Optional[int]) -> int:
        return self.config.explicit_wait_ms if timeout_ms is None else int(timeout_ms)

    def _text(self, condition: Condition, handle: UIHandle, matches: Callable[[str], bool], timeout_ms: Optional[int]) -> str:
        target = handle.locator(self.page)

        # Wrapped in a tuple so that matching empty text still counts as done.
        def read() -> Optional[tuple[str]]:
            text = (target.inner_text(timeout=_ENABLED_POLL_MS) or "").strip()
            return (text,) if matches(text) else None

        (text,) = self._poll(
            condition, read, timeout_ms=self._timeout(timeout_ms), interval_ms=self.config.poll_interval_ms, label=handle.label
        )
        return text

    def _driver_wait(self, condition: Condition, handle: UIHandle, call: Callable[[], Any], timeout_ms: int) -> None:
        try:
            call()
        except PlaywrightTimeoutError as exc:
            raise WaitTimeout(condition.value, timeout_ms, message=f"'{handle.label}' not {condition.value} within {timeout_ms} ms") from exc
        except PlaywrightError as exc:
            if is_stale_error(exc):
                raise StaleReference(handle.label, reason=str(exc)) from exc
            raise

    def _poll(
        self,
        condition: Condition,
        check: Callable[[], Any],
        *,
        timeout_ms: int,
        interval_ms: int,
        label: str,
        tolerate_stale: bool = False,
    ) -> Any:
        deadline = self.clock() + timeout_ms / 1000
        last_error: Optional[BaseException] = None
        polls = 0
        while True:
            polls += 1
            try:
                result = check()
                if result:
                    return result
            except PlaywrightError as exc:
                if not tolerate_stale and is_stale_error(exc):
                    raise StaleReference(label, reason=str(exc)) from exc
                last_error = exc
            except Exception as exc:
                if type(exc) is not type(last_error):
                    log.warning("Predicate for '%s' raised %s: %s; treating as not yet", label, type(exc).__name__, exc)
                last_error = exc
            remaining = deadline - self.clock()
            if remaining <= 0:
                log.debug("%s for '%s' timed out after %d poll(s)", condition.value, label, polls)
                raise WaitTimeout(
                    condition.value,
                    timeout_ms,
                    message=f"'{label}' not satisfied ({condition.value}) within {timeout_ms} ms",
                ) from last_error
            self.sleep(min(interval_ms / 1000, remaining))
