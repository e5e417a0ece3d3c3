"""Best-effort helpers that let animated, SPA-style pages finish rendering.

Nothing here raises on a driver error: a closed or navigating page simply
reports "not settled".
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from playwright.sync_api import Error as PlaywrightError, Page

log = logging.getLogger(__name__)

DEFAULT_STABILIZE_TIMEOUT = 2_000
QUIET_WINDOW_MS = 300

LOADING_SELECTORS = [
    ".loading, .spinner, .loader",
    "[data-testid*='loading'], [data-testid*='spinner']",
    "[role='progressbar'], [aria-busy='true']",
    ".MuiCircularProgress-root, .MuiBackdrop-root, .ant-spin",
    "[class*='fixed'][class*='inset-0'][class*='bg-']",
]

# Resolves true once ``root`` has gone ``quietMs`` without a mutation, false
# when ``timeoutMs`` runs out first. Falls back to the whole document when the
# root selector matches nothing.
_QUIET_ROOT_SCRIPT = """
    ({rootSelector, quietMs, timeoutMs}) => new Promise(done => {
        const root = (rootSelector && document.querySelector(rootSelector)) || document;
        let lastChange = performance.now();
        const watcher = new MutationObserver(() => { lastChange = performance.now(); });
        watcher.observe(root, {subtree: true, childList: true, attributes: true, characterData: true});
        const began = lastChange;
        const timer = setInterval(() => {
            const now = performance.now();
            const quiet = now - lastChange >= quietMs;
            if (quiet || now - began >= timeoutMs) {
                clearInterval(timer);
                watcher.disconnect();
                done(quiet);
            }
        }, 50);
    })
"""


def _pause(page: Page, ms: int) -> None:
    try:
        page.wait_for_timeout(ms)
    except PlaywrightError as exc:
        log.debug("Pause of %d ms skipped: %s", ms, exc)


def wait_dom_idle(
    page: Page,
    timeout_ms: int = DEFAULT_STABILIZE_TIMEOUT,
    *,
    root: str | None = None,
    quiet_ms: int = QUIET_WINDOW_MS,
) -> bool:
    """Wait until ``root`` (or the document) has been mutation-free for ``quiet_ms``."""

    args = {"rootSelector": root, "quietMs": quiet_ms, "timeoutMs": timeout_ms}
    try:
        return bool(page.evaluate(_QUIET_ROOT_SCRIPT, args))
    except PlaywrightError as exc:
        log.debug("DOM idle check failed: %s", exc)
        _pause(page, 100)
        return False


def wait_for_loading_indicators(
    page: Page,
    timeout_ms: int = 3_000,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Wait for spinners and backdrops to go away within one shared budget.

    Returns how many indicator groups were still shown when time ran out.
    """

    deadline = clock() + timeout_ms / 1000
    lingering = 0
    for selector in LOADING_SELECTORS:
        # Playwright reads a zero timeout as "wait forever".
        remaining = max(1, int((deadline - clock()) * 1000))
        try:
            page.wait_for_selector(selector, state="hidden", timeout=remaining)
        except PlaywrightError:
            log.debug("Loading indicator '%s' still visible", selector)
            lingering += 1
    return lingering


def stabilize_page(
    page: Page,
    timeout_ms: int = DEFAULT_STABILIZE_TIMEOUT,
    *,
    root: str | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    try:
        page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PlaywrightError as exc:
        log.debug("Network did not go idle within %d ms: %s", timeout_ms, exc)
        _pause(page, min(500, max(50, timeout_ms // 2)))
        return False
    idle = wait_dom_idle(page, timeout_ms=timeout_ms, root=root)
    return wait_for_loading_indicators(page, timeout_ms=timeout_ms, clock=clock) == 0 and idle
