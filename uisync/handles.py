"""UI handles resolved through ranked locator strategies.

A strategy is a selector string in the prefix grammar below; the first
strategy that yields an acceptable element wins.

 1) ``css=...``      explicit CSS
 2) ``xpath=...``    XPath
 3) ``text=...``     exact visible text
 4) ``role=button[name="Next"]``  ARIA role with optional accessible name
 5) ``aria=...``     ``aria-label`` attribute
 6) anything else    bare CSS

``"css=li.next button || text=Next"`` expands into two strategies tried left to
right. Handles never cache a resolved locator: every access re-resolves,
because the node behind it may be replaced by a re-render.
"""
from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Tuple

from playwright.sync_api import Error as PlaywrightError, Locator, Page

log = logging.getLogger(__name__)

Accept = Callable[[Locator], bool]


class Presence(enum.Enum):
    """Tri-state probe result used instead of exceptions for "not there"."""

    READY = "ready"
    NOT_READY = "not_ready"
    ABSENT = "absent"


def _parse_role_selector(value: str) -> Optional[Tuple[str, Optional[str]]]:
    match = re.fullmatch(
        r"role=([a-z0-9_-]+)(?:\[name=(['\"])(.+?)\2\])?",
        value,
        flags=re.IGNORECASE,
    )
    if not match:
        return None
    role, _, name = match.groups()
    return role, name


def _css_escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("'", "\\'")
        .replace("]", "\\]")
    )


def split_strategies(target: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in target.split("||") if part.strip())


def build_locator(page: Page, strategy: str) -> Locator:
    """Translate one strategy string into a (lazy) Playwright locator."""

    t = strategy.strip()
    if t.startswith("css="):
        return page.locator(t[4:])
    if t.startswith("xpath="):
        return page.locator(t)
    if t.startswith("text="):
        return page.get_by_text(t[5:], exact=True)
    if t.startswith("aria="):
        return page.locator(f'[aria-label="{_css_escape(t[5:])}"]')
    if t.startswith("role="):
        parsed = _parse_role_selector(t)
        if parsed:
            role, name = parsed
            if name:
                return page.get_by_role(role, name=name, exact=True)
            return page.get_by_role(role)
    return page.locator(t)


def first_match(
    page: Page,
    strategies: Iterable[str],
    *,
    accept: Optional[Accept] = None,
    nth: Optional[int] = None,
) -> Optional[Locator]:
    """Return the first candidate, in strategy order, that ``accept`` approves.

    ``nth`` pins the candidate index inside each strategy's matches; without it
    every match of a strategy is considered in document order.
    """

    for _, _, candidate in iter_candidates(page, strategies, accept=accept, nth=nth):
        return candidate
    return None


def pin_first(
    page: Page,
    label: str,
    strategies: Iterable[str],
    *,
    accept: Optional[Accept] = None,
) -> Optional["UIHandle"]:
    """Like :func:`first_match` but returns a handle pinned to the winning strategy and index."""

    for strategy, index, _ in iter_candidates(page, strategies, accept=accept):
        return UIHandle(label=label, strategies=(strategy,), nth=index)
    return None


def iter_candidates(
    page: Page,
    strategies: Iterable[str],
    *,
    accept: Optional[Accept] = None,
    nth: Optional[int] = None,
) -> Iterator[Tuple[str, int, Locator]]:
    for strategy in strategies:
        try:
            matches = build_locator(page, strategy)
            count = matches.count()
        except PlaywrightError as exc:
            log.debug("Strategy '%s' could not be evaluated: %s", strategy, exc)
            continue
        indices = range(count) if nth is None else ([nth] if nth < count else [])
        for index in indices:
            candidate = matches.nth(index)
            try:
                if accept is None or accept(candidate):
                    yield strategy, index, candidate
            except PlaywrightError as exc:
                log.debug("Candidate %d from '%s' rejected: %s", index, strategy, exc)


def is_disabled_flagged(locator: Locator) -> bool:
    aria = (locator.get_attribute("aria-disabled") or "").strip().lower()
    if aria == "true":
        return True
    if locator.get_attribute("disabled") is not None:
        return True
    css_class = (locator.get_attribute("class") or "").lower()
    return "disabled" in css_class


def is_actionable(locator: Locator) -> bool:
    """Displayed, enabled and not flagged disabled by attribute or class."""

    return locator.is_visible() and locator.is_enabled() and not is_disabled_flagged(locator)


@dataclass(frozen=True)
class UIHandle:
    label: str
    strategies: Tuple[str, ...]
    nth: Optional[int] = None

    @classmethod
    def of(cls, label: str, *targets: str, nth: Optional[int] = None) -> "UIHandle":
        strategies: list[str] = []
        for target in targets:
            strategies.extend(split_strategies(target))
        if not strategies:
            raise ValueError(f"UIHandle '{label}' needs at least one locator strategy")
        return cls(label=label, strategies=tuple(strategies), nth=nth)

    def resolve(self, page: Page, *, accept: Optional[Accept] = None) -> Optional[Locator]:
        return first_match(page, self.strategies, accept=accept, nth=self.nth)

    def locator(self, page: Page) -> Locator:
        """Best current locator; falls back to the primary strategy when nothing matches yet."""

        found = self.resolve(page)
        if found is not None:
            return found
        primary = build_locator(page, self.strategies[0])
        return primary.nth(self.nth or 0)

    def probe(self, page: Page) -> Presence:
        found = self.resolve(page)
        if found is None:
            return Presence.ABSENT
        try:
            return Presence.READY if is_actionable(found) else Presence.NOT_READY
        except PlaywrightError:
            return Presence.NOT_READY

    def __str__(self) -> str:
        return self.label


def as_handle(target: "UIHandle | str", label: Optional[str] = None) -> UIHandle:
    if isinstance(target, UIHandle):
        return target
    return UIHandle.of(label or target, target)
