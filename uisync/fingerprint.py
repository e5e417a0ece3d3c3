"""Cheap, comparable signatures of the rendered grid."""

from __future__ import annotations

import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, List

from playwright.sync_api import Page

from .handles import build_locator

log = logging.getLogger(__name__)

DELIMITER = "||"


@dataclass(frozen=True)
class GridSelectors:
    """Where the grid lives on the page; strategies use the handle grammar."""

    rows: str = "table tbody tr"
    row_titles: str = "xpath=//table//tbody//tr//td[1]//*[self::a or self::span or self::p]"
    active_page: str = "[aria-current='page'], li.Mui-selected, .ant-pagination-item-active"
    signature_rows: int = 10


def normalize(text: str | None) -> str:
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text).replace("\u00a0", " ")
    return re.sub(r"\s+", " ", text).strip()


class GridFingerprint:
    """Builds the fingerprint string used to detect grid changes.

    The string joins four independently read parts with ``||``:

    * content signature: row count, a digest over every row's text and the
      first few row titles
    * first visible row title
    * last visible row title
    * active page indicator text

    Any part that cannot be read becomes an empty string, so :meth:`capture`
    never raises.
    """

    def __init__(self, page: Page, selectors: GridSelectors | None = None) -> None:
        self.page = page
        self.selectors = selectors or GridSelectors()

    def capture(self) -> str:
        titles = self._safe(self._row_titles, [])
        parts = [
            self._safe(self.signature, ""),
            titles[0] if titles else "",
            titles[-1] if titles else "",
            self._safe(self._active_page, ""),
        ]
        return DELIMITER.join(parts)

    def signature(self) -> str:
        rows = [normalize(text) for text in build_locator(self.page, self.selectors.rows).all_inner_texts()]
        digest = hashlib.sha1("\n".join(rows).encode("utf-8")).hexdigest()[:16]
        titles = self._safe(self._row_titles, [])[: max(1, self.selectors.signature_rows)]
        if not rows and not titles:
            log.debug("Grid signature: grid appears empty")
        return f"{len(rows)}:{digest}|" + "|".join(titles)

    def visible_row_count(self) -> int:
        return self._safe(lambda: build_locator(self.page, self.selectors.rows).count(), 0)

    def rows_ready(self) -> bool:
        """At least one row is rendered with non-empty text."""

        texts = self._safe(lambda: build_locator(self.page, self.selectors.rows).all_inner_texts(), [])
        return any(normalize(text) for text in texts)

    def _row_titles(self) -> List[str]:
        texts = build_locator(self.page, self.selectors.row_titles).all_text_contents()
        return [title for title in (normalize(text) for text in texts) if title]

    def _active_page(self) -> str:
        active = build_locator(self.page, self.selectors.active_page)
        if not active.count():
            return ""
        return normalize(active.first.inner_text(timeout=500))

    @staticmethod
    def _safe(read: Callable, default):
        try:
            return read()
        except Exception as exc:
            log.debug("Fingerprint part unavailable: %s", exc)
            return default
