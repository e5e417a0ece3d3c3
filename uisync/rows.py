"""Row records and a table scraper usable as a collector's per-page callable."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError, Locator, Page

from .fingerprint import normalize
from .handles import build_locator

log = logging.getLogger(__name__)

_NAME_INNER = "xpath=.//*[self::p or self::span or self::a]"


@dataclass(frozen=True)
class ComplianceRow:
    name: str
    office: str = ""
    due_date: str = ""


class TableRowScraper:
    """Reads the rows currently rendered in a table into :class:`ComplianceRow` values.

    Column positions are configurable; rows without a name are skipped, and a
    row that cannot be read is logged and skipped rather than aborting the page.
    """

    def __init__(
        self,
        page: Page,
        *,
        rows: str = "table tbody tr",
        name_index: int = 0,
        due_index: int = 2,
        office_index: int = 3,
    ) -> None:
        self.page = page
        self.rows = rows
        self.name_index = name_index
        self.due_index = due_index
        self.office_index = office_index

    def __call__(self) -> List[ComplianceRow]:
        return self.read_current_page()

    def read_current_page(self) -> List[ComplianceRow]:
        rows = build_locator(self.page, self.rows)
        count = rows.count()
        if not count:
            log.warning("No rows found on current page")
            return []

        out: List[ComplianceRow] = []
        for index in range(count):
            try:
                record = self._read_row(rows.nth(index))
            except PlaywrightError as exc:
                log.warning("Error while reading row %d on current page: %s", index, exc)
                continue
            if record is not None:
                out.append(record)
        log.info("Read %d row(s) on this page", len(out))
        return out

    def _read_row(self, row: Locator) -> Optional[ComplianceRow]:
        cells = row.locator("td")
        total = cells.count()
        if not total:
            return None

        name = ""
        if total > self.name_index:
            cell = cells.nth(self.name_index)
            inner = cell.locator(_NAME_INNER)
            name = inner.first.inner_text() if inner.count() else cell.inner_text()
        name = normalize(name)
        if not name:
            return None

        office = normalize(cells.nth(self.office_index).inner_text()) if total > self.office_index else ""
        due_date = normalize(cells.nth(self.due_index).inner_text()) if total > self.due_index else ""
        return ComplianceRow(name=name, office=office, due_date=due_date)
