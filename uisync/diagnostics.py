"""Diagnostics sink: JSONL step events and failure screenshots."""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.sync_api import Page

from .config import SyncConfig

log = logging.getLogger(__name__)


@dataclass(slots=True)
class LogPaths:
    base: Path
    shots: Path
    events: Path

    @classmethod
    def create(cls, root: Path, run_id: str) -> "LogPaths":
        """Lay out ``<root>/<run_id>/events.jsonl`` and ``<root>/<run_id>/shots/``."""

        base = root / _safe_file(run_id)
        (base / "shots").mkdir(parents=True, exist_ok=True)
        return cls(base=base, shots=base / "shots", events=base / "events.jsonl")


def _safe_file(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]", "_", name)


class DiagnosticsSink:
    """Writes one JSON line per event and captures screenshots on failures.

    Every method is fire-and-forget: an I/O or driver problem inside the sink is
    logged and never reaches the caller.
    """

    def __init__(
        self,
        run_id: str,
        paths: LogPaths,
        *,
        page: Optional[Page] = None,
        screenshot_mode: str = "viewport",
    ) -> None:
        self.run_id = run_id
        self.paths = paths
        self.page = page
        self.screenshot_mode = screenshot_mode
        self._step = 0
        self._events_file = None
        try:
            self._events_file = paths.events.open("a", encoding="utf-8")
        except OSError as exc:
            log.warning("Diagnostics events file unavailable (%s): %s", paths.events, exc)

    @classmethod
    def for_run(cls, run_id: str, config: SyncConfig, *, page: Optional[Page] = None) -> "DiagnosticsSink":
        return cls(run_id, LogPaths.create(config.log_root, run_id), page=page, screenshot_mode=config.screenshot_mode)

    def event(
        self,
        kind: str,
        *,
        label: str = "",
        outcome: Optional[str] = None,
        elapsed_ms: Optional[int] = None,
        error: Optional[str] = None,
        screenshot_path: Optional[Path] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        self._step += 1
        if self._events_file is None:
            return self._step
        payload = {
            "ts": time.time(),
            "run_id": self.run_id,
            "step": self._step,
            "kind": kind,
            "label": label,
            "outcome": outcome,
            "elapsed_ms": elapsed_ms,
            "error": error,
            "screenshot_path": str(screenshot_path) if screenshot_path else None,
            "metadata": metadata or {},
        }
        try:
            self._events_file.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
            self._events_file.flush()
        except Exception as exc:
            log.warning("Could not write diagnostics event '%s': %s", kind, exc)
        return self._step

    def capture(self, name: str) -> Optional[Path]:
        """Save a screenshot of the current page; returns None when not possible."""

        if self.page is None:
            return None
        target = self.paths.shots / f"{_safe_file(name)}_{int(time.time() * 1000)}.png"
        try:
            self.page.screenshot(path=str(target), full_page=self.screenshot_mode == "full")
        except Exception as exc:
            log.warning("Screenshot '%s' failed: %s", name, exc)
            return None
        return target

    def failure(self, kind: str, label: str, error: BaseException, **metadata: Any) -> None:
        shot = self.capture(f"{kind}_{label}")
        self.event(
            kind,
            label=label,
            outcome="failed",
            error=str(error),
            screenshot_path=shot,
            metadata=metadata,
        )

    def close(self) -> None:
        if self._events_file is None:
            return
        try:
            self._events_file.close()
        except Exception:
            pass


class NullSink:
    """Sink used when no run directory is configured."""

    def event(self, kind: str, **_: Any) -> int:
        return 0

    def capture(self, name: str) -> Optional[Path]:
        return None

    def failure(self, kind: str, label: str, error: BaseException, **metadata: Any) -> None:
        log.debug("Unrecorded failure %s for '%s': %s", kind, label, error)

    def close(self) -> None:
        return None
