"""Classify how long guarded operations take against warn/fail tiers."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from playwright.sync_api import Error as PlaywrightError, Page

from .config import SyncConfig
from .diagnostics import NullSink
from .errors import GuardTimeout
from .handles import UIHandle, as_handle

log = logging.getLogger(__name__)

_TIER_NAMES = ("warn1", "warn2", "warn3", "fail")


class Tier(enum.IntEnum):
    NONE = 0
    WARN1 = 1
    WARN2 = 2
    WARN3 = 3
    FAIL = 4


@dataclass(frozen=True)
class Thresholds:
    warn1_ms: int
    warn2_ms: int
    warn3_ms: int
    fail_ms: int

    def __post_init__(self) -> None:
        limits = self.as_tuple()
        if any(limit < 0 for limit in limits):
            raise ValueError(f"thresholds must be non-negative: {limits}")
        if list(limits) != sorted(limits):
            raise ValueError(f"thresholds must satisfy warn1 <= warn2 <= warn3 <= fail: {limits}")

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.warn1_ms, self.warn2_ms, self.warn3_ms, self.fail_ms)

    @classmethod
    def single(cls, warn_ms: int, fail_ms: int) -> "Thresholds":
        """One warn tier; all three warn limits collapse onto ``warn_ms``."""

        return cls(warn_ms, warn_ms, warn_ms, fail_ms)

    @classmethod
    def preset(cls, config: SyncConfig, name: str) -> "Thresholds":
        if name == "login":
            return cls.single(config.login_warn_ms, config.login_fail_ms)
        if name == "nav":
            return cls.single(config.nav_warn_ms, config.nav_fail_ms)
        if name == "get_started":
            return cls(
                config.get_started_warn1_ms,
                config.get_started_warn2_ms,
                config.get_started_warn3_ms,
                config.get_started_fail_ms,
            )
        if name == "create":
            return cls(
                config.create_warn1_ms,
                config.create_warn2_ms,
                config.create_warn3_ms,
                config.create_fail_ms,
            )
        raise ValueError(f"unknown threshold preset '{name}'")


def classify(elapsed_ms: int, thresholds: Thresholds) -> Tuple[Tier, List[str]]:
    """Return the highest tier reached and the names of every limit crossed.

    A limit counts as crossed once ``elapsed_ms >= limit``.
    """

    crossed = [name for name, limit in zip(_TIER_NAMES, thresholds.as_tuple()) if elapsed_ms >= limit]
    return Tier(len(crossed)), crossed


@dataclass(frozen=True)
class WaitOutcome:
    label: str
    satisfied: bool
    elapsed_ms: int
    warned1: bool = False
    warned2: bool = False
    warned3: bool = False
    failed: bool = False

    @classmethod
    def from_elapsed(cls, label: str, elapsed_ms: int, thresholds: Thresholds, *, satisfied: bool = True) -> "WaitOutcome":
        _, crossed = classify(elapsed_ms, thresholds)
        return cls(
            label=label,
            satisfied=satisfied,
            elapsed_ms=elapsed_ms,
            warned1="warn1" in crossed,
            warned2="warn2" in crossed,
            warned3="warn3" in crossed,
            failed="fail" in crossed,
        )

    @property
    def crossed(self) -> List[str]:
        flags = (self.warned1, self.warned2, self.warned3, self.failed)
        return [name for name, flag in zip(_TIER_NAMES, flags) if flag]

    @property
    def tier(self) -> Tier:
        if self.failed:
            return Tier.FAIL
        if self.warned3:
            return Tier.WARN3
        if self.warned2:
            return Tier.WARN2
        if self.warned1:
            return Tier.WARN1
        return Tier.NONE


class StepTimer:
    """Context manager measuring one named step.

    ``elapsed_ms`` is live while the block runs and frozen on exit; when the
    timer was created with thresholds, the result is reported on exit.
    """

    def __init__(
        self,
        label: str,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_exit: Optional[Callable[[str, float], Any]] = None,
    ) -> None:
        self.label = label
        self.clock = clock
        self.on_exit = on_exit
        self.started_at: Optional[float] = None
        self._frozen_ms: Optional[int] = None

    def __enter__(self) -> "StepTimer":
        self.started_at = self.clock()
        self._frozen_ms = None
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._frozen_ms = self._measure()
        if self.on_exit is not None and self.started_at is not None:
            self.on_exit(self.label, self.started_at)
        return False

    @property
    def elapsed_ms(self) -> int:
        if self._frozen_ms is not None:
            return self._frozen_ms
        return self._measure()

    def _measure(self) -> int:
        if self.started_at is None:
            return 0
        return int(round((self.clock() - self.started_at) * 1000))


class OutcomeReporter:
    """Runs guarded operations and reports their duration tier."""

    def __init__(
        self,
        page: Optional[Page] = None,
        config: Optional[SyncConfig] = None,
        *,
        sink=None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.page = page
        self.config = config or SyncConfig()
        self.sink = sink or NullSink()
        self.clock = clock
        self.sleep = sleep

    def guard(
        self,
        action: Callable[[], Any],
        condition: Callable[[], Any],
        thresholds: Thresholds,
        *,
        overlay: UIHandle | str | None = None,
        label: str = "operation",
    ) -> WaitOutcome:
        """Trigger ``action`` once, then poll ``condition`` until it holds.

        A visible ``overlay`` means "not ready" whatever the condition says.
        Reaching ``fail_ms`` raises :class:`GuardTimeout` carrying the elapsed
        time and the thresholds crossed; condition errors count as "not yet".
        """

        blocker = as_handle(overlay, label=f"{label} overlay") if overlay is not None else None
        interval_ms = max(1, self.config.poll_interval_ms)
        started = self.clock()
        action()

        last_error: Optional[BaseException] = None
        while True:
            elapsed = self._elapsed_ms(started)
            if elapsed >= thresholds.fail_ms:
                _, crossed = classify(elapsed, thresholds)
                error = GuardTimeout(label, elapsed, thresholds.fail_ms, crossed)
                log.error("%s", error)
                self.sink.failure("guard", label, error, elapsed_ms=elapsed, crossed=crossed)
                raise error from last_error

            try:
                if not self._blocked(blocker) and condition():
                    outcome = WaitOutcome.from_elapsed(label, elapsed, thresholds)
                    self._log_outcome(outcome)
                    return outcome
            except Exception as exc:
                log.debug("Condition for '%s' not ready yet: %s", label, exc)
                last_error = exc

            remaining = thresholds.fail_ms - elapsed
            self.sleep(min(interval_ms, remaining) / 1000)

    def report_elapsed(self, label: str, started_at: float, warn_ms: int, fail_ms: int) -> int:
        """Log how long ``label`` took since ``started_at`` (a reading of ``clock``)."""

        elapsed = self._elapsed_ms(started_at)
        seconds = elapsed / 1000
        if elapsed >= fail_ms:
            log.error("%s took %.2f s, more than %d s (limit %d s)", label, seconds, fail_ms // 1000, fail_ms // 1000)
            outcome = "fail"
        elif elapsed >= warn_ms:
            log.warning("%s took %.2f s, more than %d s", label, seconds, warn_ms // 1000)
            outcome = "warn"
        else:
            log.info("%s completed in %.2f s (<= %d s)", label, seconds, warn_ms // 1000)
            outcome = "ok"
        self.sink.event("load_time", label=label, outcome=outcome, elapsed_ms=elapsed)
        return elapsed

    def step_timer(self, label: str, thresholds: Optional[Thresholds] = None) -> StepTimer:
        on_exit = None
        if thresholds is not None:
            def on_exit(name: str, started_at: float) -> None:
                self.report_elapsed(name, started_at, thresholds.warn1_ms, thresholds.fail_ms)
        return StepTimer(label, clock=self.clock, on_exit=on_exit)

    # -- internals -----------------------------------------------------------

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self.clock() - started) * 1000))

    def _blocked(self, blocker: Optional[UIHandle]) -> bool:
        if blocker is None or self.page is None:
            return False
        try:
            return blocker.resolve(self.page, accept=lambda loc: loc.is_visible()) is not None
        except PlaywrightError as exc:
            log.debug("Overlay check for '%s' failed: %s", blocker.label, exc)
            return False

    def _log_outcome(self, outcome: WaitOutcome) -> None:
        seconds = outcome.elapsed_ms / 1000
        if outcome.tier is Tier.NONE:
            log.info("'%s' ready in %.2f s", outcome.label, seconds)
        else:
            log.warning(
                "'%s' ready in %.2f s, thresholds crossed: %s",
                outcome.label,
                seconds,
                ", ".join(outcome.crossed),
            )
        self.sink.event(
            "guard",
            label=outcome.label,
            outcome=outcome.tier.name.lower(),
            elapsed_ms=outcome.elapsed_ms,
        )
