"""Error taxonomy shared by the synchronization core."""

from __future__ import annotations

from typing import Optional, Sequence

_STALE_MARKERS = (
    "not attached to the dom",
    "element is detached",
    "element was detached",
    "stale element",
    "node is detached",
    "execution context was destroyed",
)


class UISyncError(Exception):
    """Base class for errors raised by the core."""


class WaitTimeout(UISyncError, TimeoutError):
    """A bounded wait did not observe its condition in time."""

    def __init__(self, condition: str, timeout_ms: int, *, message: Optional[str] = None) -> None:
        self.condition = condition
        self.timeout_ms = timeout_ms
        super().__init__(message or f"Condition '{condition}' not met within {timeout_ms} ms")


class GuardTimeout(WaitTimeout):
    """A guarded operation reached its fail threshold."""

    def __init__(self, label: str, elapsed_ms: int, fail_ms: int, crossed: Sequence[str]) -> None:
        self.label = label
        self.elapsed_ms = elapsed_ms
        self.crossed = tuple(crossed)
        crossed_text = ", ".join(self.crossed) if self.crossed else "none"
        super().__init__(
            label,
            fail_ms,
            message=(
                f"'{label}' not ready after {elapsed_ms} ms "
                f"(fail at {fail_ms} ms, thresholds crossed: {crossed_text})"
            ),
        )


class ActionFailure(UISyncError):
    """Every bounded strategy for a click or type was exhausted."""

    def __init__(self, label: str, attempts: int, *, reason: Optional[str] = None) -> None:
        self.label = label
        self.attempts = attempts
        self.reason = reason
        message = f"Failed to act on '{label}' after {attempts} attempt(s)"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class StaleReference(UISyncError):
    """The target node was detached from the live document mid-operation."""

    def __init__(self, label: str, *, reason: Optional[str] = None) -> None:
        self.label = label
        super().__init__(f"'{label}' went stale" + (f": {reason}" if reason else ""))


def is_stale_error(exc: BaseException) -> bool:
    """Return True when a driver error means the node left the document."""

    if isinstance(exc, StaleReference):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _STALE_MARKERS)
