"""UI-state synchronization and pagination traversal on top of Playwright."""

from .actions import ActionExecutor, ActionKind
from .collector import GridCollector, PageRecord, Sweep, TraversalState
from .config import SyncConfig, load_config
from .diagnostics import DiagnosticsSink, NullSink
from .errors import ActionFailure, GuardTimeout, StaleReference, UISyncError, WaitTimeout
from .fingerprint import GridFingerprint, GridSelectors
from .handles import Presence, UIHandle
from .pagination import Direction, PagerControls, PaginationNavigator
from .rows import ComplianceRow, TableRowScraper
from .timing import OutcomeReporter, StepTimer, Thresholds, Tier, WaitOutcome, classify
from .waiter import Condition, ReadinessWaiter

__all__ = [
    "ActionExecutor",
    "ActionKind",
    "ActionFailure",
    "ComplianceRow",
    "Condition",
    "DiagnosticsSink",
    "Direction",
    "GridCollector",
    "GridFingerprint",
    "GridSelectors",
    "GuardTimeout",
    "NullSink",
    "OutcomeReporter",
    "PageRecord",
    "PagerControls",
    "PaginationNavigator",
    "Presence",
    "ReadinessWaiter",
    "StaleReference",
    "StepTimer",
    "Sweep",
    "SyncConfig",
    "TableRowScraper",
    "Thresholds",
    "Tier",
    "TraversalState",
    "UIHandle",
    "UISyncError",
    "WaitOutcome",
    "WaitTimeout",
    "classify",
    "load_config",
]
