"""Pytest configuration: make the package and the shared fakes importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_TESTS = Path(__file__).resolve().parent
for _path in (_ROOT, _TESTS):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from fakes import FakeClock, FakePage  # noqa: E402
from uisync.config import SyncConfig  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def page(clock: FakeClock) -> FakePage:
    return FakePage(clock)


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(explicit_wait_ms=1_000, nav_hop_timeout_ms=2_000)
