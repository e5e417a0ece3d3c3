"""Configuration loader for the synchronization runtime."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping

log = logging.getLogger(__name__)

ENV_PREFIX = "UISYNC_"
CONFIG_PATH_ENV = "UISYNC_CONFIG"
CONFIG_TABLE = "uisync"
DEFAULT_CONFIG_FILE = "uisync.toml"

DEFAULTS: Dict[str, Any] = {
    "explicit_wait_ms": 10000,
    "click_attempts": 3,
    "click_retry_delay_ms": 250,
    "settle_delay_ms": 120,
    "scroll_nudge_px": 80,
    "poll_interval_ms": 500,
    "fingerprint_poll_ms": 200,
    "nav_hop_timeout_ms": 60000,
    "max_first_page_hops": 200,
    "max_collect_pages": 500,
    "login_warn_ms": 30000,
    "login_fail_ms": 60000,
    "nav_warn_ms": 10000,
    "nav_fail_ms": 60000,
    "get_started_warn1_ms": 60000,
    "get_started_warn2_ms": 90000,
    "get_started_warn3_ms": 120000,
    "get_started_fail_ms": 150000,
    "create_warn1_ms": 60000,
    "create_warn2_ms": 120000,
    "create_warn3_ms": 180000,
    "create_fail_ms": 240000,
    "log_root": "runs",
    "screenshot_mode": "viewport",
}


@dataclass(slots=True, frozen=True)
class SyncConfig:
    explicit_wait_ms: int = DEFAULTS["explicit_wait_ms"]
    click_attempts: int = DEFAULTS["click_attempts"]
    click_retry_delay_ms: int = DEFAULTS["click_retry_delay_ms"]
    settle_delay_ms: int = DEFAULTS["settle_delay_ms"]
    scroll_nudge_px: int = DEFAULTS["scroll_nudge_px"]
    poll_interval_ms: int = DEFAULTS["poll_interval_ms"]
    fingerprint_poll_ms: int = DEFAULTS["fingerprint_poll_ms"]
    nav_hop_timeout_ms: int = DEFAULTS["nav_hop_timeout_ms"]
    max_first_page_hops: int = DEFAULTS["max_first_page_hops"]
    max_collect_pages: int = DEFAULTS["max_collect_pages"]
    login_warn_ms: int = DEFAULTS["login_warn_ms"]
    login_fail_ms: int = DEFAULTS["login_fail_ms"]
    nav_warn_ms: int = DEFAULTS["nav_warn_ms"]
    nav_fail_ms: int = DEFAULTS["nav_fail_ms"]
    get_started_warn1_ms: int = DEFAULTS["get_started_warn1_ms"]
    get_started_warn2_ms: int = DEFAULTS["get_started_warn2_ms"]
    get_started_warn3_ms: int = DEFAULTS["get_started_warn3_ms"]
    get_started_fail_ms: int = DEFAULTS["get_started_fail_ms"]
    create_warn1_ms: int = DEFAULTS["create_warn1_ms"]
    create_warn2_ms: int = DEFAULTS["create_warn2_ms"]
    create_warn3_ms: int = DEFAULTS["create_warn3_ms"]
    create_fail_ms: int = DEFAULTS["create_fail_ms"]
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    screenshot_mode: str = DEFAULTS["screenshot_mode"]

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "SyncConfig":
        data = dict(DEFAULTS)
        data.update({k: v for k, v in mapping.items() if k in DEFAULTS})
        values: Dict[str, Any] = {}
        for item in fields(cls):
            raw = data[item.name]
            if item.name == "log_root":
                values[item.name] = Path(raw)
            elif item.name == "screenshot_mode":
                values[item.name] = str(raw)
            else:
                values[item.name] = _read_millis(item.name, raw)
        return cls(**values)


def _read_millis(key: str, raw: Any) -> int:
    """Parse a numeric setting, tolerating inline comments like ``30000  # 30s``."""

    if isinstance(raw, bool):
        raw = int(raw)
    if isinstance(raw, (int, float)):
        return int(raw)
    text = str(raw).split("#", 1)[0].strip().replace("_", "")
    try:
        return int(float(text))
    except ValueError:
        log.warning("Using default for %s; could not parse %r", key, raw)
        return int(DEFAULTS[key])


def _sync_table(path: Path) -> Dict[str, Any]:
    """Return the ``[uisync]`` table of ``path``, or nothing when the file is absent."""

    if not path.is_file():
        return {}
    document = tomllib.loads(path.read_text(encoding="utf-8"))
    table = document.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        log.warning("Ignoring '%s' in %s: expected a table, got %s", CONFIG_TABLE, path, type(table).__name__)
        return {}
    return table


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in DEFAULTS:
            overrides[name] = value
        else:
            log.warning("Unknown setting %s ignored", key)
    return overrides


def load_config(config_path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> SyncConfig:
    """Defaults, then the ``[uisync]`` table of a TOML file, then ``UISYNC_*`` variables.

    The file is ``config_path``, else ``$UISYNC_CONFIG``, else ``uisync.toml``.
    """

    environ = os.environ if environ is None else environ
    path = config_path or Path(environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_FILE))
    settings = _sync_table(path)
    settings.update(_env_overrides(environ))
    return SyncConfig.from_mapping(settings)
