"""
AOF Stagger — Configuration Loader

Two-tier configuration loading:
  1. Base YAML file (hosts, credentials, pool settings, scheduler knobs)
  2. Environment variable overrides (AOF_ prefixed)

The merged mapping is validated into an explicit FleetConfig that is
handed to the connection layer and the scheduler. Nothing is cached at
module level.

Usage:
    from infra.config import load_config

    cfg = load_config("config.yaml")
    cfg.host_list()               # ["127.0.0.1:6379", "127.0.0.1:6380"]
    cfg.scheduler.poll_interval   # 0.01

Environment variables:
    AOF_<KEY>=value               — top-level override (AOF_HOSTS=...)
    AOF_<SECTION>__<KEY>=value    — nested override (AOF_SCHEDULER__SKIP_UNREACHABLE=true)
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("aof_stagger.config")

SINGLE_INSTANCE_MODE = 1
CLUSTER_MODE = 2
SENTINEL_MODE = 3

DEFAULT_POOL_SIZE = 50
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_IDLE_TIME_HOURS = 1

DEFAULT_POLL_INTERVAL_MS = 10
DEFAULT_GROWTH_THRESHOLD_PERCENT = 75
DEFAULT_QUERY_TIMEOUT_SECONDS = 5.0

ENV_PREFIX = "AOF_"


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""
    pass


# ═══════════════════════════════════════════════════════════════════
# Config Types
# ═══════════════════════════════════════════════════════════════════

@dataclass
class SchedulerConfig:
    """Knobs for the fleet scheduler and readiness gate."""
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    growth_threshold_percent: int = DEFAULT_GROWTH_THRESHOLD_PERCENT
    skip_unreachable: bool = False
    query_timeout: float = DEFAULT_QUERY_TIMEOUT_SECONDS

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0


@dataclass
class FleetConfig:
    hosts: str
    password: str = ""
    db: int = 0
    timeout: int = DEFAULT_TIMEOUT_SECONDS
    pool_size: int = DEFAULT_POOL_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    idle_time: int = DEFAULT_IDLE_TIME_HOURS
    db_mod: int = SINGLE_INSTANCE_MODE
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    log_level: str = "INFO"

    def host_list(self) -> list[str]:
        """Hosts in configured order, blanks dropped."""
        return [h.strip() for h in self.hosts.split(",") if h.strip()]

    @property
    def idle_check_seconds(self) -> int:
        return self.idle_time * 3600


# ═══════════════════════════════════════════════════════════════════
# Merge helpers
# ═══════════════════════════════════════════════════════════════════

def deep_merge(base: dict, overlay: dict) -> dict:
    """
    Deep-merge overlay into base. Overlay values win.
    Lists are replaced (not appended). Dicts are recursed.
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _set_nested(d: dict, keys: list[str], value: Any):
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _load_env_overrides(
    environ: dict[str, str] | None = None,
    prefix: str = ENV_PREFIX,
) -> dict[str, Any]:
    """
    Load AOF_ prefixed environment variables as config overrides.

    AOF_POOL_SIZE=20 → {"pool_size": 20}
    AOF_SCHEDULER__POLL_INTERVAL_MS=25 → {"scheduler": {"poll_interval_ms": 25}}

    Values are parsed as YAML scalars so numbers and booleans keep their type.
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for key, value in environ.items():
        if not key.startswith(prefix) or key == "AOF_VERSION":
            continue
        path = key[len(prefix):].lower().split("__")
        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError:
            parsed = value
        _set_nested(overrides, path, parsed)

    if overrides:
        logger.debug("Loaded %d env var overrides", len(overrides))
    return overrides


# ═══════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════

def _as_int(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _scheduler_from_dict(raw: dict[str, Any]) -> SchedulerConfig:
    poll_ms = _as_int(raw, "poll_interval_ms", DEFAULT_POLL_INTERVAL_MS)
    if poll_ms <= 0:
        poll_ms = DEFAULT_POLL_INTERVAL_MS

    threshold = _as_int(raw, "growth_threshold_percent", DEFAULT_GROWTH_THRESHOLD_PERCENT)

    query_timeout = raw.get("query_timeout", DEFAULT_QUERY_TIMEOUT_SECONDS)
    try:
        query_timeout = float(query_timeout)
    except (TypeError, ValueError):
        raise ConfigError(f"scheduler.query_timeout must be a number, got {query_timeout!r}") from None
    if query_timeout <= 0:
        query_timeout = DEFAULT_QUERY_TIMEOUT_SECONDS

    return SchedulerConfig(
        poll_interval_ms=poll_ms,
        growth_threshold_percent=threshold,
        skip_unreachable=bool(raw.get("skip_unreachable", False)),
        query_timeout=query_timeout,
    )


def config_from_dict(raw: dict[str, Any]) -> FleetConfig:
    """
    Build a FleetConfig from a merged mapping, applying defaults.

    Zero values fall back to defaults:
    pool_size 0 → 50, max_retries 0 → 3, timeout 0 → 30s, idle_time 0 → 1h.
    """
    hosts = raw.get("hosts") or ""
    if not isinstance(hosts, str):
        hosts = ",".join(str(h) for h in hosts)
    if not hosts.strip():
        raise ConfigError("must have db hosts")

    db_mod = _as_int(raw, "db_mod", SINGLE_INSTANCE_MODE)
    if db_mod < SINGLE_INSTANCE_MODE:
        db_mod = SINGLE_INSTANCE_MODE
    if db_mod not in (SINGLE_INSTANCE_MODE, CLUSTER_MODE):
        raise ConfigError(f"unsupported db_mod {db_mod} (1 = single instance, 2 = cluster node)")

    scheduler_raw = raw.get("scheduler") or {}
    if not isinstance(scheduler_raw, dict):
        raise ConfigError("scheduler must be a mapping")

    logging_raw = raw.get("logging") or {}

    cfg = FleetConfig(
        hosts=hosts,
        password=str(raw.get("password") or ""),
        db=max(_as_int(raw, "db", 0), 0),
        timeout=_as_int(raw, "timeout", 0) or DEFAULT_TIMEOUT_SECONDS,
        pool_size=_as_int(raw, "pool_size", 0) or DEFAULT_POOL_SIZE,
        max_retries=_as_int(raw, "max_retries", 0) or DEFAULT_MAX_RETRIES,
        idle_time=_as_int(raw, "idle_time", 0) or DEFAULT_IDLE_TIME_HOURS,
        db_mod=db_mod,
        scheduler=_scheduler_from_dict(scheduler_raw),
        log_level=str(logging_raw.get("level", "INFO")).upper(),
    )
    return cfg


# ═══════════════════════════════════════════════════════════════════
# Main Loader
# ═══════════════════════════════════════════════════════════════════

def load_config(
    path: str | Path,
    include_env_vars: bool = True,
    environ: dict[str, str] | None = None,
) -> FleetConfig:
    """
    Load and validate the fleet configuration.

    Args:
        path: YAML config file
        include_env_vars: Whether to apply AOF_* overrides
        environ: Environment mapping (default: os.environ)

    Raises:
        ConfigError: file missing, unreadable, or invalid
    """
    path = Path(path)
    logger.info("read config info %s", path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"read config err: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    if include_env_vars:
        overrides = _load_env_overrides(environ)
        if overrides:
            raw = deep_merge(raw, overrides)

    return config_from_dict(raw)
