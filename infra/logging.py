"""
AOF Stagger — Structured Logging

Emits JSON log lines for every scheduler and gate event so fleet-wide
rewrite admission can be followed per instance.

Schema (OTel-style keys):
  - service.name / service.version: "aof_stagger", AOF_VERSION
  - event.name: the log_event action ("gate_released", "rewrite_triggered", ...)
  - instance: the Redis instance the event is about ("10.0.0.1:6379"),
    also split into server.address / server.port with db.system "redis"
  - exception.*: type and message; FleetError subclasses also supply
    the instance (QueryError, TriggerError) or status key (ParseError)

Usage:
    from infra.logging import configure_logging, get_logger, log_event

    configure_logging(level="INFO")
    logger = get_logger("gate")
    log_event(logger, logging.INFO, "rewrite_triggered", instance="10.0.0.1:6379")
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "aof_stagger"
DB_SYSTEM = "redis"


def instance_fields(instance: str) -> dict[str, Any]:
    """'10.0.0.1:6380' → instance + server.address/server.port keys."""
    fields: dict[str, Any] = {"instance": instance, "db.system": DB_SYSTEM}
    address, sep, port = instance.rpartition(":")
    if sep and port.isdigit():
        fields["server.address"] = address
        fields["server.port"] = int(port)
    else:
        fields["server.address"] = instance
    return fields


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines keyed by fleet instance."""

    def __init__(self, service_name: str = ROOT_LOGGER):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("AOF_VERSION", "0.1.0")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

        structured = dict(getattr(record, "structured", None) or {})
        if "action" in structured:
            entry["event.name"] = structured["action"]

        if record.exc_info and record.exc_info[0] is not None:
            exc = record.exc_info[1]
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(exc)
            if "instance" not in structured and isinstance(getattr(exc, "instance", None), str):
                structured["instance"] = exc.instance
            if isinstance(getattr(exc, "key", None), str):
                entry["status.key"] = exc.key

        instance = structured.get("instance")
        if isinstance(instance, str) and instance:
            entry.update(instance_fields(instance))

        entry.update(structured)
        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: Any = None,
    service_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Route every aof_stagger.* logger to one JSON handler.

    Safe to call again (CLI start, tests): the previous handler is
    replaced, never stacked.

    Args:
        level: DEBUG (raw INFO reports), INFO (gate/scheduler events),
               WARNING (fail-open and trigger failures only)
        stream: Output stream (default: sys.stderr)
        service_name: service.name in log entries

    Returns:
        The package root logger
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(numeric)
    root.propagate = False

    # Module loggers (aof_stagger.gate, ...) defer to the root level.
    prefix = ROOT_LOGGER + "."
    for name in list(logging.Logger.manager.loggerDict):
        if name.startswith(prefix):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    root.addHandler(handler)
    return root


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the aof_stagger namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def log_event(
    logger: logging.Logger,
    level: int,
    action: str,
    exc_info: Any = None,
    **fields: Any,
) -> None:
    """Emit a structured entry whose message is the action name."""
    if not logger.isEnabledFor(level):
        return
    logger.log(
        level, action,
        exc_info=exc_info,
        extra={"structured": {"action": action, **fields}},
    )
