"""
AOF Stagger — Fleet Type Definitions

Persistence snapshots, gate outcomes, pass reports, and the error
taxonomy shared by the parser, the readiness gate, and the scheduler.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, asdict
from typing import Any


# ─── Errors ─────────────────────────────────────────────────────────

class FleetError(Exception):
    """Base class for coordination errors."""
    pass


class QueryError(FleetError):
    """Raised when an instance cannot be reached for a status report."""

    def __init__(self, instance: str, cause: Exception | str = ""):
        self.instance = instance
        self.cause = cause
        super().__init__(f"status query failed for {instance}: {cause}")


class ParseError(FleetError):
    """Raised when a recognized status key carries a malformed value."""

    def __init__(self, key: str, raw_value: str):
        self.key = key
        self.raw_value = raw_value
        super().__init__(f"invalid value for {key}: {raw_value!r}")


class TriggerError(FleetError):
    """Raised when BGREWRITEAOF is rejected or fails."""

    def __init__(self, instance: str, cause: Exception | str = ""):
        self.instance = instance
        self.cause = cause
        super().__init__(f"rewrite trigger failed for {instance}: {cause}")


# ─── Snapshot ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class PersistenceSnapshot:
    """
    One parsed INFO persistence report.
    Built fresh per poll and discarded once the decision is made.
    """
    bgsave_in_progress: bool = False
    bgsave_elapsed_seconds: int = 0
    rewrite_enabled: bool = False
    rewrite_in_progress: bool = False
    rewrite_scheduled: bool = False
    rewrite_elapsed_seconds: int = 0
    current_log_size: int = 0
    base_log_size: int = 0

    @property
    def idle(self) -> bool:
        """No snapshot save and no rewrite running."""
        return not self.bgsave_in_progress and not self.rewrite_in_progress

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["idle"] = self.idle
        return d


# ─── Gate ───────────────────────────────────────────────────────────

class GateAction(str, enum.Enum):
    """What a readiness gate does with one snapshot."""
    RELEASE = "release"  # idle and nothing queued
    TRIGGER = "trigger"  # idle, rewrite queued, growth policy fires
    HOLD = "hold"        # idle, rewrite queued, growth below threshold
    WAIT = "wait"        # snapshot save or rewrite running


class GateOutcome(str, enum.Enum):
    """How a readiness gate released the scheduler."""
    CLEAR = "clear"                # idle and nothing queued
    QUERY_FAILED = "query_failed"  # fail-open
    PARSE_FAILED = "parse_failed"  # fail-open
    SHUTDOWN = "shutdown"


@dataclass
class GateResult:
    instance: str
    outcome: GateOutcome
    polls: int = 0
    triggers: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def released(self) -> bool:
        """True when the scheduler may advance to the next instance."""
        return self.outcome != GateOutcome.SHUTDOWN


# ─── Scheduler ──────────────────────────────────────────────────────

@dataclass
class PassReport:
    """Result of one walk over the fleet."""
    started_at: float = field(default_factory=time.time)
    finished_at: float = 0.0
    gated: list[GateResult] = field(default_factory=list)
    disabled: list[str] = field(default_factory=list)
    unreachable: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def order(self) -> list[str]:
        """Instances whose gate was opened, in admission order."""
        return [g.instance for g in self.gated]

    @property
    def triggers(self) -> int:
        return sum(g.triggers for g in self.gated)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "interrupted": self.interrupted,
            "disabled": list(self.disabled),
            "unreachable": list(self.unreachable),
            "gated": [
                {
                    "instance": g.instance,
                    "outcome": g.outcome.value,
                    "polls": g.polls,
                    "triggers": g.triggers,
                    "elapsed_seconds": round(g.elapsed_seconds, 3),
                    "error": g.error,
                }
                for g in self.gated
            ],
        }
