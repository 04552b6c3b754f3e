"""
AOF Stagger — Rewrite Trigger Policy

Decides whether a rewrite that Redis queued behind a finished snapshot
save should be fired now.
"""

from __future__ import annotations

from fleet.types import GateAction, PersistenceSnapshot

DEFAULT_GROWTH_THRESHOLD = 75


def growth_rate_percent(current_size: int, base_size: int) -> int:
    """
    Growth of the AOF over its base, in whole percent.

    Integer arithmetic truncated toward zero: 100 → 175 is 75, 100 → 176
    is 76, and a log that shrank gives a negative rate.
    """
    if base_size <= 0:
        raise ValueError(f"base size must be positive, got {base_size}")
    delta = (current_size - base_size) * 100
    rate = abs(delta) // base_size
    return rate if delta >= 0 else -rate


def should_fire(
    snapshot: PersistenceSnapshot,
    threshold: int = DEFAULT_GROWTH_THRESHOLD,
) -> bool:
    """
    True when a queued rewrite should be triggered.

    No base (size 0, i.e. never rewritten since startup) always fires.
    Otherwise the growth rate must strictly exceed the threshold.
    """
    base = snapshot.base_log_size
    if base == 0:
        return True
    if base < 0:
        return False
    return growth_rate_percent(snapshot.current_log_size, base) > threshold


def decide(
    snapshot: PersistenceSnapshot,
    threshold: int = DEFAULT_GROWTH_THRESHOLD,
) -> GateAction:
    """Map one snapshot to the readiness gate's next step."""
    if not snapshot.idle:
        return GateAction.WAIT
    if not snapshot.rewrite_scheduled:
        return GateAction.RELEASE
    if should_fire(snapshot, threshold):
        return GateAction.TRIGGER
    return GateAction.HOLD
