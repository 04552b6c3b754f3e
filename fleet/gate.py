"""
AOF Stagger — Instance Readiness Gate

Polls one instance until it is safe for the scheduler to move on.

States:
  POLLING — snapshot save or rewrite running, or a queued rewrite was
            just evaluated (and possibly fired) but not yet observed
  CLEAR   — terminal; the gate returns and the scheduler advances

Each poll:
  query fails          → QUERY_FAILED  (fail-open, logged)
  parse fails          → PARSE_FAILED  (fail-open, logged)
  idle, not scheduled  → CLEAR
  idle, scheduled      → fire BGREWRITEAOF if the growth policy says so,
                         keep polling until that rewrite has finished
  busy                 → keep polling

The gate never returns straight after a trigger: the rewrite it fired
must be observed running and then finished first.
"""

from __future__ import annotations

import logging
import time

from fleet.instance import Instance
from fleet.policy import DEFAULT_GROWTH_THRESHOLD, decide
from fleet.status import parse_status
from fleet.types import (
    GateAction, GateOutcome, GateResult, ParseError, QueryError, TriggerError,
)
from infra.logging import log_event
from infra.shutdown import ShutdownSignal

logger = logging.getLogger("aof_stagger.gate")

DEFAULT_POLL_INTERVAL = 0.01


class ReadinessGate:
    """Run-to-completion readiness check for a single instance."""

    def __init__(
        self,
        shutdown: ShutdownSignal,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        growth_threshold: int = DEFAULT_GROWTH_THRESHOLD,
    ):
        self.shutdown = shutdown
        self.poll_interval = poll_interval
        self.growth_threshold = growth_threshold

    def run(self, instance: Instance) -> GateResult:
        """Block until the instance is clear, fails, or shutdown closes."""
        result = GateResult(instance=instance.name, outcome=GateOutcome.CLEAR)
        t0 = time.monotonic()
        try:
            result.outcome = self._poll_until_clear(instance, result)
        finally:
            result.elapsed_seconds = time.monotonic() - t0
        log_event(
            logger, logging.INFO, "gate_released",
            instance=instance.name,
            outcome=result.outcome.value,
            polls=result.polls,
            triggers=result.triggers,
            elapsed_ms=round(result.elapsed_seconds * 1000, 1),
        )
        return result

    def _poll_until_clear(self, instance: Instance, result: GateResult) -> GateOutcome:
        while not self.shutdown.is_closed():
            result.polls += 1

            try:
                report = instance.status_query()
            except QueryError as e:
                result.error = str(e)
                log_event(logger, logging.WARNING, "gate_query_failed",
                          instance=instance.name, error=str(e))
                return GateOutcome.QUERY_FAILED

            logger.debug("can next persistence info %s: %s", instance.name, report)

            try:
                snapshot = parse_status(report)
            except ParseError as e:
                result.error = str(e)
                log_event(logger, logging.WARNING, "gate_parse_failed",
                          instance=instance.name, key=e.key, raw_value=e.raw_value)
                return GateOutcome.PARSE_FAILED

            action = decide(snapshot, self.growth_threshold)
            if action == GateAction.RELEASE:
                return GateOutcome.CLEAR
            if action == GateAction.TRIGGER:
                self._trigger(instance, snapshot.current_log_size, snapshot.base_log_size)
                result.triggers += 1

            self.shutdown.wait(self.poll_interval)

        return GateOutcome.SHUTDOWN

    def _trigger(self, instance: Instance, current_size: int, base_size: int) -> None:
        try:
            instance.trigger_rewrite()
        except TriggerError as e:
            log_event(logger, logging.WARNING, "rewrite_trigger_failed",
                      instance=instance.name, error=str(e))
            return
        log_event(logger, logging.INFO, "rewrite_triggered",
                  instance=instance.name,
                  aof_current_size=current_size,
                  aof_base_size=base_size)
