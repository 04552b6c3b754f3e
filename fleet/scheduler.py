"""
AOF Stagger — Fleet Scheduler

Walks the fleet in fixed order and admits one readiness gate at a time,
so at most one instance runs an AOF rewrite at any moment:

    for instance in fleet:
        snapshot = parse(INFO persistence)
        if not snapshot.rewrite_enabled: continue
        gate.run(instance)            # blocks until the instance is clear
    sleep(poll_interval); repeat

The gate runs synchronously on the scheduler's own thread; instance i+1
is never looked at while instance i's gate is open.

Usage:
    from fleet.scheduler import FleetScheduler

    scheduler = FleetScheduler(cfg.scheduler, instances)
    scheduler.start()        # background thread
    ...
    scheduler.stop()         # closes the shutdown signal, joins
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Sequence

from fleet.gate import ReadinessGate
from fleet.instance import Instance
from fleet.status import parse_status
from fleet.types import (
    FleetError,
    GateOutcome,
    ParseError,
    PassReport,
    PersistenceSnapshot,
    QueryError,
)
from infra.config import SchedulerConfig
from infra.logging import log_event
from infra.shutdown import ShutdownSignal

logger = logging.getLogger("aof_stagger.scheduler")


class FleetScheduler:
    """
    Sequential rewrite admission across a fixed fleet.

    Lifecycle:
        run()    — loop on the calling thread until shutdown
        start()  — run() on a daemon thread
        stop()   — close shutdown, wait for the loop to return
    """

    def __init__(
        self,
        config: SchedulerConfig,
        instances: Sequence[Instance],
        shutdown: ShutdownSignal | None = None,
        gate: ReadinessGate | None = None,
    ):
        self.config = config
        self.instances: tuple[Instance, ...] = tuple(instances)
        self.shutdown = shutdown or ShutdownSignal()
        self.gate = gate or ReadinessGate(
            self.shutdown,
            poll_interval=config.poll_interval,
            growth_threshold=config.growth_threshold_percent,
        )
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stats = {
            "passes_completed": 0,
            "passes_aborted": 0,
            "gates_opened": 0,
            "rewrites_triggered": 0,
            "instances_disabled": 0,
            "instances_unreachable": 0,
        }
        self.last_report: PassReport | None = None

    # ── Single pass ──────────────────────────────────────────

    def check_instance(self, instance: Instance) -> PersistenceSnapshot:
        """
        Query and parse one instance outside any gate.

        Raises:
            QueryError, ParseError
        """
        report = instance.status_query()
        logger.debug("client check persistence info %s: %s", instance.name, report)
        return parse_status(report)

    def run_pass(self) -> PassReport:
        """
        Walk the fleet once.

        A QueryError/ParseError on an enablement check aborts the pass and
        propagates, unless skip_unreachable is set, in which case the
        instance is recorded as unreachable and the walk continues.
        """
        report = PassReport()
        for instance in self.instances:
            if self.shutdown.is_closed():
                report.interrupted = True
                break

            try:
                snapshot = self.check_instance(instance)
            except (QueryError, ParseError) as e:
                log_event(logger, logging.WARNING, "enablement_check_failed",
                          instance=instance.name, error=str(e),
                          skipped=self.config.skip_unreachable)
                if not self.config.skip_unreachable:
                    raise
                report.unreachable.append(instance.name)
                self._bump("instances_unreachable")
                continue

            if not snapshot.rewrite_enabled:
                logger.debug("client %s not aof", instance.name)
                report.disabled.append(instance.name)
                self._bump("instances_disabled")
                continue

            self._bump("gates_opened")
            result = self.gate.run(instance)
            report.gated.append(result)
            self._bump("rewrites_triggered", result.triggers)

            if result.outcome == GateOutcome.SHUTDOWN:
                report.interrupted = True
                break

        report.finished_at = time.time()
        self.last_report = report
        return report

    # ── Loop ─────────────────────────────────────────────────

    def run(self) -> None:
        """Run passes back to back until the shutdown signal closes."""
        log_event(logger, logging.INFO, "scheduler_started",
                  instances=[i.name for i in self.instances],
                  poll_interval_ms=self.config.poll_interval_ms)
        while not self.shutdown.is_closed():
            try:
                report = self.run_pass()
            except FleetError:
                self._bump("passes_aborted")
            else:
                if not report.interrupted:
                    self._bump("passes_completed")
            self.shutdown.wait(self.config.poll_interval)
        log_event(logger, logging.INFO, "scheduler_stopped", **self.stats())

    def start(self) -> threading.Thread:
        """Run the scheduler loop on a daemon thread."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return self._thread
            self._thread = threading.Thread(
                target=self.run, name="aof-fleet-scheduler", daemon=True,
            )
            self._thread.start()
            return self._thread

    def stop(self, timeout: float | None = None, reason: str = "stop requested") -> bool:
        """
        Close the shutdown signal and wait for the loop to return.

        Returns True when the loop thread is no longer running.
        """
        self.shutdown.close(reason=reason, by="scheduler")
        with self._lock:
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ── Stats ────────────────────────────────────────────────

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._stats[key] += amount

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._stats)
