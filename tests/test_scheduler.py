"""
AOF Stagger — Fleet Scheduler Tests

Tests:
  - disabled instances never open a gate
  - gates open strictly in fleet order, one at a time
  - enablement check failures abort the pass (or skip, if configured)
  - run() loop retries aborted passes and stops on shutdown
  - stop() is idempotent and bounded
"""

import os
import sys
import time
import unittest

_tests_dir = os.path.dirname(os.path.abspath(__file__))
_project_root = os.path.dirname(_tests_dir)
for _p in (_project_root, _tests_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

from fleet.scheduler import FleetScheduler
from fleet.types import GateOutcome, ParseError, QueryError
from infra.config import SchedulerConfig
from infra.shutdown import ShutdownSignal

from fakes import DISABLED, FakeInstance, IDLE, REWRITING, SAVING, report, unreachable


def fast_config(**overrides):
    return SchedulerConfig(poll_interval_ms=1, **overrides)


class TestSinglePass(unittest.TestCase):
    def test_disabled_instance_skipped(self):
        disabled = FakeInstance("off", [DISABLED])
        enabled = FakeInstance("on", [IDLE])
        scheduler = FleetScheduler(fast_config(), [disabled, enabled])

        report_ = scheduler.run_pass()

        self.assertEqual(report_.disabled, ["off"])
        self.assertEqual(report_.order, ["on"])
        self.assertEqual(disabled.queries, 1)
        self.assertEqual(scheduler.stats()["instances_disabled"], 1)

    def test_disabled_instance_never_blocks(self):
        # Busy but AOF off: the scheduler must not wait on it.
        busy_off = FakeInstance("off", [report(aof_enabled=0, rewriting=1)])
        scheduler = FleetScheduler(fast_config(), [busy_off])
        report_ = scheduler.run_pass()
        self.assertEqual(report_.gated, [])
        self.assertEqual(busy_off.queries, 1)

    def test_strict_fleet_order(self):
        log = []
        fleet = [
            FakeInstance(name, [IDLE, REWRITING, SAVING, REWRITING, IDLE], log=log)
            for name in ("a", "b", "c")
        ]
        scheduler = FleetScheduler(fast_config(), fleet)

        report_ = scheduler.run_pass()

        self.assertEqual(report_.order, ["a", "b", "c"])
        names = [name for _, name in log]
        # a's gate closes before b is even queried, b's before c.
        self.assertEqual(names, ["a"] * 5 + ["b"] * 5 + ["c"] * 5)
        self.assertTrue(all(g.outcome == GateOutcome.CLEAR for g in report_.gated))

    def test_trigger_counted(self):
        inst = FakeInstance("a", [IDLE, report(scheduled=1, base=0), REWRITING, IDLE])
        scheduler = FleetScheduler(fast_config(), [inst])
        report_ = scheduler.run_pass()
        self.assertEqual(report_.triggers, 1)
        self.assertEqual(scheduler.stats()["rewrites_triggered"], 1)

    def test_gate_failure_releases_next_instance(self):
        log = []
        a = FakeInstance("a", [IDLE, REWRITING, unreachable("a")], log=log)
        b = FakeInstance("b", [IDLE], log=log)
        scheduler = FleetScheduler(fast_config(), [a, b])

        report_ = scheduler.run_pass()

        self.assertEqual(report_.order, ["a", "b"])
        self.assertEqual(report_.gated[0].outcome, GateOutcome.QUERY_FAILED)
        self.assertEqual(report_.gated[1].outcome, GateOutcome.CLEAR)

    def test_each_pass_opens_fresh_gates(self):
        inst = FakeInstance("a", [IDLE])
        scheduler = FleetScheduler(fast_config(), [inst])
        first = scheduler.run_pass()
        second = scheduler.run_pass()
        self.assertIsNot(first.gated[0], second.gated[0])
        self.assertEqual(scheduler.stats()["gates_opened"], 2)
        self.assertIs(scheduler.last_report, second)


class TestEnablementFailures(unittest.TestCase):
    def test_query_error_aborts_pass(self):
        a = FakeInstance("a", [unreachable("a")])
        b = FakeInstance("b", [IDLE])
        scheduler = FleetScheduler(fast_config(), [a, b])

        with self.assertRaises(QueryError):
            scheduler.run_pass()
        self.assertEqual(b.queries, 0)

    def test_parse_error_aborts_pass(self):
        a = FakeInstance("a", ["aof_enabled:perhaps"])
        scheduler = FleetScheduler(fast_config(), [a])
        with self.assertRaises(ParseError):
            scheduler.run_pass()

    def test_skip_unreachable_continues(self):
        a = FakeInstance("a", [unreachable("a")])
        b = FakeInstance("b", [IDLE])
        scheduler = FleetScheduler(fast_config(skip_unreachable=True), [a, b])

        report_ = scheduler.run_pass()

        self.assertEqual(report_.unreachable, ["a"])
        self.assertEqual(report_.order, ["b"])
        self.assertEqual(scheduler.stats()["instances_unreachable"], 1)


class TestLifecycle(unittest.TestCase):
    def test_closed_shutdown_interrupts_pass(self):
        shutdown = ShutdownSignal()
        shutdown.close()
        inst = FakeInstance("a", [IDLE])
        scheduler = FleetScheduler(fast_config(), [inst], shutdown=shutdown)
        report_ = scheduler.run_pass()
        self.assertTrue(report_.interrupted)
        self.assertEqual(inst.queries, 0)

    def test_run_loop_repeats_passes(self):
        inst = FakeInstance("a", [IDLE])
        scheduler = FleetScheduler(fast_config(), [inst])
        scheduler.start()
        time.sleep(0.1)
        self.assertTrue(scheduler.stop(timeout=1.0))
        self.assertGreater(scheduler.stats()["passes_completed"], 1)

    def test_run_loop_retries_aborted_passes(self):
        a = FakeInstance("a", [unreachable("a"), unreachable("a"), IDLE])
        scheduler = FleetScheduler(fast_config(), [a])
        scheduler.start()
        time.sleep(0.1)
        self.assertTrue(scheduler.stop(timeout=1.0))
        stats = scheduler.stats()
        self.assertEqual(stats["passes_aborted"], 2)
        self.assertGreater(stats["passes_completed"], 0)

    def test_stop_interrupts_open_gate(self):
        inst = FakeInstance("a", [IDLE, REWRITING])
        scheduler = FleetScheduler(SchedulerConfig(poll_interval_ms=10), [inst])
        scheduler.start()
        time.sleep(0.05)

        t0 = time.monotonic()
        self.assertTrue(scheduler.stop(timeout=1.0))
        self.assertLess(time.monotonic() - t0, 0.5)
        self.assertEqual(scheduler.stats()["gates_opened"], 1)
        self.assertTrue(scheduler.last_report.interrupted)

    def test_stop_is_idempotent(self):
        scheduler = FleetScheduler(fast_config(), [FakeInstance("a", [IDLE])])
        self.assertTrue(scheduler.stop())
        scheduler.start()
        self.assertTrue(scheduler.stop(timeout=1.0))
        self.assertTrue(scheduler.stop(timeout=1.0))
        self.assertTrue(scheduler.shutdown.is_closed())


if __name__ == "__main__":
    unittest.main()
