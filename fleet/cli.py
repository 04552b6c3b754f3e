"""
AOF Stagger — Command Line

Usage:
    # Coordinate rewrites until SIGINT / SIGTERM
    python -m fleet.cli --config config.yaml run

    # Show each instance's persistence state and what the gate would do
    python -m fleet.cli --config config.yaml status [--json]

    # Walk the fleet exactly once
    python -m fleet.cli --config config.yaml once
"""

import argparse
import json
import sys

from fleet.instance import REDIS_ERRORS
from fleet.policy import decide
from fleet.scheduler import FleetScheduler
from fleet.types import FleetError
from infra.config import ConfigError, FleetConfig, load_config
from infra.connections import close_instances, open_instances
from infra.logging import configure_logging, get_logger
from infra.shutdown import ShutdownSignal, install_signal_handlers

logger = get_logger("cli")


def cmd_run(args, cfg: FleetConfig, instances) -> int:
    """Run the scheduler until a stop signal arrives."""
    shutdown = ShutdownSignal()
    install_signal_handlers(shutdown)
    scheduler = FleetScheduler(cfg.scheduler, instances, shutdown=shutdown)
    scheduler.run()
    print(json.dumps(scheduler.stats(), indent=2), file=sys.stderr)
    return 0


def cmd_status(args, cfg: FleetConfig, instances) -> int:
    """Print one snapshot per instance."""
    scheduler = FleetScheduler(cfg.scheduler, instances)
    rows = []
    for instance in instances:
        try:
            snapshot = scheduler.check_instance(instance)
        except FleetError as e:
            rows.append({"instance": instance.name, "error": str(e)})
            continue
        row = {"instance": instance.name, **snapshot.to_dict()}
        if snapshot.rewrite_enabled:
            row["action"] = decide(snapshot, cfg.scheduler.growth_threshold_percent).value
        else:
            row["action"] = "skip"
        rows.append(row)

    if args.json:
        print(json.dumps(rows, indent=2))
        return 0

    print(f"\nFleet ({len(rows)} instances)")
    print(f"{'─' * 70}")
    for row in rows:
        if "error" in row:
            print(f"  {row['instance']}")
            print(f"    error:   {row['error']}")
            continue
        print(f"  {row['instance']}")
        print(f"    aof:     {'on' if row['rewrite_enabled'] else 'off'}")
        print(f"    bgsave:  {'running' if row['bgsave_in_progress'] else 'idle'}")
        print(f"    rewrite: {'running' if row['rewrite_in_progress'] else 'idle'}"
              f"{' (scheduled)' if row['rewrite_scheduled'] else ''}")
        print(f"    size:    {row['current_log_size']} / base {row['base_log_size']}")
        print(f"    action:  {row['action']}")
    return 0


def cmd_once(args, cfg: FleetConfig, instances) -> int:
    """Run a single pass and print its report."""
    shutdown = ShutdownSignal()
    install_signal_handlers(shutdown)
    scheduler = FleetScheduler(cfg.scheduler, instances, shutdown=shutdown)
    try:
        report = scheduler.run_pass()
    except FleetError as e:
        print(f"Pass aborted: {e}", file=sys.stderr)
        return 1
    print(json.dumps(report.to_dict(), indent=2))
    return 0


COMMANDS = {
    "run": cmd_run,
    "status": cmd_status,
    "once": cmd_once,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aof-stagger",
        description="AOF Stagger — serialize AOF rewrites across a Redis fleet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", default="config.yaml",
                        help="Fleet config YAML (default: config.yaml)")
    parser.add_argument("--log-level", default=None,
                        help="Override logging.level from the config")

    subs = parser.add_subparsers(dest="command", help="Command")
    subs.add_parser("run", help="Coordinate rewrites until stopped")
    status_p = subs.add_parser("status", help="Show fleet persistence state")
    status_p.add_argument("--json", action="store_true", help="Print JSON")
    subs.add_parser("once", help="Run a single scheduling pass")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(level=args.log_level or cfg.log_level)

    try:
        instances = open_instances(cfg)
    except (ConfigError, FleetError) + REDIS_ERRORS as e:
        logger.error("open redis err: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return COMMANDS[args.command](args, cfg, instances)
    finally:
        close_instances(instances)


if __name__ == "__main__":
    sys.exit(main())
