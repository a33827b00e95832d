"""Command line entry point for running a scheduler from a configuration file."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from .config_loader import load_config
from .services import SchedulerHalted, build_scheduler, build_tasks


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crony", description="In-process task scheduler")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser(
        "run",
        help="Run the configured tasks until interrupted",
    )
    run.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )
    run.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds instead of running until Ctrl-C",
    )

    listing = sub.add_parser(
        "list",
        help="Print the configured tasks in scan order",
    )
    listing.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        return _command_run(args)
    if args.command == "list":
        return _command_list(args)

    parser.error("unknown command")
    return 1


def _command_list(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    pairs = build_tasks(config)
    scheduler = build_scheduler(config, tasks=pairs)
    targets = {id(task): definition.target for definition, task in pairs}

    output = []
    for task in scheduler.tasks():
        output.append(
            {
                "name": task.name,
                "priority": scheduler.priority_of(task).name.lower(),
                "target": targets[id(task)],
                "mode": "async" if task.asynchronous else "sync",
                "interval_seconds": task.interval.total_seconds() if task.interval else None,
                "next_run": task.next_run.isoformat() if task.next_run else None,
            }
        )

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


def _command_run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    scheduler = build_scheduler(config)

    scheduler.start()
    try:
        # Returns early if the loop halts on its own.
        scheduler.wait(timeout=args.duration)
    except SchedulerHalted as exc:
        print(f"Scheduler halted: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        print("Interrupted, stopping scheduler...", file=sys.stderr)
    finally:
        scheduler.stop()
    return 0


__all__ = ["build_parser", "main"]

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
