#!/usr/bin/env python3
"""
quorumctl: External reconciliation controller for replicated database clusters

CLI interface for driving clusters toward their declared topology, templates
and autoscaling policy.
"""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from .config import Settings
from .engine import Engine
from .log import setup_logging
from .supervisor import Supervisor


def main():
    # Load environment variables from .env file
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="quorumctl",
        description="External reconciliation controller for database clusters",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Common arguments
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument(
        "--filter-clusters", type=str, help="Limit to clusters matching this name regex"
    )
    common_parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Enable verbose logging (-v for debug, -vv for trace)",
    )
    common_parser.add_argument(
        "--postgres-url",
        type=str,
        help="PostgreSQL connection URL (defaults to DATABASE_URL env var)",
    )
    common_parser.add_argument(
        "--workers", type=int, help="Number of clusters reconciled concurrently"
    )

    _ = subparsers.add_parser(
        "dry-run",
        parents=[common_parser],
        help="Reconcile once without writing (prints planned actions)",
    )
    _ = subparsers.add_parser(
        "apply",
        parents=[common_parser],
        help="Reconcile every cluster once and write audit log",
    )
    run_parser = subparsers.add_parser(
        "run",
        parents=[common_parser],
        help="Watch for changes and reconcile continuously",
    )
    run_parser.add_argument(
        "--interval", type=float, help="Seconds between full resyncs"
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log planned actions instead of writing them",
    )
    _ = subparsers.add_parser(
        "status",
        parents=[common_parser],
        help="Show the observed state of each cluster",
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        settings = Settings.from_env().with_overrides(
            database_url=args.postgres_url,
            cluster_filter=args.filter_clusters,
            workers=args.workers,
            reconcile_interval=getattr(args, "interval", None),
            dry_run=getattr(args, "dry_run", None),
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # Set up logging
    setup_logging(verbose=args.verbose, json_output=settings.log_json)

    if not settings.database_url:
        print(
            "Error: DATABASE_URL environment variable or --postgres-url required",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        with Engine(settings) as engine:
            if args.command == "dry-run":
                engine.dry_run()
            elif args.command == "apply":
                engine.apply()
            elif args.command == "run":
                asyncio.run(Supervisor(engine).run())
            elif args.command == "status":
                engine.status()
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
