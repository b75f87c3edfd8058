"""CLI entry point for the governance voting nodes.

Usage:
    python -m governance_voter run-once [--dry-run] [--strategy aggressive]
    python -m governance_voter schedule [--interval 1800] [--max-runs 3]
    python -m governance_voter config
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from governance_voter.config import Settings, get_settings
from governance_voter.errors import ConfigurationError
from governance_voter.round import build_round
from governance_voter.scheduler import RoundScheduler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def setup_logging(level: int) -> None:
    """Configure logging for CLI."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # web3 request logging is very chatty at DEBUG
    logging.getLogger("web3").setLevel(max(level, logging.INFO))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="python -m governance_voter",
        description="Automated AssetDAO governance voting nodes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m governance_voter run-once --dry-run
  python -m governance_voter run-once --strategy aggressive
  python -m governance_voter schedule --interval 900
  python -m governance_voter config

Configuration is read from the environment and a .env file
(ETHEREUM_RPC_URL, ASSET_DAO_CONTRACT_ADDRESS, AI_NODE_<n>_PRIVATE_KEY, VOTING_*).
        """,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    def add_round_options(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--dry-run",
            action="store_true",
            help="Check vote status but never submit transactions",
        )
        p.add_argument(
            "--strategy",
            choices=["conservative", "aggressive", "balanced"],
            default=None,
            help="Override VOTING_STRATEGY",
        )

    run_once = sub.add_parser("run-once", help="Run a single voting round and print its summary")
    add_round_options(run_once)

    schedule = sub.add_parser("schedule", help="Run voting rounds on an interval")
    add_round_options(schedule)
    schedule.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between rounds (default: VOTING_SCHEDULE_INTERVAL_SECONDS)",
    )
    schedule.add_argument(
        "--max-runs",
        type=int,
        default=None,
        help="Stop after this many rounds (default: run until interrupted)",
    )

    sub.add_parser("config", help="Print the effective configuration with secrets redacted")

    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply CLI flags on top of environment settings."""
    updates: dict[str, object] = {}
    if getattr(args, "dry_run", False):
        updates["dry_run"] = True
    strategy = getattr(args, "strategy", None)
    if strategy is not None:
        updates["voting"] = settings.voting.model_copy(update={"strategy": strategy})
    if not updates:
        return settings
    return settings.model_copy(update=updates)


async def run_once(settings: Settings) -> int:
    voting_round = build_round(settings)
    try:
        summary = await voting_round.run()
    finally:
        await voting_round.aclose()
    print(json.dumps(summary.to_dict(), indent=2))
    return EXIT_OK


async def run_schedule(settings: Settings, args: argparse.Namespace) -> int:
    voting_round = build_round(settings)
    scheduler = RoundScheduler(
        voting_round,
        interval_seconds=args.interval or settings.voting.schedule_interval_seconds,
        max_runs=args.max_runs,
    )
    try:
        await scheduler.run_forever()
    finally:
        await voting_round.aclose()
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    load_dotenv(override=False)

    try:
        settings = apply_overrides(get_settings(), args)
    except ValidationError as e:
        setup_logging(logging.INFO)
        logger.error("Invalid configuration:\n%s", e)
        return EXIT_CONFIG_ERROR

    setup_logging(logging.DEBUG if args.verbose else settings.get_logging_level())

    if args.command == "config":
        print(json.dumps(settings.redacted_summary(), indent=2))
        return EXIT_OK

    try:
        settings.validate_requirements()
        if args.command == "run-once":
            return asyncio.run(run_once(settings))
        return asyncio.run(run_schedule(settings, args))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
