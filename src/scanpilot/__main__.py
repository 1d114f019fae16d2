"""Entry point: ``python -m scanpilot``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from scanpilot.exceptions import ScanPilotError
from scanpilot.models import SessionStatus
from scanpilot.orchestrator import ScanOrchestrator
from scanpilot.reporting import console
from scanpilot.settings import AppSettings, load_plan


def _configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy libraries
    for name in ("urllib3", "asyncio", "aiohttp", "openai", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scanpilot", description="Scan job postings and mail a match digest.")
    parser.add_argument("--settings", default=None, help="path to settings.yaml")
    parser.add_argument("--plan", default=None, help="path to plan.yaml (overrides plan_file)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="search, deep scan and send the digest")
    scan.add_argument("--url", default=None, help="scan this search URL only")
    scan.add_argument("--skip-digest", action="store_true")

    rescan = sub.add_parser("rescan", help="rescore every known posting")
    rescan.add_argument("--skip-digest", action="store_true")

    sub.add_parser("status", help="show index counts")

    failed = sub.add_parser("failed", help="list postings whose deep scan failed")
    failed.add_argument("--kind", choices=["timeout", "fetch_error", "parse_error", "unknown"])

    digest = sub.add_parser("digest", help="send the match digest now")
    digest.add_argument("--min-score", type=float, default=None)
    digest.add_argument("--include-sent", action="store_true")
    digest.add_argument("--send-empty", action="store_true")

    sub.add_parser("reset", help="forget every known posting")
    return parser


async def _async_main(args: argparse.Namespace) -> int:
    settings = AppSettings.from_yaml(args.settings)
    plan = load_plan(args.plan or settings.plan_file)
    orchestrator = ScanOrchestrator.from_settings(settings, plan)

    if args.command in ("scan", "rescan"):
        console.print_banner()
        orchestrator.subscribe(console.ConsoleProgress())
        session = await orchestrator.run_scan(
            getattr(args, "url", None),
            rescan=args.command == "rescan",
            send_digest=not args.skip_digest,
        )
        console.print_status(orchestrator.status())
        return 0 if session.status is SessionStatus.COMPLETED else 1

    if args.command == "status":
        console.print_status(orchestrator.status())
    elif args.command == "failed":
        console.print_failed_report(orchestrator.failed_jobs(args.kind))
    elif args.command == "digest":
        result = await orchestrator.send_digest(
            min_match_score=args.min_score,
            include_previously_sent=args.include_sent,
            send_empty=args.send_empty,
        )
        console.print_digest_result(result)
        return 0 if result.success else 1
    elif args.command == "reset":
        console.print_reset(orchestrator.reset_index())
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    try:
        code = asyncio.run(_async_main(args))
    except ScanPilotError as exc:
        logging.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user.")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
