"""Top-level reminder command line interface."""

from __future__ import annotations

import argparse
import json
from datetime import date as Date
from pathlib import Path
from typing import Sequence

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler

from vcard_reminders.api import create_app
from vcard_reminders.config import resolve_config
from vcard_reminders.jobs.scheduler import build_scheduler
from vcard_reminders.jobs.tasks import build_runtime, local_today, run_single_pass
from vcard_reminders.utils.logging import configure_logging

MODE_CHOICES = ("dry-run", "confirm-send")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vcard-reminders", description="Appointment reminder dispatcher")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Dispatch the due cards for one day once")
    run_parser.add_argument(
        "--mode",
        choices=MODE_CHOICES,
        default="dry-run",
        help="Execution mode: dry-run (safe preview) or confirm-send (sends and marks cards)",
    )
    run_parser.add_argument("--date", type=Date.fromisoformat, help="Target date in YYYY-MM-DD format")
    run_parser.add_argument("--summary-out", type=Path, help="Optional path for a JSON pass summary")
    run_parser.set_defaults(handler=_handle_run)

    serve_parser = subparsers.add_parser("serve", help="Serve the health endpoint with the scheduler running")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, help="Listen port (defaults to PORT)")
    serve_parser.set_defaults(handler=_handle_serve)

    return parser


def _handle_run(args: argparse.Namespace) -> int:
    config = resolve_config()
    runtime = build_runtime(config, dry_run=args.mode == "dry-run")
    target_date = args.date or local_today(config)

    result = run_single_pass(runtime, run_date=target_date)

    if args.summary_out:
        args.summary_out.parent.mkdir(parents=True, exist_ok=True)
        args.summary_out.write_text(
            json.dumps(
                {
                    "mode": args.mode,
                    "date": target_date.isoformat(),
                    "summary": result.summary,
                    "records": [
                        {"card_id": outcome.card_id, "status": outcome.status, "reason": outcome.reason}
                        for outcome in result.outcomes
                    ],
                },
                indent=2,
            )
            + "\n"
        )
    return 0 if result.summary["failed"]["total"] == 0 else 1


def _handle_serve(args: argparse.Namespace) -> int:
    config = resolve_config()
    runtime = build_runtime(config)
    scheduler = build_scheduler(runtime, BackgroundScheduler(timezone=config.timezone))
    app = create_app(scheduler)
    uvicorn.run(app, host=args.host, port=args.port or config.port)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
