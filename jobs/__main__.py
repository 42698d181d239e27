"""Command-line entrypoint for batch jobs."""

from __future__ import annotations

import argparse
import json
import os

from jobs.config import STORE_BACKENDS, ConfigurationError, RateJobConfig
from jobs.fetch_rates import main as run_fetch_rates
from pipelines.model import RateHistoryRecord
from storage.db import connect, fetch_rate_history
from storage.exports import EXPORT_FORMATS, export_rate_history


def _format_record(record: RateHistoryRecord) -> str:
    return (
        f"{record.rate_date.isoformat()} {record.term_years:>2}y "
        f"{record.rate_type} {record.rate_value:.4f}%"
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Mortgage rate monitor job runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch_parser = subparsers.add_parser(
        "fetch-rates", help="Fetch the latest 30-year rate, derive 15/20-year rates and store them"
    )
    fetch_parser.add_argument(
        "--backend",
        choices=STORE_BACKENDS,
        help="Override RATE_STORE_BACKEND for this invocation",
    )
    fetch_parser.add_argument(
        "--log-level",
        help="Override LOG_LEVEL for this invocation (e.g. DEBUG, INFO)",
    )

    show_parser = subparsers.add_parser("show-rates", help="Print stored rate history (DuckDB)")
    show_parser.add_argument("--term-years", type=int, help="Only show one loan term")
    show_parser.add_argument("--limit", type=int, default=30, help="Maximum rows to print")
    show_parser.add_argument("--json", action="store_true", help="Print rows as JSON")

    export_parser = subparsers.add_parser("export-rates", help="Export stored rate history (DuckDB)")
    export_parser.add_argument("destination", help="Output file path")
    export_parser.add_argument("--format", choices=sorted(EXPORT_FORMATS), default="csv")
    export_parser.add_argument("--term-years", type=int, help="Only export one loan term")

    args = parser.parse_args(argv)

    if args.command == "fetch-rates":
        if args.log_level:
            os.environ["LOG_LEVEL"] = args.log_level
        try:
            config = RateJobConfig.from_env(store_backend=args.backend)
        except ConfigurationError as exc:
            print(f"Configuration error: {exc}")
            return 1
        return run_fetch_rates(config)

    if args.command == "show-rates":
        conn = connect()
        try:
            records = fetch_rate_history(conn, term_years=args.term_years, limit=args.limit)
        finally:
            conn.close()
        if args.json:
            print(json.dumps([record.model_dump(mode="json") for record in records], indent=2))
        else:
            for record in records:
                print(_format_record(record))
        return 0

    if args.command == "export-rates":
        conn = connect()
        try:
            path = export_rate_history(
                conn, args.destination, fmt=args.format, term_years=args.term_years
            )
        finally:
            conn.close()
        print(f"Wrote {path}")
        return 0

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
