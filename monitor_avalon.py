"""CLI entrypoint for the avalon-rent jobs."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from avalonrent.config import Settings, build_history_table, build_state_store
from avalonrent.errors import ConfigurationError
from avalonrent.history import SqliteHistoryTable, resolve_sqlite_path
from avalonrent.notifications import build_notifier_from_env
from avalonrent.runner import (
    SETUP_ERROR_SUBJECT,
    AlertRunner,
    DailyStatsRunner,
    report_failure,
)

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Avalon apartment availability monitor")
    parser.add_argument("--alert", action="store_true", help="run one alert cycle")
    parser.add_argument(
        "--daily-stats",
        action="store_true",
        help="append the current listings to the history table",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="evaluate alerts without uploading state or sending email",
    )
    parser.add_argument("--max-price", type=int, help="overrides MAX_PRICE env var")
    parser.add_argument("--move-start", help='e.g. "Feb 10, 2020" (overrides MOVE_DATE_START)')
    parser.add_argument("--move-end", help='e.g. "Feb 23, 2020" (overrides MOVE_DATE_END)')
    parser.add_argument("--target-url", help="listing page URL (overrides TARGET_URL env var)")
    parser.add_argument(
        "--export",
        metavar="PATH",
        type=Path,
        help="export the local sqlite history to an xlsx workbook and exit",
    )
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.max_price is not None:
        settings.max_price = args.max_price
    if args.move_start:
        settings.move_start = args.move_start
    if args.move_end:
        settings.move_end = args.move_end
    if args.target_url:
        settings.target_url = args.target_url
    return settings


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = apply_overrides(Settings.from_env(), args)
    except ConfigurationError:
        logger.exception("Invalid configuration")
        return 1

    if args.export:
        table = SqliteHistoryTable(path=resolve_sqlite_path(settings.database_url))
        table.initialize()
        table.export_to_xlsx(args.export)
        logger.info("Exported history to %s", args.export)
        return 0

    if not args.alert and not args.daily_stats:
        parser.print_help()
        return 1

    try:
        notifier = build_notifier_from_env()
        if args.alert:
            runner = AlertRunner(
                store=build_state_store(settings),
                notifier=notifier,
                max_price=settings.max_price,
                move_start=settings.move_start,
                move_end=settings.move_end,
                target_url=settings.target_url,
            )
            result = runner.run(dry_run=args.dry_run)
            for record in result.new:
                logger.info(
                    "New: %s | %s | $%d | %s - %s | %s",
                    record.unit_id,
                    record.bedroom,
                    record.price,
                    record.available_start,
                    record.available_end,
                    record.url,
                )
        if args.daily_stats:
            DailyStatsRunner(
                table=build_history_table(settings),
                notifier=notifier,
                target_url=settings.target_url,
            ).run()
    except Exception:  # noqa: BLE001
        logger.exception("Run failed")
        return 1
    return 0


def lambda_handler(event, context):
    """AWS Lambda entrypoint for the scheduled daily-stats job."""
    configure_logging(verbose=False)
    notifier = build_notifier_from_env()
    try:
        settings = Settings.from_env()
        table = build_history_table(settings)
    except Exception as exc:
        logger.exception("Daily stats setup failed")
        report_failure(notifier, SETUP_ERROR_SUBJECT, exc)
        raise
    DailyStatsRunner(
        table=table,
        notifier=notifier,
        target_url=settings.target_url,
    ).run()
    return {"status": "ok"}


if __name__ == "__main__":
    sys.exit(main())
