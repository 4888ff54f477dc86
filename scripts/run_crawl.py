"""
Run a portal crawl from CLI.

Exit codes: 0 ok, 1 fatal error, 3 regressions need review.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from contextlib import nullcontext
from datetime import date

from portal_crawler.config import get_crawl_settings
from portal_crawler.errors import CrawlError
from portal_crawler.logging_utils import configure_logging, log_event
from portal_crawler.services import CrawlRunSummary, PortalCrawlService

logger = logging.getLogger("portal_crawler.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_NEEDS_REVIEW = 3


def _split_codes(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    codes = [item.strip() for item in raw.split(",") if item.strip()]
    return codes or None


def _open_db(database_url: str | None):
    if not database_url:
        return nullcontext(None)
    from db.session import create_db_engine, create_session_factory

    return create_session_factory(create_db_engine(database_url))()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl class schedules or curricula from the portal.")
    parser.add_argument(
        "--kind",
        choices=("schedule", "curriculum"),
        default="schedule",
        help="What to crawl.",
    )
    parser.add_argument("--epoch", default=None, help="Term code such as 2025-1. Defaults to the portal's current term.")
    parser.add_argument(
        "--departments",
        default=None,
        help="Comma-separated department codes, or degree codes for --kind curriculum.",
    )
    parser.add_argument(
        "--next-term",
        dest="next_term",
        action="store_true",
        help="Also crawl the following term when the portal lists it.",
    )
    parser.add_argument(
        "--full-year",
        dest="full_year",
        action="store_true",
        help="Crawl every term of one academic year (--year, else TARGET_YEAR, else the current year).",
    )
    parser.add_argument("--year", default=None, help="Academic year for a full-year crawl, e.g. 2025. Implies --full-year.")
    parser.add_argument(
        "--no-db",
        dest="no_db",
        action="store_true",
        help="Skip the database sink even if CRAWL_DATABASE_URL or DATABASE_URL is set.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(os.getenv("LOG_LEVEL"))

    settings = get_crawl_settings()
    database_url = None if args.no_db else settings.database_url
    codes = _split_codes(args.departments)
    year = None
    if args.full_year or args.year:
        year = args.year or settings.target_year or str(date.today().year)

    try:
        service = PortalCrawlService()
        with _open_db(database_url) as db:
            if args.kind == "curriculum":
                summaries: list[CrawlRunSummary] = [service.run_curriculum(degrees=codes, db=db)]
            else:
                summaries = service.run_schedule(
                    epoch=args.epoch,
                    include_next=args.next_term,
                    year=year,
                    departments=codes,
                    db=db,
                )
    except CrawlError as exc:
        log_event(logger, logging.ERROR, "crawl_fatal", error=str(exc), error_type=type(exc).__name__)
        print(json.dumps({"status": "fatal", "error": str(exc)}, indent=2))
        return EXIT_FATAL

    print(json.dumps([summary.to_dict() for summary in summaries], indent=2, default=str))
    if any(summary.aborted for summary in summaries):
        return EXIT_FATAL
    if any(summary.fail_run for summary in summaries):
        return EXIT_NEEDS_REVIEW
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
