# clubpoints/cli.py
"""
Club points batch run.

Usage:
    python -m clubpoints.cli [--db PATH] [--days N] [--skip-profile-sync] [--verbose]
    python -m clubpoints.cli --season 4
    python -m clubpoints.cli --import-roster clubs.json
"""

import argparse
import json
import logging
from dataclasses import replace
from typing import List, Optional

from clubpoints.api_client import FeedError, ProfileClient, TournamentFeedClient
from clubpoints.config import load_settings
from clubpoints.database import Database
from clubpoints.processor import ResultProcessor, RunContext
from clubpoints.profile_sync import ProfileSync

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Club tournament points updater")
    parser.add_argument("--db", help="Path to SQLite database (default: CLUBPOINTS_DB_PATH)")
    parser.add_argument("--days", type=int, help="Days back to fetch tournaments (default: TOURNAMENTS_DAYS)")
    parser.add_argument("--skip-profile-sync", action="store_true", help="Do not refresh player profiles")
    parser.add_argument("--season", type=int, help="Set the current season and exit")
    parser.add_argument("--import-roster", metavar="FILE", help="Load clubs and members from a JSON roster and exit")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    return parser


def _import_roster(db: Database, path: str) -> int:
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, ValueError) as e:
        LOGGER.error("Could not read roster file %s: %s", path, e)
        return 1
    try:
        counts = db.import_roster(document)
    except ValueError as e:
        LOGGER.error("Invalid roster file %s: %s", path, e)
        return 1
    print(f"Imported {counts['clubs']} clubs and {counts['members']} members")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.db:
        settings = replace(settings, db_path=args.db)
    if args.days is not None:
        if args.days < 1:
            print("--days must be a positive integer")
            return 1
        settings = replace(settings, tournaments_days=args.days)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = Database(settings.db_path)
    try:
        if args.season is not None:
            try:
                db.set_current_season(args.season)
            except ValueError as e:
                print(str(e))
                return 1
            print(f"Current season set to {args.season}")
            return 0

        if args.import_roster:
            return _import_roster(db, args.import_roster)

        missing = settings.validate()
        if missing:
            LOGGER.error("Missing required environment variables: %s", ", ".join(missing))
            return 1

        feed = TournamentFeedClient(
            settings.api_access_token,
            settings.api_app_id,
            base_url=settings.api_base_url,
        )
        processor = ResultProcessor(db, feed)
        try:
            context = RunContext.load(db)
            report = processor.run(context, days=settings.tournaments_days)
        except FeedError as e:
            LOGGER.error("Error fetching tournaments: %s", e)
            return 1
        except RuntimeError as e:
            LOGGER.error("Run aborted: %s", e)
            return 1

        if args.skip_profile_sync:
            LOGGER.info("Profile sync skipped (--skip-profile-sync)")
        else:
            profiles = ProfileClient(settings.playfab_title_id, settings.playfab_secret_key)
            report.profile_sync = ProfileSync(db, profiles).run(context.season)

        report.print_summary()
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
