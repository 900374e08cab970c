"""
Command-line interface for the box-office identity pipeline.

Provides commands for:
- setup: Check and create required tables
- test: Test API and database connections
- correct: Re-key a placeholder movie onto its TMDB id
- enrich: Re-run TMDB enrichment for one or more movie ids
- status: Show a movie row and everything that references it
"""

import argparse
import sys
from typing import Optional

from .client import TMDBClient
from .config import Config
from .database import DatabaseManager
from .exceptions import CorrectionError
from .resolver import IdentityResolver
from .utils import print_header, print_report, progress_bar


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="boxoffice_pipeline",
        description="Box-office identity pipeline - correct placeholder movie ids and enrich from TMDB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Setup (run first)
  python -m boxoffice_pipeline setup

  # Move placeholder 999999901 onto TMDB id 550
  python -m boxoffice_pipeline correct 999999901 550

  # Repair metadata after a failed enrichment
  python -m boxoffice_pipeline enrich 550

  # Inspect a movie and its references
  python -m boxoffice_pipeline status 550
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "setup",
        help="Check for missing tables and create them",
    )

    subparsers.add_parser(
        "test",
        help="Test API and database connections",
    )

    correct_parser = subparsers.add_parser(
        "correct",
        help="Re-key a placeholder movie onto its canonical TMDB id",
    )
    correct_parser.add_argument("temp_id", help="Placeholder movie id")
    correct_parser.add_argument("new_id", help="Canonical TMDB movie id")

    enrich_parser = subparsers.add_parser(
        "enrich",
        help="Re-run TMDB enrichment (idempotent)",
    )
    enrich_parser.add_argument("movie_ids", type=int, nargs="+", metavar="ID")

    status_parser = subparsers.add_parser(
        "status",
        help="Show a movie row and the rows referencing it",
    )
    status_parser.add_argument("movie_id", type=int)

    return parser


def cmd_setup(db: DatabaseManager) -> int:
    """Run setup command."""
    print_header("Box-Office Pipeline Setup")

    result = db.check_and_create_tables()

    print("\nTables:")
    for table in DatabaseManager.ALL_TABLES:
        if table in result["existing"]:
            print(f"  {table:<20} EXISTS")
        elif table in result["created"]:
            print(f"  {table:<20} CREATED")
        else:
            print(f"  {table:<20} MISSING")

    print(f"\nCreated {len(result['created'])}, existing {len(result['existing'])}")
    return 0 if result["all_present"] else 1


def cmd_test(db: DatabaseManager, client: TMDBClient) -> int:
    """Run test connection command."""
    print_header("Connection Test")

    api_ok = client.test_connection()
    db_ok = db.test_connection()

    print(f"\nAPI Connection: {'OK' if api_ok else 'FAILED'}")
    print(f"DB Connection: {'OK' if db_ok else 'FAILED'}")

    return 0 if api_ok and db_ok else 1


def cmd_correct(resolver: IdentityResolver, args) -> int:
    """Run correct command."""
    print_header(f"Correct {args.temp_id} -> {args.new_id}")

    try:
        result = resolver.correct(args.temp_id, args.new_id)
    except CorrectionError as e:
        print_report(e.to_dict(function="cli.correct"), title=f"FAILED ({e.kind})")
        return 1

    print_report(
        {
            "New ID": result.new_id,
            "Redirect": result.redirect,
            "Revenues": result.moved_revenues,
            "Showings": result.moved_showings,
        },
        title="Corrected",
    )
    return 0


def cmd_enrich(resolver: IdentityResolver, args) -> int:
    """Run enrich command."""
    print_header("Re-enrich from TMDB")

    failures = {}
    inserted = 0
    for movie_id in progress_bar(args.movie_ids, desc="Movies", unit="movie", disable=len(args.movie_ids) < 2):
        try:
            inserted += resolver.reenrich(movie_id).total_inserted
        except CorrectionError as e:
            failures[movie_id] = f"{e.kind}: {e.message}"

    print_report(
        {
            "Requested": len(args.movie_ids),
            "Failed": len(failures),
            "New rows": inserted,
        },
        title="Results",
    )
    if failures:
        print_report(failures, title="Failures")
    return 0 if not failures else 1


def cmd_status(db: DatabaseManager, args) -> int:
    """Run status command."""
    print_header(f"Movie {args.movie_id}")

    movie = db.get_movie(args.movie_id)
    if movie is None:
        print("\nNo movies row.")
    else:
        print_report(movie, title="movies")

    print_report(db.count_references(args.movie_id), title="Referencing rows")
    return 0


def main(args: Optional[list] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 0

    try:
        config = Config.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("\nMake sure your .env file contains:")
        print("  TMDB_API_KEY=<your_tmdb_api_key> (or TMDB_BEARER_TOKEN)")
        print("  SQL_HOST, SQL_PORT, SQL_USER, SQL_PASS, SQL_DB")
        return 1

    try:
        db = DatabaseManager(config)
        client = TMDBClient(config)
        resolver = IdentityResolver(db, client, config)
    except Exception as e:
        print(f"Error initializing pipeline: {e}")
        return 1

    try:
        if parsed_args.command == "setup":
            return cmd_setup(db)
        elif parsed_args.command == "test":
            return cmd_test(db, client)
        elif parsed_args.command == "correct":
            return cmd_correct(resolver, parsed_args)
        elif parsed_args.command == "enrich":
            return cmd_enrich(resolver, parsed_args)
        elif parsed_args.command == "status":
            return cmd_status(db, parsed_args)
        else:
            parser.print_help()
            return 0

    except KeyboardInterrupt:
        print("\n\nOperation cancelled.")
        return 130
    except Exception as e:
        print(f"\nError: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
