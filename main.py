#!/usr/bin/env python3
"""
Main entry point for Spotify Analysis.

Provides a command-line interface for importing a Spotify data export and
inspecting the resulting database.

Commands:
    history <folder>   Import Extended Streaming History (run first)
    account <folder>   Import Account Data
    techlog <folder>   Import Technical Log Information
    status             Show row counts and import state
    verify             Run post-import validation checks
    plot               Write listening plots as HTML
    serve              Serve the read-only API
"""
from typing import Callable, Dict, List, Optional
import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

from spotify_analysis.analysis import (
    get_latest_plays,
    get_monthly_listening,
    get_summary,
    get_top_artists,
)
from spotify_analysis.config import Config, set_config
from spotify_analysis.database import open_store_readonly
from spotify_analysis.etl.pipeline import (
    ImportResult,
    get_import_status,
    run_account_data_import,
    run_streaming_history_import,
    run_technical_log_import,
)
from spotify_analysis.etl.validation import validate_import
from spotify_analysis.logger_config import setup_logging
from spotify_analysis.utils import Colors, format_count, format_duration_ms, truncate_text
from spotify_analysis.visualization import plot_monthly_listening, plot_top_artists

logger = logging.getLogger(__name__)

IMPORTS: Dict[str, Callable[..., ImportResult]] = {
    "history": run_streaming_history_import,
    "account": run_account_data_import,
    "techlog": run_technical_log_import,
}


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _add_db_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db-dir",
        default=None,
        help="Directory of the analysis database (default: ~/.spotify_analysis).",
    )
    parser.add_argument(
        "--db-name",
        default=None,
        help="Database file name (default: spotify.db).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Statement timeout in seconds (default: 30).",
    )


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Load a Spotify data export into a local analysis database."
    )
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    descriptions = {
        "history": "Import Extended Streaming History (Streaming_History_*.json).",
        "account": "Import Account Data (run after history).",
        "techlog": "Import Technical Log Information.",
    }
    for name, description in descriptions.items():
        sub = subparsers.add_parser(name, help=description, description=description)
        sub.add_argument("source_dir", help="Folder containing the export files.")
        _add_db_args(sub)

    _add_db_args(subparsers.add_parser("status", help="Show row counts and import state."))
    _add_db_args(subparsers.add_parser("verify", help="Run post-import validation checks."))

    plot = subparsers.add_parser("plot", help="Write listening plots as HTML.")
    _add_db_args(plot)
    plot.add_argument("--output-dir", default=".", help="Where to write the HTML files.")
    plot.add_argument("--top", type=int, default=20, help="Number of top artists (default: 20).")

    serve = subparsers.add_parser("serve", help="Serve the read-only API with uvicorn.")
    _add_db_args(serve)
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def _run_import(args: argparse.Namespace, config: Config) -> int:
    source_dir = Path(args.source_dir).expanduser()
    if not config.validate():
        print(f"{Colors.FAIL}Error: cannot read export folder {source_dir}{Colors.ENDC}")
        return 1
    config.ensure_db_dir()
    print(f"{Colors.OKGREEN}Importing {source_dir} into {config.db_path}{Colors.ENDC}")

    try:
        result = IMPORTS[args.command](source_dir, config.db_path, timeout=config.timeout)
    except FileNotFoundError as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        return 1

    color = Colors.OKGREEN if result.success else Colors.FAIL
    print(f"{color}{result}{Colors.ENDC}")
    return 0 if result.success else 1


def _show_status(config: Config) -> int:
    status = get_import_status(config.db_path)
    print_section("Import Status")
    if not status["exists"]:
        print(f"{Colors.WARNING}No database at {config.db_path}{Colors.ENDC}")
        return 1
    if not status["schema_valid"]:
        print(f"{Colors.FAIL}Schema incomplete at {config.db_path}{Colors.ENDC}")
        return 1

    print(f"Database: {config.db_path}")
    print(f"Schema version: {status['schema_version']}")
    for key in (
        "last_streaming_history_import",
        "last_account_data_import",
        "last_technical_log_import",
    ):
        print(f"{key:35s}: {status[key] or '-'}")

    print(f"\n{Colors.BOLD}Row counts:{Colors.ENDC}")
    for table, count in status["counts"].items():
        print(f"  {table:30s}: {format_count(count):>10}")

    conn = open_store_readonly(config.db_path)
    try:
        summary = get_summary(conn)
        latest = get_latest_plays(conn, limit=5)
    finally:
        conn.close()

    if summary["total_plays"]:
        print(f"\n{Colors.BOLD}Listening:{Colors.ENDC}")
        print(f"  {summary['first_play']} to {summary['last_play']}")
        print(f"  {format_duration_ms(summary['total_ms_played'])} over {summary['total_plays']:,} plays")
        print(f"\n{Colors.BOLD}Latest plays:{Colors.ENDC}")
        for play in latest:
            title = play["track_name"] or play["episode_name"] or play["audiobook_chapter_title"]
            by = play["artist_name"] or play["podcast_show_name"] or ""
            print(
                f"  {play['timestamp']}  {truncate_text(title, 40):40s}  "
                f"{Colors.OKCYAN}{truncate_text(by, 30)}{Colors.ENDC}"
            )
    return 0


def _verify(config: Config) -> int:
    print_section("Validation")
    result = validate_import(config.db_path)
    print(result)
    return 0 if result.passed else 1


def _plot(args: argparse.Namespace, config: Config) -> int:
    if not config.db_path.exists():
        print(f"{Colors.FAIL}Error: no database at {config.db_path}{Colors.ENDC}")
        return 1

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    conn = open_store_readonly(config.db_path)
    try:
        months = get_monthly_listening(conn)
        artists = get_top_artists(conn, limit=args.top)
    finally:
        conn.close()

    plot_monthly_listening(months, str(output_dir / "monthly_listening.html"))
    plot_top_artists(artists, str(output_dir / "top_artists.html"))
    print(f"{Colors.OKGREEN}Plots written to {output_dir}{Colors.ENDC}")
    return 0


def _serve(args: argparse.Namespace, config: Config) -> int:
    os.environ["SPOTIFY_ANALYSIS_DB_PATH"] = str(config.db_path)
    uvicorn.run("spotify_analysis.api:app", host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    setup_logging(log_file=args.log_file)

    config = Config(
        source_dir=getattr(args, "source_dir", None),
        db_dir=args.db_dir,
        db_name=args.db_name,
        timeout=args.timeout,
    )
    set_config(config)

    try:
        if args.command in IMPORTS:
            code = _run_import(args, config)
        elif args.command == "status":
            code = _show_status(config)
        elif args.command == "verify":
            code = _verify(config)
        elif args.command == "serve":
            code = _serve(args, config)
        else:
            code = _plot(args, config)
    except Exception as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        logger.exception("Error during execution")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
