#!/usr/bin/env python3
"""Command-line interface for donation imports.

Usage:
    donation-ledger import payments.csv
    donation-ledger import payments.csv --profile stripe_export --format text
    donation-ledger import payments.csv --output summary.json --database-url sqlite+aiosqlite:///./donations.db
"""

import argparse
import asyncio
import csv
import logging
import sys
from typing import Any, Dict, List, Optional

from ..database import DatabaseManager
from ..database.ledger import ledger_transaction
from .config import load_settings
from .importer import BatchImporter
from .profiles import PROFILES, STRIPE_EXPORT, get_profile
from .report import ImportReportGenerator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_UNREADABLE = 2


def read_rows(path: str) -> List[Dict[str, Any]]:
    """Read every row of a CSV export.

    Raises:
        OSError: If the file cannot be opened.
        csv.Error: If the file is not valid CSV.
        UnicodeDecodeError: If the file is not UTF-8.
    """
    with open(path, newline="", encoding="utf-8-sig") as f:
        return list(csv.DictReader(f))


def render(generator: ImportReportGenerator, output_format: str) -> str:
    if output_format == "csv":
        return generator.to_csv()
    if output_format == "text":
        return generator.to_summary_text()
    return generator.to_json()


async def run_import_async(
    path: str,
    profile_name: str = STRIPE_EXPORT.name,
    output_file: Optional[str] = None,
    output_format: str = "json",
    database_url: Optional[str] = None,
) -> int:
    """Import a CSV file into the ledger.

    Args:
        path: CSV file to import.
        profile_name: Name of the column profile the file follows.
        output_file: Optional output file path for the summary.
        output_format: Summary format ('json', 'csv', 'text').
        database_url: Database URL. If None, DATABASE_URL or the default is used.

    Returns:
        Exit code: 0 when clean, 1 when rows errored or need attention,
        2 when the file cannot be read.
    """
    try:
        rows = read_rows(path)
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        logger.error(f"Cannot read {path}: {e}")
        return EXIT_UNREADABLE

    profile = get_profile(profile_name)
    db = DatabaseManager(database_url)
    await db.initialize()

    try:
        importer = BatchImporter(
            lambda: ledger_transaction(db.session_factory),
            profile,
            settings=load_settings(),
        )
        logger.info(f"Importing {len(rows)} rows from {path}")
        summary = await importer.run(rows)
    finally:
        await db.shutdown()

    output = render(ImportReportGenerator(summary), output_format)
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        logger.info(f"Summary written to {output_file}")
    else:
        print(output)

    if summary.has_issues:
        logger.warning(
            f"Import finished with issues: {len(summary.errors)} errors, "
            f"{summary.needs_attention_count} need attention"
        )
        return EXIT_ISSUES
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="donation-ledger",
        description="Reconcile payment gateway exports into the donation ledger.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    import_parser = subparsers.add_parser(
        "import",
        help="Import a CSV export of gateway transactions",
    )
    import_parser.add_argument("file", help="CSV file to import")
    import_parser.add_argument(
        "--profile", "-p",
        choices=sorted(PROFILES),
        default=STRIPE_EXPORT.name,
        help=f"Column profile (default: {STRIPE_EXPORT.name})",
    )
    import_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )
    import_parser.add_argument(
        "--format", "-f",
        choices=["json", "csv", "text"],
        default="json",
        help="Summary format (default: json)",
    )
    import_parser.add_argument(
        "--database-url",
        help="Database URL (default: DATABASE_URL environment variable)",
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return EXIT_ISSUES

    if parsed_args.command == "import":
        return asyncio.run(run_import_async(
            parsed_args.file,
            profile_name=parsed_args.profile,
            output_file=parsed_args.output,
            output_format=parsed_args.format,
            database_url=parsed_args.database_url,
        ))

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
