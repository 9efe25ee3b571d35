#!/usr/bin/env python3
"""Command-line interface for ledger audits.

Checks every stored fee account against its own payment ledger and reports
accounts whose aggregates have drifted.

Usage:
    python -m fee_ledger.reconciliation.cli audit
    python -m fee_ledger.reconciliation.cli audit --format csv --output audit.csv
    fee-ledger-audit audit --summary-only
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from ..database import (
    Base,
    create_async_engine,
    get_async_session_factory,
    get_database_url,
)
from .models import AuditStatus
from .service import ReconciliationService

logger = logging.getLogger(__name__)


async def run_audit_async(
    database_url: Optional[str] = None,
    output_file: Optional[str] = None,
    output_format: str = "json",
    include_details: bool = True,
    active_only: bool = False,
) -> int:
    """Run a ledger audit asynchronously.

    Args:
        database_url: Database to audit. Defaults to DATABASE_URL.
        output_file: Optional output file path.
        output_format: Output format ('json', 'csv', 'text', 'detailed_text').
        include_details: Include discrepancy records in JSON output.
        active_only: Skip deactivated accounts.

    Returns:
        Exit code: 0 consistent, 1 discrepancies found, 2 audit failed.
    """
    engine = create_async_engine(database_url=database_url or get_database_url())

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = get_async_session_factory(engine)

    try:
        async with session_factory() as session:
            service = ReconciliationService(session)

            logger.info("Starting ledger audit")
            report = await service.run_audit(active_only=active_only)

            output = service.generate_report(
                report=report,
                format=output_format,
                include_details=include_details,
            )

            if output_file:
                with open(output_file, 'w') as f:
                    f.write(output)
                logger.info(f"Report written to {output_file}")
            else:
                print(output)

            if report.status == AuditStatus.COMPLETED:
                if report.total_discrepancies > 0:
                    logger.warning(
                        f"Audit found {report.total_discrepancies} discrepancies on "
                        f"{report.inconsistent_accounts} fee accounts"
                    )
                    return 1
                return 0
            else:
                logger.error(f"Ledger audit failed: {report.error_message}")
                return 2

    finally:
        await engine.dispose()


def run_audit(
    database_url: Optional[str] = None,
    output_file: Optional[str] = None,
    output_format: str = "json",
    include_details: bool = True,
    active_only: bool = False,
) -> int:
    """Run a ledger audit (sync wrapper). Returns the exit code."""
    return asyncio.run(run_audit_async(
        database_url=database_url,
        output_file=output_file,
        output_format=output_format,
        include_details=include_details,
        active_only=active_only,
    ))


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="fee-ledger-audit",
        description="Consistency checks for the fee payment ledger.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    audit_parser = subparsers.add_parser(
        "audit",
        help="Check stored fee accounts against their ledger entries",
    )
    audit_parser.add_argument(
        "--database-url", "-d",
        help="Database URL (default: DATABASE_URL environment variable)",
    )
    audit_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )
    audit_parser.add_argument(
        "--format", "-f",
        choices=["json", "csv", "text", "detailed_text"],
        default="json",
        help="Output format (default: json)",
    )
    audit_parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only include summary statistics, not discrepancy records",
    )
    audit_parser.add_argument(
        "--active-only",
        action="store_true",
        help="Skip deactivated fee accounts",
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
        return 1

    if parsed_args.command == "audit":
        return run_audit(
            database_url=parsed_args.database_url,
            output_file=parsed_args.output,
            output_format=parsed_args.format,
            include_details=not parsed_args.summary_only,
            active_only=parsed_args.active_only,
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
