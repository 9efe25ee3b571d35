"""Report generation for ledger audit results."""

import json
import csv
import io
from datetime import datetime
from decimal import Decimal

from .models import LedgerAuditReport, DiscrepancyType


class ReportGenerator:
    """Generator for ledger audit reports in various formats."""

    def __init__(self, report: LedgerAuditReport):
        """Initialize the report generator.

        Args:
            report: The audit report to generate output from.
        """
        self.report = report

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the report.

        Args:
            include_details: If True, include all discrepancy records.
            indent: JSON indentation level.

        Returns:
            JSON string representation of the report.
        """
        if include_details:
            data = self.report.to_full_dict()
        else:
            data = self.report.to_summary_dict()

        def json_serializer(obj):
            if isinstance(obj, datetime):
                return obj.isoformat()
            if isinstance(obj, DiscrepancyType):
                return obj.value
            if isinstance(obj, Decimal):
                return str(obj)
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(data, indent=indent, default=json_serializer)

    def to_csv(self) -> str:
        """Generate CSV with one row per discrepancy.

        Returns:
            CSV string; only the header row when the ledger is consistent.
        """
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([
            "fee_id", "student_id", "discrepancy_type", "field_name",
            "stored_value", "expected_value", "detected_at",
        ])
        for record in self.report.discrepancy_records:
            writer.writerow([
                record.fee_id,
                record.student_id,
                record.discrepancy_type.value,
                record.field_name,
                str(record.stored_value),
                str(record.expected_value),
                record.detected_at.isoformat(),
            ])
        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary of the report."""
        summary = self.report.to_summary_dict()
        stats = summary["statistics"]

        lines = [
            "=" * 60,
            "LEDGER AUDIT SUMMARY",
            "=" * 60,
            f"Report ID: {summary['id']}",
            f"Status: {summary['status']}",
            "",
            "Statistics:",
            f"  Fee Accounts: {stats['total_accounts']}",
            f"  Ledger Entries: {stats['total_entries']}",
            f"  Consistent Accounts: {stats['consistent_accounts']}",
            f"  Inconsistent Accounts: {stats['inconsistent_accounts']}",
            f"  Discrepancies: {stats['total_discrepancies']}",
            f"  Consistency Rate: {stats['consistency_rate']}",
            "",
            f"Created At: {summary['created_at']}",
            f"Completed At: {summary['completed_at'] or 'N/A'}",
        ]

        if summary.get("error_message"):
            lines.extend([
                "",
                "Error:",
                f"  {summary['error_message']}",
            ])

        lines.append("=" * 60)

        return "\n".join(lines)

    def to_detailed_text(self) -> str:
        """Generate the summary followed by every discrepancy, grouped by account."""
        lines = [self.to_summary_text(), ""]

        if self.report.discrepancy_records:
            lines.extend([
                "DISCREPANCY RECORDS",
                "-" * 40,
            ])

            by_account = {}
            for r in self.report.discrepancy_records:
                by_account.setdefault((r.fee_id, r.student_id), []).append(r)

            for (fee_id, student_id), records in by_account.items():
                lines.append(f"\nFee Account: {fee_id} | Student: {student_id}")
                for r in records:
                    lines.extend([
                        f"  Type: {r.discrepancy_type.value}",
                        f"    Field: {r.field_name}",
                        f"    Stored Value: {r.stored_value}",
                        f"    Expected Value: {r.expected_value}",
                    ])

            lines.append("")

        return "\n".join(lines)
