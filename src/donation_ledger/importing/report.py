"""Report generation for import run summaries."""

import csv
import io
import json
from datetime import datetime

from .models import ImportSummary


class ImportReportGenerator:
    """Renders an ImportSummary as JSON, CSV or plain text."""

    def __init__(self, summary: ImportSummary):
        """Initialize the report generator.

        Args:
            summary: The import summary to render.
        """
        self.summary = summary

    def to_json(self, include_errors: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the summary.

        Args:
            include_errors: If True, include per-row errors. If False, only counters.
            indent: JSON indentation level.

        Returns:
            JSON string.
        """
        if include_errors:
            data = self.summary.to_full_dict()
        else:
            data = self.summary.to_summary_dict()

        def json_serializer(obj):
            if isinstance(obj, datetime):
                return obj.isoformat()
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(data, indent=indent, default=json_serializer)

    def to_csv(self) -> str:
        """Generate CSV of row errors, one line per failed row."""
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(["row_index", "message", "raw_row"])
        for error in self.summary.errors:
            writer.writerow([
                error.row_index,
                error.message,
                json.dumps(error.raw_row or {}, sort_keys=True),
            ])
        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary of the run.

        Returns:
            Formatted text summary.
        """
        summary = self.summary.to_summary_dict()

        lines = [
            "=" * 60,
            "IMPORT RUN SUMMARY",
            "=" * 60,
            f"Run ID: {summary['id']}",
            f"Profile: {summary['profile']}",
            "",
            "Counts:",
            f"  Total Rows: {summary['total_rows']}",
            f"  Succeeded: {summary['succeeded_count']}",
            f"  Failed: {summary['failed_count']}",
            f"  Needs Attention: {summary['needs_attention_count']}",
            f"  Skipped: {summary['skipped_count']}",
            f"  Errors: {summary['error_count']}",
            "",
            f"Started At: {summary['started_at']}",
            f"Completed At: {summary['completed_at'] or 'N/A'}",
        ]

        if summary["aborted"]:
            lines.extend(["", "Run was stopped before the last row."])

        if self.summary.errors:
            lines.extend(["", "ROW ERRORS", "-" * 40])
            for error in self.summary.errors:
                lines.append(f"  Row {error.row_index}: {error.message}")

        lines.append("=" * 60)

        return "\n".join(lines)
