"""Tests for import summary reports."""

import csv
import io
import json
from datetime import datetime

from donation_ledger.importing.models import ImportSummary, RowError, RowOutcome
from donation_ledger.importing.report import ImportReportGenerator


def make_summary(**overrides) -> ImportSummary:
    summary = ImportSummary(
        id="run-1",
        profile="stripe_export",
        started_at=datetime(2025, 3, 1, 9, 0),
        completed_at=datetime(2025, 3, 1, 9, 1),
        total_rows=4,
        errors=[RowError(row_index=3, message="Row 3: row: bad", raw_row={"Amount": "x"})],
        **overrides,
    )
    summary.record(RowOutcome.SUCCEEDED)
    summary.record(RowOutcome.NEEDS_ATTENTION)
    summary.record(RowOutcome.SKIPPED)
    return summary


class TestImportSummary:
    """Tests for ImportSummary counters."""

    def test_record_increments_matching_counter(self):
        summary = make_summary()

        assert summary.succeeded_count == 1
        assert summary.needs_attention_count == 1
        assert summary.skipped_count == 1
        assert summary.failed_count == 0
        assert summary.has_issues

    def test_clean_run_has_no_issues(self):
        summary = ImportSummary(id="run-2", profile="webhook")
        summary.record(RowOutcome.SUCCEEDED)

        assert not summary.has_issues


class TestImportReportGenerator:
    """Tests for ImportReportGenerator."""

    def test_to_json_with_errors(self):
        data = json.loads(ImportReportGenerator(make_summary()).to_json())

        assert data["id"] == "run-1"
        assert data["succeeded_count"] == 1
        assert data["error_count"] == 1
        assert data["errors"][0]["row_index"] == 3
        assert data["errors"][0]["raw_row"] == {"Amount": "x"}
        assert data["completed_at"] == "2025-03-01T09:01:00"

    def test_to_json_summary_only(self):
        data = json.loads(ImportReportGenerator(make_summary()).to_json(include_errors=False))

        assert "errors" not in data
        assert data["error_count"] == 1

    def test_to_csv(self):
        rows = list(csv.reader(io.StringIO(ImportReportGenerator(make_summary()).to_csv())))

        assert rows[0] == ["row_index", "message", "raw_row"]
        assert rows[1][0] == "3"
        assert json.loads(rows[1][2]) == {"Amount": "x"}

    def test_to_summary_text(self):
        text = ImportReportGenerator(make_summary(aborted=True)).to_summary_text()

        assert "IMPORT RUN SUMMARY" in text
        assert "Run ID: run-1" in text
        assert "Needs Attention: 1" in text
        assert "Run was stopped before the last row." in text
        assert "Row 3: Row 3: row: bad" in text
