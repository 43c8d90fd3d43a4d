"""Tests for duration accounting and the end-of-run summary."""

import pytest

from yujin.ledger import DurationLedger, format_duration, summary_lines


class TestFormatDuration:
    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00:00"),
        (59.4, "00:00:59"),
        (59.6, "00:01:00"),
        (3661.4, "01:01:01"),
        (-5, "00:00:00"),
        (100 * 3600, "100:00:00"),
    ])
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestDurationLedger:
    def test_empty(self):
        report = DurationLedger().report()
        assert report.measured_count == 0
        assert report.original_total == 0
        assert report.saved_percent is None

    def test_totals(self):
        ledger = DurationLedger()
        ledger.record_original("a", 100.0)
        ledger.record_condensed("a", 50.0)
        ledger.record_original("b", 200.0)
        ledger.record_condensed("b", 100.0)

        report = ledger.report()
        assert report.original_total == 300.0
        assert report.condensed_total == 150.0
        assert report.saved_total == 150.0
        assert report.saved_percent == pytest.approx(50.0)
        assert report.measured_count == 2

    def test_partial_measurements_excluded(self):
        ledger = DurationLedger()
        ledger.record_original("a", 100.0)
        ledger.record_condensed("a", 80.0)
        ledger.record_original("only-original", 500.0)
        ledger.record_condensed("only-condensed", 40.0)

        report = ledger.report()
        assert report.original_total == 100.0
        assert report.condensed_total == 80.0
        assert report.measured_count == 1

    def test_tiny_original_has_no_percentage(self):
        ledger = DurationLedger()
        ledger.record_original("a", 0.0005)
        ledger.record_condensed("a", 0.0001)
        assert ledger.report().saved_percent is None

    def test_negative_saving(self):
        ledger = DurationLedger()
        ledger.record_original("a", 100.0)
        ledger.record_condensed("a", 125.0)
        report = ledger.report()
        assert report.saved_percent == pytest.approx(-25.0)
        assert format_duration(report.saved_total) == "00:00:00"


class TestSummaryLines:
    def test_dry_run(self):
        lines = summary_lines(None, 3, dry_run=True)
        assert "DRY RUN" in lines[0]
        assert "skipped" in lines[1]

    def test_nothing_processed(self):
        assert summary_lines(None, 0) == []

    def test_unmeasured(self):
        lines = summary_lines(DurationLedger().report(), 2)
        assert any("Could not calculate time savings" in line for line in lines)

    def test_report(self):
        ledger = DurationLedger()
        ledger.record_original("a", 100.0)
        ledger.record_condensed("a", 50.0)
        ledger.record_original("b", 200.0)
        ledger.record_condensed("b", 100.0)

        text = "\n".join(summary_lines(ledger.report(), 2))
        assert "00:05:00" in text
        assert "00:02:30" in text
        assert "for 2 successfully processed files" in text
        assert "50.00%" in text

    def test_too_short_for_percentage(self):
        ledger = DurationLedger()
        ledger.record_original("a", 0.0)
        ledger.record_condensed("a", 0.0)
        text = "\n".join(summary_lines(ledger.report(), 1))
        assert "N/A (Original duration too short)" in text
