"""Tests for the result analyzer."""

import csv
import io
import json
import os
from pathlib import Path

import pytest

from role_test_runner.analyzer import (
    CSV_COLUMNS,
    ResultAnalyzer,
    format_duration,
)
from role_test_runner.recorder import ResultRecorder
from role_test_runner.storage import NoResultsError, ReportStore
from role_test_runner.testing.factories import TestExecutionReportFactory


@pytest.fixture
def store(tmp_path: Path) -> ReportStore:
    """Create a report store in a temporary directory."""
    return ReportStore(reports_dir=tmp_path / "reports")


@pytest.fixture
def analyzer(store: ReportStore) -> ResultAnalyzer:
    """Create an analyzer without color."""
    return ResultAnalyzer(store=store)


def record_run(store: ReportStore, run_id: str, results: list[str]) -> None:
    """Record one report per result on ubuntu plus the run summary."""
    recorder = ResultRecorder(store=store)
    reports = []
    for index, result in enumerate(results, start=1):
        scenario = f"{index:02d}-scenario"
        failed = result == "FAIL"
        reports.append(
            TestExecutionReportFactory.build(
                test_run_id=run_id,
                target="ubuntu",
                scenario=scenario,
                result=result,
                exit_code=2 if failed else 0,
                failure_reason="execution" if failed else None,
                duration_seconds=75.0,
                log_file=str(store.log_path(run_id, "ubuntu", scenario)),
            )
        )
    for report in reports:
        recorder.record(report)
    recorder.summarize(run_id, reports, {"ubuntu": True, "centos": False})


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "0s"), (42.9, "42s"), (75, "1:15"), (3600, "1:00:00"), (3725, "1:02:05")],
)
def test_format_duration(seconds: float, expected: str) -> None:
    """Durations are rendered compactly."""
    assert format_duration(seconds) == expected


class TestLatestRun:
    """Tests for ResultAnalyzer.latest_run."""

    __test__ = True

    def test_missing_reports_directory(self, analyzer: ResultAnalyzer) -> None:
        """No reports directory means no results."""
        with pytest.raises(NoResultsError, match="Reports directory not found"):
            analyzer.latest_run()

    def test_no_runs(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """An empty reports directory means no results."""
        store.ensure()

        with pytest.raises(NoResultsError, match="No test results found"):
            analyzer.latest_run()

    def test_picks_most_recent(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Defaults to the most recently written run."""
        record_run(store, "run_old", ["PASS"])
        record_run(store, "run_new", ["PASS"])
        os.utime(store.summary_path("run_old"), (1_000_000, 1_000_000))
        os.utime(store.summary_path("run_new"), (2_000_000, 2_000_000))

        assert analyzer.latest_run() == "run_new"

    def test_explicit_run(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """An explicit run id is used as is."""
        record_run(store, "run1", ["PASS"])

        assert analyzer.latest_run("run0") == "run0"


class TestRender:
    """Tests for ResultAnalyzer.render."""

    __test__ = True

    def test_table(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Table shows the summary and one row per test."""
        record_run(store, "run1", ["PASS", "FAIL"])

        output = analyzer.render("run1", "table")

        assert "Test Run Summary: run1" in output
        assert "Total Tests:   2" in output
        assert "Success Rate:  50.00%" in output
        assert "01-scenario" in output
        assert "02-scenario" in output
        assert "1:15" in output
        assert "run1_ubuntu_01-scenario.log" in output
        assert "\x1b[" not in output

    def test_table_with_color(self, store: ReportStore) -> None:
        """Colored tables wrap results in ANSI codes."""
        record_run(store, "run1", ["PASS"])

        output = ResultAnalyzer(store=store, color=True).render("run1", "table")

        assert "\x1b[32mPASS" in output

    def test_json_round_trip(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """JSON output reproduces the recorded summary counts."""
        record_run(store, "run1", ["PASS", "FAIL"])
        recorded = store.load_summary("run1")

        data = json.loads(analyzer.render("run1", "json"))

        assert data["summary"]["total_tests"] == recorded.total_tests
        assert data["summary"]["passed_tests"] == recorded.passed_tests
        assert data["summary"]["failed_tests"] == recorded.failed_tests
        assert data["summary"]["success_rate"] == recorded.success_rate
        assert [r["result"] for r in data["individual_results"]] == ["PASS", "FAIL"]

    def test_csv_rows(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """CSV output is a header plus one row per report in fixed column order."""
        record_run(store, "run1", ["PASS", "FAIL", "PASS"])

        output = analyzer.render("run1", "csv")

        rows = list(csv.reader(io.StringIO(output)))
        assert rows[0] == list(CSV_COLUMNS)
        assert len(rows) == 4
        assert [row[0] for row in rows[1:]] == [
            "01-scenario",
            "02-scenario",
            "03-scenario",
        ]
        assert [row[2] for row in rows[1:]] == ["PASS", "FAIL", "PASS"]
        assert output.splitlines()[0] == ",".join(CSV_COLUMNS)

    def test_unknown_run(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Rendering a run without summary raises NoResultsError."""
        store.ensure()

        for fmt in ("table", "json", "csv"):
            with pytest.raises(NoResultsError):
                analyzer.render("ghost", fmt)  # type: ignore[arg-type]

    def test_unknown_format(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Rejects unknown formats."""
        record_run(store, "run1", ["PASS"])

        with pytest.raises(ValueError, match="Invalid output format: xml"):
            analyzer.render("run1", "xml")  # type: ignore[arg-type]


class TestFailures:
    """Tests for failure details and log excerpts."""

    __test__ = True

    def test_details(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Lists each failed test with its log file."""
        record_run(store, "run1", ["PASS", "FAIL"])

        details = analyzer.failure_details("run1")

        assert "02-scenario on ubuntu" in details
        assert "01-scenario" not in details
        assert "Exit code: 2" in details
        assert "run1_ubuntu_02-scenario.log" in details

    def test_no_failures(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Nothing to show when every test passed."""
        record_run(store, "run1", ["PASS"])

        assert analyzer.failure_details("run1") == ""
        assert analyzer.log_excerpt("run1") == ""

    def test_log_excerpt_tail(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Shows the last lines of each failed test's log."""
        record_run(store, "run1", ["FAIL"])
        store.log_path("run1", "ubuntu", "01-scenario").write_text(
            "".join(f"line {n}\n" for n in range(1, 31))
        )

        excerpt = analyzer.log_excerpt("run1", lines=5)

        assert "Last 5 lines of log:" in excerpt
        assert "    line 30" in excerpt
        assert "    line 26" in excerpt
        assert "line 25\n" not in excerpt

    def test_log_excerpt_missing_file(
        self, analyzer: ResultAnalyzer, store: ReportStore
    ) -> None:
        """Reports a missing log file instead of failing."""
        record_run(store, "run1", ["FAIL"])

        assert "Log file not found" in analyzer.log_excerpt("run1")


class TestAllRuns:
    """Tests for ResultAnalyzer.all_runs."""

    __test__ = True

    def test_lists_runs(self, analyzer: ResultAnalyzer, store: ReportStore) -> None:
        """Lists every run with its counts."""
        record_run(store, "run_a", ["PASS", "FAIL"])
        record_run(store, "run_b", ["PASS"])

        output = analyzer.all_runs()

        assert "All Test Runs Summary" in output
        assert "run_a" in output
        assert "run_b" in output
        assert "50.00%" in output
        assert "100.00%" in output

    def test_single_run_ids_stay_aligned(
        self, analyzer: ResultAnalyzer, store: ReportStore
    ) -> None:
        """Long single-test run ids do not push the timestamp column."""
        record_run(store, "single_test_20240501_120000", ["PASS"])
        record_run(store, "test_run_20240501_120000", ["PASS"])

        lines = analyzer.all_runs().splitlines()
        header_line = next(line for line in lines if line.startswith("Run ID"))
        column = header_line.index("Timestamp")
        rows = [line for line in lines if "_20240501_120000" in line]

        assert len(rows) == 2
        for row in rows:
            assert row[column - 1] == " "
            assert row[column:].split()[0].count("-") == 2

    def test_no_runs(self, analyzer: ResultAnalyzer) -> None:
        """Raises NoResultsError when nothing was recorded."""
        with pytest.raises(NoResultsError, match="No test runs found"):
            analyzer.all_runs()
