"""Present recorded results and help diagnose failures."""

import csv
import io
import json
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, TypeAlias

from role_test_runner.console import (
    RESULT_COLORS,
    STATUS_SYMBOLS,
    color_result,
    colorize,
)
from role_test_runner.models.result import TestExecutionReport
from role_test_runner.storage import NoResultsError, ReportStore

OutputFormat: TypeAlias = Literal["table", "json", "csv"]

OUTPUT_FORMATS: Sequence[str] = ("table", "json", "csv")

CSV_COLUMNS = (
    "scenario",
    "target",
    "result",
    "duration_seconds",
    "start_time",
    "end_time",
    "log_file",
)

RULE = "=" * 34


def format_duration(seconds: float) -> str:
    """Human-readable duration: ``H:MM:SS``, ``M:SS`` or ``Ns``."""
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    if minutes:
        return f"{minutes}:{secs:02d}"
    return f"{secs}s"


def header(title: str) -> str:
    """Section header used by the table views."""
    return f"\n{RULE}\n{title}\n{RULE}\n"


@dataclass(frozen=True, kw_only=True)
class ResultAnalyzer:
    """Read-only views over the reports directory."""

    store: ReportStore
    color: bool = False

    def latest_run(self, run_id: str | None = None) -> str:
        """Resolve the run to analyze, defaulting to the latest one.

        Raises:
            NoResultsError: If no run has been recorded

        """
        if not self.store.reports_dir.is_dir():
            raise NoResultsError(
                f"Reports directory not found: {self.store.reports_dir}. "
                "Run tests first."
            )
        if run_id:
            return run_id
        if (latest := self.store.latest_run_id()) is None:
            raise NoResultsError(f"No test results found in {self.store.reports_dir}")
        return latest

    def render(self, run_id: str, fmt: OutputFormat = "table") -> str:
        """Render a run in the requested format.

        Raises:
            NoResultsError: If the run has no summary
            ValueError: If the format is unknown

        """
        match fmt:
            case "table":
                return self._render_table(run_id)
            case "json":
                return self._render_json(run_id)
            case "csv":
                return self._render_csv(run_id)
        raise ValueError(
            f"Invalid output format: {fmt}. Valid formats: {', '.join(OUTPUT_FORMATS)}"
        )

    def failures(self, run_id: str) -> Sequence[TestExecutionReport]:
        """Failed executions of a run."""
        return [r for r in self.store.load_reports(run_id) if not r.passed]

    def failure_details(self, run_id: str) -> str:
        """Scenario, target, duration and log path of each failure."""
        failures = self.failures(run_id)
        if not failures:
            return ""

        lines = [header("Failed Test Details")]
        for report in failures:
            lines.append(self._failure_title(report))
            lines.append(f"   Duration: {format_duration(report.duration_seconds)}")
            if report.exit_code is not None:
                lines.append(f"   Exit code: {report.exit_code}")
            if report.failure_reason:
                lines.append(f"   Reason: {report.failure_reason}")
            lines.append(f"   Log file: {report.log_file}")
            lines.append("")
        return "\n".join(lines)

    def log_excerpt(self, run_id: str, lines: int = 20) -> str:
        """Last lines of the captured log of each failure."""
        failures = self.failures(run_id)
        if not failures:
            return ""

        out = [header("Failed Test Log Excerpts")]
        for report in failures:
            out.append(self._failure_title(report))
            out.append("")
            log_path = Path(report.log_file)
            if log_path.is_file():
                out.append(f"Last {lines} lines of log:")
                out.append("-" * 22)
                with log_path.open(encoding="utf-8", errors="replace") as f:
                    tail = deque(f, maxlen=lines)
                out.extend(f"    {line.rstrip()}" for line in tail)
            else:
                out.append(f"    Log file not found: {log_path}")
            out.append("")
        return "\n".join(out)

    def all_runs(self) -> str:
        """Fixed-width table of every recorded run, most recent first.

        Raises:
            NoResultsError: If no run has been recorded

        """
        summaries = self.store.load_summaries()
        if not summaries:
            raise NoResultsError(f"No test runs found in {self.store.reports_dir}")

        row = "{:<28} {:<20} {:<6} {:<6} {:<6} {:<10}"
        lines = [
            header("All Test Runs Summary"),
            row.format("Run ID", "Timestamp", "Total", "Pass", "Fail", "Success"),
            row.format("---", "---", "---", "---", "---", "---"),
        ]
        for summary in summaries:
            lines.append(
                row.format(
                    summary.test_run_id,
                    summary.timestamp.date().isoformat(),
                    summary.total_tests,
                    summary.passed_tests,
                    summary.failed_tests,
                    summary.success_rate,
                )
            )
        return "\n".join(lines) + "\n"

    def _failure_title(self, report: TestExecutionReport) -> str:
        title = f"{STATUS_SYMBOLS['FAIL']} {report.scenario} on {report.target}"
        return colorize(title, RESULT_COLORS["FAIL"], enabled=self.color)

    def _render_table(self, run_id: str) -> str:
        summary = self.store.load_summary(run_id)
        lines = [
            header(f"Test Run Summary: {run_id}"),
            f"Timestamp:     {summary.timestamp.isoformat()}",
            f"Total Tests:   {summary.total_tests}",
            f"Passed:        {summary.passed_tests}",
            f"Failed:        {summary.failed_tests}",
            f"Success Rate:  {summary.success_rate}",
            header("Individual Test Results"),
        ]

        # Padding is computed on the plain result so color codes don't skew columns.
        row = "{:<35} {:<15} {} {:<10} {}"
        lines.append(row.format("Test", "Target", f"{'Result':<10}", "Duration", "Log"))
        lines.append(row.format("---", "---", f"{'---':<10}", "---", "---"))
        for report in self.store.load_reports(run_id):
            result = color_result(report.result, enabled=self.color)
            padding = " " * (10 - len(report.result))
            lines.append(
                row.format(
                    report.scenario,
                    report.target,
                    f"{result}{padding}",
                    format_duration(report.duration_seconds),
                    Path(report.log_file).name,
                )
            )
        return "\n".join(lines) + "\n"

    def _render_json(self, run_id: str) -> str:
        summary = self.store.load_summary(run_id)
        reports = self.store.load_reports(run_id)
        return json.dumps(
            {
                "summary": summary.model_dump(mode="json"),
                "individual_results": [r.model_dump(mode="json") for r in reports],
            },
            indent=2,
        )

    def _render_csv(self, run_id: str) -> str:
        self.store.load_summary(run_id)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for report in self.store.load_reports(run_id):
            data = report.model_dump(mode="json")
            writer.writerow([data[column] for column in CSV_COLUMNS])
        return buffer.getvalue()
