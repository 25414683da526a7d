"""Persist execution reports and run summaries."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from pathlib import Path

from role_test_runner.models.result import RunSummary, TestExecutionReport
from role_test_runner.storage import ReportStore

log = logging.getLogger(__name__)


def success_rate(passed: int, total: int) -> str:
    """Percentage of passed tests, truncated to two decimals (``"66.66%"``)."""
    if total <= 0:
        return "0.00%"
    rate = (Decimal(passed) * 100 / Decimal(total)).quantize(
        Decimal("0.01"), rounding=ROUND_DOWN
    )
    return f"{rate}%"


@dataclass(kw_only=True)
class RunAccumulator:
    """Collects the reports of one run as they complete."""

    run_id: str
    reports: list[TestExecutionReport] = field(default_factory=list)

    def add(self, report: TestExecutionReport) -> None:
        """Add a report.

        Raises:
            ValueError: If the report belongs to another run or its
                (target, scenario) pair was already recorded

        """
        if report.test_run_id != self.run_id:
            raise ValueError(
                f"Report for run '{report.test_run_id}' added to run '{self.run_id}'"
            )
        pair = (report.target, report.scenario)
        if any((r.target, r.scenario) == pair for r in self.reports):
            raise ValueError(f"Duplicate report for target={pair[0]} scenario={pair[1]}")
        self.reports.append(report)

    @property
    def passed(self) -> int:
        """Number of passed tests so far."""
        return sum(1 for r in self.reports if r.passed)

    @property
    def failed(self) -> int:
        """Number of failed tests so far."""
        return len(self.reports) - self.passed

    def summary(
        self,
        targets_enabled: Mapping[str, bool],
        reports_directory: Path | None = None,
    ) -> RunSummary:
        """Freeze the accumulated counts into a summary."""
        total = len(self.reports)
        return RunSummary(
            test_run_id=self.run_id,
            total_tests=total,
            passed_tests=self.passed,
            failed_tests=self.failed,
            success_rate=success_rate(self.passed, total),
            targets_enabled=dict(targets_enabled),
            reports_directory=str(reports_directory or ""),
        )


@dataclass(frozen=True, kw_only=True)
class ResultRecorder:
    """Writes the records of a run; never updates or deletes them."""

    store: ReportStore

    def record(self, report: TestExecutionReport) -> Path:
        """Persist one execution report."""
        path = self.store.write_report(report)
        log.debug("Report written: %s", path)
        return path

    def summarize(
        self,
        run_id: str,
        reports: Sequence[TestExecutionReport],
        targets_enabled: Mapping[str, bool],
    ) -> RunSummary:
        """Aggregate the reports of a run and persist the summary."""
        accumulator = RunAccumulator(run_id=run_id)
        for report in reports:
            accumulator.add(report)

        summary = accumulator.summary(targets_enabled, self.store.reports_dir)
        path = self.store.write_summary(summary)
        log.info("Summary report: %s", path)
        return summary
