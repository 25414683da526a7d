"""Filesystem layout of the reports directory."""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from role_test_runner.models.result import RunSummary, TestExecutionReport

log = logging.getLogger(__name__)

SUMMARY_SUFFIX = "_summary.json"
REPORT_SUFFIX = "_report.json"
COVERAGE_SUBDIR = "coverage"


class NoResultsError(Exception):
    """Raised when there are no recorded results to analyze."""


@dataclass(frozen=True, kw_only=True)
class ReportStore:
    """All reads and writes of the reports directory go through here.

    Layout, per run::

        <run_id>_<target>_<scenario>.log
        <run_id>_<target>_<scenario>_report.json
        <run_id>_summary.json
    """

    reports_dir: Path

    @property
    def coverage_dir(self) -> Path:
        """Directory holding coverage report artifacts."""
        return self.reports_dir / COVERAGE_SUBDIR

    def ensure(self) -> Path:
        """Create the reports directory if needed."""
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        return self.reports_dir

    def log_path(self, run_id: str, target: str, scenario: str) -> Path:
        """Captured output of one execution."""
        return self.reports_dir / f"{run_id}_{target}_{scenario}.log"

    def report_path(self, run_id: str, target: str, scenario: str) -> Path:
        """Structured record of one execution."""
        return self.reports_dir / f"{run_id}_{target}_{scenario}{REPORT_SUFFIX}"

    def summary_path(self, run_id: str) -> Path:
        """Summary record of one run."""
        return self.reports_dir / f"{run_id}{SUMMARY_SUFFIX}"

    def write_report(self, report: TestExecutionReport) -> Path:
        """Persist an execution report."""
        path = self.report_path(*report.key)
        self._write_json(path, report.model_dump(mode="json"))
        return path

    def write_summary(self, summary: RunSummary) -> Path:
        """Persist a run summary."""
        path = self.summary_path(summary.test_run_id)
        self._write_json(path, summary.model_dump(mode="json"))
        return path

    def summary_files(self) -> Sequence[Path]:
        """All summary files, most recently modified first."""
        if not self.reports_dir.is_dir():
            return []
        files = list(self.reports_dir.glob(f"*{SUMMARY_SUFFIX}"))
        return sorted(files, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    def latest_run_id(self) -> str | None:
        """Run id of the most recently written summary."""
        files = self.summary_files()
        if not files:
            return None
        return files[0].name.removesuffix(SUMMARY_SUFFIX)

    def load_summary(self, run_id: str) -> RunSummary:
        """Load the summary of a run.

        Raises:
            NoResultsError: If the run has no summary

        """
        path = self.summary_path(run_id)
        if not path.is_file():
            raise NoResultsError(f"Summary file not found: {path}")
        return RunSummary.model_validate_json(path.read_text(encoding="utf-8"))

    def load_summaries(self) -> Sequence[RunSummary]:
        """All readable summaries, most recent first."""
        summaries: list[RunSummary] = []
        for path in self.summary_files():
            try:
                summaries.append(
                    RunSummary.model_validate_json(path.read_text(encoding="utf-8"))
                )
            except ValidationError as e:
                log.warning("Skipping unreadable summary %s: %s", path, e)
        return summaries

    def load_reports(self, run_id: str) -> Sequence[TestExecutionReport]:
        """Execution reports of a run, ordered by file name."""
        if not self.reports_dir.is_dir():
            return []
        reports: list[TestExecutionReport] = []
        for path in sorted(self.reports_dir.glob(f"{run_id}_*{REPORT_SUFFIX}")):
            try:
                report = TestExecutionReport.model_validate_json(
                    path.read_text(encoding="utf-8")
                )
            except ValidationError as e:
                log.warning("Skipping unreadable report %s: %s", path, e)
                continue
            if report.test_run_id == run_id:
                reports.append(report)
        return reports

    def _write_json(self, path: Path, data: object) -> None:
        self.ensure()
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
