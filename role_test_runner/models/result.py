"""Models for test execution outcomes and the records persisted for them."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, TypeAlias

from pydantic import Field

from role_test_runner.models.base import Model
from role_test_runner.models.definition import TestScenario, TestTarget

FailureReason: TypeAlias = Literal["connectivity", "execution", "error"]


@dataclass(frozen=True, kw_only=True)
class Passed:
    """The playbook ran and exited with status zero."""

    log_path: Path


@dataclass(frozen=True, kw_only=True)
class Failed:
    """The test did not pass.

    ``exit_code`` is None when no playbook process ran (the target was
    unreachable, or the executor itself raised).
    """

    exit_code: int | None
    log_path: Path
    reason: FailureReason


Outcome: TypeAlias = Passed | Failed


class TestExecutionReport(Model):
    """Write-once record of one (scenario, target) execution."""

    __test__ = False

    test_run_id: str
    scenario: str
    scenario_name: str
    target: str
    target_host: str
    inventory: str
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    result: Literal["PASS", "FAIL"]
    exit_code: int | None = None
    failure_reason: FailureReason | None = None
    log_file: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_outcome(
        cls,
        *,
        run_id: str,
        scenario: TestScenario,
        target: TestTarget,
        outcome: Outcome,
        start_time: datetime,
        end_time: datetime,
    ) -> "TestExecutionReport":
        """Build the report for a classified outcome."""
        match outcome:
            case Passed(log_path=log_path):
                result, exit_code, reason = "PASS", 0, None
            case Failed(exit_code=exit_code, log_path=log_path, reason=reason):
                result = "FAIL"

        return cls(
            test_run_id=run_id,
            scenario=scenario.id,
            scenario_name=scenario.name,
            target=target.name,
            target_host=target.host,
            inventory=target.inventory,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=round((end_time - start_time).total_seconds(), 3),
            result=result,
            exit_code=exit_code,
            failure_reason=reason,
            log_file=str(log_path),
        )

    @property
    def passed(self) -> bool:
        """Whether this execution passed."""
        return self.result == "PASS"

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity of the record within the report directory."""
        return (self.test_run_id, self.target, self.scenario)


class RunSummary(Model):
    """Aggregate of all execution reports of one run."""

    test_run_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_tests: int
    passed_tests: int
    failed_tests: int
    success_rate: str
    targets_enabled: Mapping[str, bool] = Field(default_factory=dict)
    reports_directory: str = ""
