"""Test orchestrator for running every scenario against every enabled target."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from role_test_runner.config import HarnessConfig
from role_test_runner.models.definition import TestScenario, TestTarget
from role_test_runner.models.result import Failed, RunSummary, TestExecutionReport
from role_test_runner.recorder import ResultRecorder, RunAccumulator

log = logging.getLogger(__name__)


class Executor(Protocol):
    """Anything able to execute one (scenario, target) pair."""

    async def execute(
        self, run_id: str, scenario: TestScenario, target: TestTarget
    ) -> TestExecutionReport:
        """Execute and report."""
        ...


def new_run_id(prefix: str = "test_run") -> str:
    """Timestamp-derived run identifier (``test_run_20240101_120000``)."""
    return f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"


def discover_scenarios(config: HarnessConfig) -> Sequence[TestScenario]:
    """Scenarios whose playbooks exist on disk.

    Declared scenarios keep their declared order; playbooks present but not
    declared are appended in name order.
    """
    scenarios_dir = config.scenarios_path
    discovered: list[TestScenario] = []
    for scenario in config.scenarios:
        if (scenarios_dir / scenario.playbook).is_file():
            discovered.append(scenario)
        else:
            log.warning(
                "Scenario playbook not found, skipping: %s",
                scenarios_dir / scenario.playbook,
            )

    declared = {s.playbook for s in config.scenarios}
    if scenarios_dir.is_dir():
        for path in sorted(scenarios_dir.glob("*.yml")):
            if path.name in declared:
                continue
            scenario = TestScenario.from_playbook(path.name)
            if any(s.id == scenario.id for s in discovered):
                log.warning(
                    "Scenario id %s already in use, skipping: %s", scenario.id, path
                )
                continue
            discovered.append(scenario)

    return discovered


def select_scenarios(
    scenarios: Sequence[TestScenario], selector: str | None
) -> Sequence[TestScenario]:
    """Narrow the scenarios down to the one designated by ``selector``.

    Raises:
        ValueError: If no scenario matches the selector

    """
    if not selector:
        return list(scenarios)

    for scenario in scenarios:
        if scenario.matches(selector):
            return [scenario]

    available = ", ".join(s.number or s.id for s in scenarios)
    raise ValueError(
        f"Unknown test scenario: {selector}. Available scenarios: {available}"
    )


def select_targets(
    config: HarnessConfig, *, only: str | None = None
) -> tuple[Sequence[TestTarget], Mapping[str, bool]]:
    """Targets to run against, in declared order, and which ones are enabled."""
    if only is not None:
        config.target(only)
    enabled = {t.name: only is None or t.name == only for t in config.targets}
    return [t for t in config.targets if enabled[t.name]], enabled


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Runs scenario x target pairs one at a time and records each outcome."""

    __test__ = False

    executor: Executor
    recorder: ResultRecorder

    async def run_tests(
        self,
        run_id: str,
        scenarios: Sequence[TestScenario],
        targets: Sequence[TestTarget],
        targets_enabled: Mapping[str, bool] | None = None,
    ) -> RunSummary:
        """Run every scenario against every target and summarize the run.

        Targets are processed in the given order and, for each target,
        scenarios in the given order. A failing pair never stops the loop.

        Args:
            run_id: Identifier correlating all artifacts of the run
            scenarios: Scenarios in execution order
            targets: Enabled targets in execution order
            targets_enabled: Target name to enabled flag, for the summary

        Returns:
            The run summary, also written to the reports directory

        """
        accumulator = RunAccumulator(run_id=run_id)
        if targets_enabled is None:
            targets_enabled = {t.name: True for t in targets}

        for target in targets:
            for scenario in scenarios:
                log.info("=" * 80)
                log.info("Running %s on %s", scenario.name, target.name)
                log.info("=" * 80)

                report = await self._execute(run_id, scenario, target)
                accumulator.add(report)
                self.recorder.record(report)

                if report.passed:
                    log.info(
                        "%s completed successfully (%.0f seconds)",
                        scenario.name,
                        report.duration_seconds,
                    )
                else:
                    log.error(
                        "%s failed (%.0f seconds)", scenario.name, report.duration_seconds
                    )
                    log.info("Check log file for details: %s", report.log_file)

        log.info("Test execution completed")
        return self.recorder.summarize(run_id, accumulator.reports, targets_enabled)

    async def _execute(
        self, run_id: str, scenario: TestScenario, target: TestTarget
    ) -> TestExecutionReport:
        """Execute a pair, turning unexpected exceptions into a failed report."""
        start_time = datetime.now(timezone.utc)
        try:
            return await self.executor.execute(run_id, scenario, target)
        except Exception as e:
            log.error(
                "Test execution failed: scenario=%s target=%s: %s",
                scenario.id,
                target.name,
                e,
                exc_info=e,
            )
            log_path = self.recorder.store.log_path(run_id, target.name, scenario.id)
            return TestExecutionReport.from_outcome(
                run_id=run_id,
                scenario=scenario,
                target=target,
                outcome=Failed(exit_code=None, log_path=log_path, reason="error"),
                start_time=start_time,
                end_time=datetime.now(timezone.utc),
            )
