"""Run one playbook invocation per (scenario, target) pair."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath

from role_test_runner.config import HarnessConfig
from role_test_runner.docker import DockerCli, stream_command
from role_test_runner.models.definition import TestScenario, TestTarget
from role_test_runner.models.result import (
    Failed,
    Outcome,
    Passed,
    TestExecutionReport,
)
from role_test_runner.probes import SshProbe
from role_test_runner.storage import ReportStore

log = logging.getLogger(__name__)

# Paths as seen from inside the runner container, relative to its workdir.
CONTAINER_INVENTORIES_DIR = PurePosixPath("tests/inventories")
CONTAINER_SCENARIOS_DIR = PurePosixPath("tests/scenarios")


@dataclass(frozen=True, kw_only=True)
class TestExecutor:
    """Executes a scenario against a target and classifies the outcome."""

    __test__ = False

    config: HarnessConfig
    docker: DockerCli
    store: ReportStore
    verbose: bool = False

    async def execute(
        self, run_id: str, scenario: TestScenario, target: TestTarget
    ) -> TestExecutionReport:
        """Run a scenario against a target.

        Args:
            run_id: Identifier correlating all artifacts of the run
            scenario: Scenario to apply
            target: Target to apply it against

        Returns:
            The execution report; failures are reported, never raised

        """
        log_path = self.store.log_path(run_id, target.name, scenario.id)
        log.info("Test target: %s (%s)", target.name, target.host)
        log.info("Inventory: %s", target.inventory)
        log.info("Scenario: %s", scenario.playbook)
        log.info("Log file: %s", log_path)

        probe = SshProbe(
            docker=self.docker, runner=self.config.runner_container, host=target.host
        )
        log.info("Waiting for SSH connectivity to %s...", target.host)
        try:
            await probe.wait_until_ready(
                timeout=self.config.connectivity_timeout,
                poll_interval=self.config.connectivity_poll_interval,
            )
        except TimeoutError as e:
            log.error("Failed to establish SSH connectivity to %s", target.host)
            now = datetime.now(timezone.utc)
            self.store.ensure()
            log_path.write_text(f"{e}\n", encoding="utf-8")
            return TestExecutionReport.from_outcome(
                run_id=run_id,
                scenario=scenario,
                target=target,
                outcome=Failed(exit_code=None, log_path=log_path, reason="connectivity"),
                start_time=now,
                end_time=now,
            )
        log.info("SSH connectivity to %s established", target.host)

        start_time = datetime.now(timezone.utc)
        exit_code = await stream_command(
            *self.playbook_args(run_id, scenario, target),
            log_path=log_path,
            echo=self.verbose,
        )
        end_time = datetime.now(timezone.utc)

        outcome: Outcome
        if exit_code == 0:
            outcome = Passed(log_path=log_path)
        else:
            outcome = Failed(exit_code=exit_code, log_path=log_path, reason="execution")

        return TestExecutionReport.from_outcome(
            run_id=run_id,
            scenario=scenario,
            target=target,
            outcome=outcome,
            start_time=start_time,
            end_time=end_time,
        )

    def playbook_args(
        self, run_id: str, scenario: TestScenario, target: TestTarget
    ) -> tuple[str, ...]:
        """Command line running the scenario playbook from the runner container."""
        args = [
            "ansible-playbook",
            "-i",
            str(CONTAINER_INVENTORIES_DIR / target.inventory),
            str(CONTAINER_SCENARIOS_DIR / scenario.playbook),
            "--extra-vars",
            f"test_run_id={run_id}",
        ]
        if self.verbose:
            args.append("-v")
        return tuple(self.docker.exec_args(self.config.runner_container, *args))
