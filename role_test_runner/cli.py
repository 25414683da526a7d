"""CLI entry point for the role end-to-end test harness."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from role_test_runner.analyzer import OUTPUT_FORMATS, ResultAnalyzer
from role_test_runner.cleanup import CleanupManager, CleanupPlan
from role_test_runner.config import HarnessConfig
from role_test_runner.config_loader import load_harness_config
from role_test_runner.console import STATUS_SYMBOLS, configure_logging
from role_test_runner.coverage import CoverageAnalyzer, verdict
from role_test_runner.docker import DockerCli, detect_compose_command
from role_test_runner.executor import TestExecutor
from role_test_runner.models.definition import TestScenario, TestTarget
from role_test_runner.models.result import RunSummary
from role_test_runner.orchestrator import (
    TestOrchestrator,
    discover_scenarios,
    new_run_id,
    select_scenarios,
    select_targets,
)
from role_test_runner.provisioner import EnvironmentFailure, EnvironmentProvisioner
from role_test_runner.recorder import ResultRecorder
from role_test_runner.storage import NoResultsError, ReportStore

log = logging.getLogger("role_test_runner")


def log_run_summary(log: logging.Logger, summary: RunSummary) -> None:
    """Log the totals of a finished run."""
    log.info("=" * 80)
    log.info("Test Summary:")
    log.info("=" * 80)
    log.info("Test Run ID: %s", summary.test_run_id)
    log.info("Total Tests: %d", summary.total_tests)
    log.info("%s Passed: %d", STATUS_SYMBOLS["PASS"], summary.passed_tests)
    if summary.failed_tests:
        log.error("Failed: %d", summary.failed_tests)
    else:
        log.info("Failed: %d", summary.failed_tests)
    log.info("Success Rate: %s", summary.success_rate)


def log_run_outcome(log: logging.Logger, summary: RunSummary, reports_dir: Path) -> int:
    """Log the final verdict of a run and return its exit code."""
    if summary.failed_tests == 0:
        log.info("%s All tests passed!", STATUS_SYMBOLS["PASS"])
        exit_code = 0
    else:
        log.error("Some tests failed. Check the reports for details.")
        exit_code = 1
    log.info("Reports available in: %s", reports_dir)
    return exit_code


async def create_docker(config: HarnessConfig, verbose: bool) -> DockerCli:
    """Docker CLI wrapper bound to the configured compose file."""
    return DockerCli(
        executable=config.docker_executable,
        compose_command=await detect_compose_command(config.docker_executable),
        compose_file=config.compose_path,
        project_dir=config.project_dir,
        verbose=verbose,
    )


async def execute_run(
    config: HarnessConfig,
    docker: DockerCli,
    run_id: str,
    scenarios: Sequence[TestScenario],
    targets: Sequence[TestTarget],
    targets_enabled: dict[str, bool],
    *,
    skip_build: bool,
    cleanup: bool,
    verbose: bool,
) -> int:
    """Provision the environment, run the tests and tear everything down."""
    store = ReportStore(reports_dir=config.reports_path)
    provisioner = EnvironmentProvisioner(config=config, docker=docker, store=store)

    await provisioner.check_prerequisites()
    await provisioner.build(skip=skip_build)
    try:
        await provisioner.start()

        orchestrator = TestOrchestrator(
            executor=TestExecutor(
                config=config, docker=docker, store=store, verbose=verbose
            ),
            recorder=ResultRecorder(store=store),
        )
        summary = await orchestrator.run_tests(
            run_id, scenarios, targets, targets_enabled
        )
    finally:
        if cleanup:
            await provisioner.stop()
        else:
            log.warning("Skipping cleanup (--no-cleanup specified)")

    log_run_summary(log, summary)
    return log_run_outcome(log, summary, store.reports_dir)


async def run_all(args: argparse.Namespace, config: HarnessConfig) -> int:
    """Run every selected scenario against every enabled target."""
    run_id = new_run_id()
    log.info("Starting test run: %s", run_id)

    only = "ubuntu" if args.ubuntu_only else "centos" if args.centos_only else None
    targets, targets_enabled = select_targets(config, only=only)
    scenarios = select_scenarios(discover_scenarios(config), args.test)
    if not scenarios:
        log.error("No test scenarios found in %s", config.scenarios_path)
        return 1

    docker = await create_docker(config, args.verbose)
    return await execute_run(
        config,
        docker,
        run_id,
        scenarios,
        targets,
        dict(targets_enabled),
        skip_build=args.skip_build,
        cleanup=not args.no_cleanup,
        verbose=args.verbose,
    )


async def run_single(args: argparse.Namespace, config: HarnessConfig) -> int:
    """Run one scenario file against one target."""
    target = config.target(args.target)
    if args.inventory:
        target = target.model_copy(update={"inventory": args.inventory})

    scenario_file = config.scenarios_path / args.scenario
    if not scenario_file.is_file():
        raise FileNotFoundError(f"Scenario file not found: {scenario_file}")
    inventory_file = config.inventories_path / target.inventory
    if not inventory_file.is_file():
        raise FileNotFoundError(f"Inventory file not found: {inventory_file}")

    scenario = next(
        (s for s in config.scenarios if s.playbook == args.scenario),
        TestScenario.from_playbook(args.scenario),
    )
    run_id = new_run_id("single_test")
    log.info("Starting single test run: %s", run_id)

    docker = await create_docker(config, args.verbose)
    return await execute_run(
        config,
        docker,
        run_id,
        [scenario],
        [target],
        {t.name: t.name == target.name for t in config.targets},
        skip_build=args.skip_build,
        cleanup=not args.no_cleanup,
        verbose=args.verbose,
    )


async def analyze(args: argparse.Namespace, config: HarnessConfig) -> int:
    """Print recorded results."""
    analyzer = ResultAnalyzer(
        store=ReportStore(reports_dir=config.reports_path),
        color=sys.stdout.isatty(),
    )

    if args.all_runs:
        print(analyzer.all_runs())
        return 0

    run_id = analyzer.latest_run(args.run_id)
    log.info("Analyzing test run: %s", run_id)
    print(analyzer.render(run_id, args.format))

    if args.details:
        details = analyzer.failure_details(run_id)
        if details:
            print(details)
        else:
            log.info("No failed tests found")

    if args.logs:
        excerpt = analyzer.log_excerpt(run_id)
        if excerpt:
            print(excerpt)
        else:
            log.info("No failed tests found")

    return 0


def confirm(plan: CleanupPlan) -> bool:
    """Ask the operator to confirm a cleanup plan."""
    print("The following actions will be performed:")
    for action in plan.actions():
        print(f"  • {action}")
    print()
    try:
        reply = input("Do you want to continue? (y/N): ")
    except EOFError:
        return False
    return reply.strip().lower() in {"y", "yes"}


async def cleanup(args: argparse.Namespace, config: HarnessConfig) -> int:
    """Remove test-run artifacts."""
    plan = CleanupPlan(
        remove_images=args.remove_images or args.all,
        remove_reports=args.remove_reports or args.all,
    )
    if not args.force and not confirm(plan):
        log.info("Cleanup cancelled")
        return 0

    docker = await create_docker(config, args.verbose)
    manager = CleanupManager(
        config=config, docker=docker, store=ReportStore(reports_dir=config.reports_path)
    )
    result = await manager.run(plan)
    if result.clean:
        log.info("%s Test environment has been cleaned up", STATUS_SYMBOLS["PASS"])
    else:
        log.warning("Cleanup finished, but some resources remain")
    return 0


async def coverage(args: argparse.Namespace, config: HarnessConfig) -> int:
    """Regenerate the static reference coverage reports."""
    analyzer = CoverageAnalyzer(project_dir=config.project_dir)
    log.info("Analyzing static reference coverage of %s", config.project_dir)
    matrix = analyzer.analyze()

    output_dir = ReportStore(reports_dir=config.reports_path).coverage_dir
    analyzer.write_reports(matrix, output_dir)

    features = matrix.feature_stats
    scenarios = matrix.scenario_stats
    log.info(
        "Feature Coverage: %s%% (%d/%d)",
        features.percentage,
        features.covered,
        features.total,
    )
    log.info(
        "Scenario Coverage: %s%% (%d/%d)",
        scenarios.percentage,
        scenarios.covered,
        scenarios.total,
    )
    level, message = verdict(matrix)
    log.log(level, message)
    if scenarios.complete:
        log.info("All test scenarios implemented!")
    else:
        log.error("Some test scenarios are missing")
    log.info("Reports generated in: %s", output_dir)
    return 0


COMMANDS = {
    "run": run_all,
    "run-single": run_single,
    "analyze": analyze,
    "cleanup": cleanup,
    "coverage": coverage,
}


async def run(args: argparse.Namespace) -> int:
    """Load the configuration, dispatch the command and map errors to exit codes."""
    try:
        config = await load_harness_config(args.project_dir.resolve(), args.config)
        return await COMMANDS[args.command](args, config)
    except (EnvironmentFailure, NoResultsError, FileNotFoundError, ValueError) as e:
        log.error("%s", e)
        return 1


def build_parser() -> argparse.ArgumentParser:
    """Command-line parser with one subcommand per harness operation."""
    parser = argparse.ArgumentParser(
        prog="role-tests",
        description="End-to-end test harness for the WordPress Enterprise role",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path.cwd(),
        help="Root of the role repository (default: current directory)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Harness YAML config (default: tests/harness.yaml if present)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run all test scenarios")
    only = run_parser.add_mutually_exclusive_group()
    only.add_argument("--ubuntu-only", action="store_true", help="Run Ubuntu tests only")
    only.add_argument("--centos-only", action="store_true", help="Run CentOS tests only")
    run_parser.add_argument(
        "--test", default=None, help="Run a specific scenario (e.g. 01 or 01-basic-installation)"
    )
    _add_environment_flags(run_parser)

    single = subparsers.add_parser("run-single", help="Run a single test scenario")
    single.add_argument("-t", "--target", required=True, help="Target (ubuntu or centos)")
    single.add_argument(
        "-s", "--scenario", required=True, help="Scenario file (e.g. 01-basic-installation.yml)"
    )
    single.add_argument(
        "-i",
        "--inventory",
        default=None,
        help="Custom inventory file (auto-detected from the target if omitted)",
    )
    _add_environment_flags(single)

    analyze_parser = subparsers.add_parser("analyze", help="Analyze recorded results")
    analyze_parser.add_argument(
        "-f", "--format", choices=OUTPUT_FORMATS, default="table", help="Output format"
    )
    analyze_parser.add_argument(
        "-d", "--details", action="store_true", help="Show details of failed tests"
    )
    analyze_parser.add_argument(
        "-l", "--logs", action="store_true", help="Show log excerpts of failed tests"
    )
    analyze_parser.add_argument(
        "-r", "--run-id", default=None, help="Analyze a specific run (default: latest)"
    )
    analyze_parser.add_argument(
        "-a", "--all-runs", action="store_true", help="Summarize all recorded runs"
    )

    cleanup_parser = subparsers.add_parser("cleanup", help="Clean up the test environment")
    cleanup_parser.add_argument(
        "-i", "--remove-images", action="store_true", help="Remove Docker images as well"
    )
    cleanup_parser.add_argument(
        "-r", "--remove-reports", action="store_true", help="Remove test reports and logs"
    )
    cleanup_parser.add_argument(
        "-a", "--all", action="store_true", help="Remove containers, images and reports"
    )
    cleanup_parser.add_argument(
        "-f", "--force", action="store_true", help="Do not ask for confirmation"
    )

    subparsers.add_parser("coverage", help="Generate static reference coverage reports")

    return parser


def _add_environment_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--skip-build", action="store_true", help="Skip building Docker images"
    )
    parser.add_argument(
        "--no-cleanup", action="store_true", help="Leave the environment running afterwards"
    )


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)

    exit_code = asyncio.run(run(args))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
