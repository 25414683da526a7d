"""Idempotent removal of test-run artifacts."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, TypeAlias

from role_test_runner.config import HarnessConfig
from role_test_runner.docker import DockerCli
from role_test_runner.provisioner import EnvironmentFailure
from role_test_runner.storage import ReportStore

log = logging.getLogger(__name__)

CleanupMode: TypeAlias = Literal["basic", "images", "reports", "all"]

REPORT_PATTERNS = ("*.log", "*.json")


def report_files(reports_dir: Path) -> list[Path]:
    """Log and JSON files anywhere under the reports directory."""
    return [
        path
        for pattern in REPORT_PATTERNS
        for path in reports_dir.rglob(pattern)
        if path.is_file()
    ]


@dataclass(frozen=True, kw_only=True)
class CleanupPlan:
    """Which categories of resources to remove on top of containers and volumes."""

    remove_images: bool = False
    remove_reports: bool = False

    @property
    def mode(self) -> CleanupMode:
        """Scope of the cleanup."""
        match (self.remove_images, self.remove_reports):
            case (True, True):
                return "all"
            case (True, False):
                return "images"
            case (False, True):
                return "reports"
        return "basic"

    def actions(self) -> Sequence[str]:
        """Human-readable list of what will be removed."""
        actions = ["Stop and remove test containers", "Remove test volumes"]
        if self.remove_images:
            actions.append("Remove Docker images")
        if self.remove_reports:
            actions.append("Remove test reports and logs")
        return actions


@dataclass(frozen=True, kw_only=True)
class CleanupResult:
    """What was removed and what is still left after a cleanup."""

    containers_removed: int = 0
    images_removed: int = 0
    reports_removed: int = 0
    remaining_containers: Sequence[str] = ()
    remaining_images: Sequence[str] = ()
    remaining_reports: bool = False

    @property
    def clean(self) -> bool:
        """Whether the verification pass found nothing left behind."""
        return not (
            self.remaining_containers or self.remaining_images or self.remaining_reports
        )


@dataclass(frozen=True, kw_only=True)
class CleanupManager:
    """Removes containers, volumes, images and reports of the test topology.

    Every step treats an already absent resource as success, and the outcome
    is judged by re-querying afterwards rather than by removal exit codes.
    """

    config: HarnessConfig
    docker: DockerCli
    store: ReportStore

    async def run(self, plan: CleanupPlan) -> CleanupResult:
        """Perform the cleanup described by ``plan``.

        Raises:
            EnvironmentFailure: If the docker daemon is not reachable

        """
        log.info("Cleanup mode: %s", plan.mode)
        if not await self.docker.is_running():
            raise EnvironmentFailure(
                "Docker is not running. Please start Docker to cleanup properly."
            )

        await self.compose_down()
        containers = await self.remove_leftover_containers()
        images = await self.remove_images() if plan.remove_images else 0
        reports = self.remove_reports() if plan.remove_reports else 0
        return await self.verify(
            plan,
            containers_removed=containers,
            images_removed=images,
            reports_removed=reports,
        )

    async def compose_down(self) -> None:
        """Stop and remove the topology's containers and volumes."""
        if not self.docker.compose_command:
            log.warning("docker compose not available, skipping container cleanup")
            return
        if not self.config.compose_path.is_file():
            log.warning("Test compose file not found: %s", self.config.compose_path)
            log.warning("Skipping container cleanup (no compose file found)")
            return

        log.info("Stopping and removing test containers...")
        result = await self.docker.compose("down", "--remove-orphans", "--volumes")
        if not result.ok:
            log.debug("compose down reported: %s", result.stderr.strip())
        log.info("Containers and volumes removed")

    async def remove_leftover_containers(self) -> int:
        """Force-remove containers matching the test naming filters."""
        log.info("Checking for leftover test containers...")
        leftovers = await self.docker.list_containers(self.config.container_name_filters)
        if not leftovers:
            log.info("No leftover test containers found")
            return 0

        log.info("Removing %d leftover container(s)...", len(leftovers))
        result = await self.docker.remove_containers(leftovers)
        if not result.ok:
            log.debug("docker rm reported: %s", result.stderr.strip())
        return len(leftovers)

    async def remove_images(self) -> int:
        """Remove images built or pulled for the topology, then dangling images."""
        images = [
            *await self.docker.compose_images(),
            *await self.docker.list_images(
                labels=[f"com.docker.compose.project={self.config.compose_project_label}"]
            ),
            *await self.docker.list_images(
                references=self.config.image_reference_filters
            ),
        ]
        unique = sorted(set(images))
        removed = 0
        if unique:
            log.info("Removing %d test image(s)...", len(unique))
            result = await self.docker.remove_images(unique)
            if not result.ok:
                log.debug("docker rmi reported: %s", result.stderr.strip())
            removed += len(unique)
        else:
            log.info("No test images found")

        log.info("Removing dangling images...")
        dangling = await self.docker.list_images(dangling=True)
        if dangling:
            result = await self.docker.remove_images(dangling)
            if not result.ok:
                log.debug("docker rmi reported: %s", result.stderr.strip())
            removed += len(dangling)
            log.info("Dangling images removed")
        else:
            log.info("No dangling images found")
        return removed

    def remove_reports(self) -> int:
        """Delete log and JSON reports; drop the directory once it is empty."""
        reports_dir = self.store.reports_dir
        if not reports_dir.is_dir():
            log.info("No reports directory found")
            return 0

        files = report_files(reports_dir)
        if files:
            log.info("Removing %d test report files...", len(files))
            for path in files:
                path.unlink(missing_ok=True)
                log.debug("Removed %s", path)
        else:
            log.info("No test reports found")

        for directory in sorted(
            (p for p in reports_dir.rglob("*") if p.is_dir()),
            key=lambda p: len(p.parts),
            reverse=True,
        ):
            if not any(directory.iterdir()):
                directory.rmdir()
        if not any(reports_dir.iterdir()):
            reports_dir.rmdir()
            log.info("Empty reports directory removed")
        return len(files)

    async def verify(
        self,
        plan: CleanupPlan,
        *,
        containers_removed: int = 0,
        images_removed: int = 0,
        reports_removed: int = 0,
    ) -> CleanupResult:
        """Re-query for anything the cleanup left behind and warn about it."""
        containers = await self.docker.describe_containers(
            self.config.container_name_filters
        )
        if containers:
            log.warning("Some containers may still exist:")
            for line in containers:
                log.warning("  %s", line)
        else:
            log.info("No test containers remaining")

        images: Sequence[str] = ()
        if plan.remove_images:
            images = await self.docker.describe_images(self.config.image_reference_filters)
            if images:
                log.warning("Some test images may still exist:")
                for line in images:
                    log.warning("  %s", line)
            else:
                log.info("No test images remaining")

        reports_left = False
        if plan.remove_reports:
            reports_dir = self.store.reports_dir
            reports_left = reports_dir.is_dir() and bool(report_files(reports_dir))
            if reports_left:
                log.warning("Reports directory still contains test reports")
            else:
                log.info("Test reports cleaned up")

        return CleanupResult(
            containers_removed=containers_removed,
            images_removed=images_removed,
            reports_removed=reports_removed,
            remaining_containers=containers,
            remaining_images=images,
            remaining_reports=reports_left,
        )
