"""Bring the multi-container test topology up and down."""

import logging
from dataclasses import dataclass

from role_test_runner.config import HarnessConfig
from role_test_runner.docker import DockerCli
from role_test_runner.probes import ComposeHealthProbe
from role_test_runner.storage import ReportStore

log = logging.getLogger(__name__)


class EnvironmentFailure(Exception):
    """Raised when the test environment cannot be made usable.

    Fatal for the whole run: no test is executed after it.
    """


@dataclass(frozen=True, kw_only=True)
class EnvironmentProvisioner:
    """Provisions the compose topology the tests run in."""

    config: HarnessConfig
    docker: DockerCli
    store: ReportStore

    async def check_prerequisites(self) -> None:
        """Verify docker, compose and the compose file; create the reports dir.

        Raises:
            EnvironmentFailure: If any prerequisite is missing

        """
        if not await self.docker.is_running():
            raise EnvironmentFailure(
                "Docker is not running. Please start Docker and try again."
            )
        log.info("Docker is running")

        if not self.docker.compose_command:
            raise EnvironmentFailure("docker compose is not installed or not in PATH")
        log.info("docker compose is available (%s)", " ".join(self.docker.compose_command))

        if not self.config.compose_path.is_file():
            raise EnvironmentFailure(
                f"Test compose file not found: {self.config.compose_path}"
            )
        log.info("Test compose file found")

        log.info("Reports directory ready: %s", self.store.ensure())

    async def build(self, *, skip: bool = False) -> None:
        """Build the test images from scratch.

        Raises:
            EnvironmentFailure: If the build fails

        """
        if skip:
            log.warning("Skipping Docker image build")
            return

        log.info("Building test environment images...")
        result = await self.docker.compose("build", "--no-cache")
        if not result.ok:
            raise EnvironmentFailure(
                f"Docker image build failed ({result.returncode}): {result.stderr.strip()}"
            )
        log.info("Docker images built successfully")

    async def start(self) -> None:
        """Start all services and wait until they are healthy.

        Any topology left over from a previous run is torn down first.

        Raises:
            EnvironmentFailure: If the services cannot be started or do not
                become healthy within the configured bound

        """
        stale = await self.docker.compose("down", "--remove-orphans", quiet=True)
        if not stale.ok:
            log.debug("Nothing to tear down: %s", stale.stderr.strip())

        log.info("Starting services...")
        result = await self.docker.compose("up", "-d")
        if not result.ok:
            raise EnvironmentFailure(
                f"Failed to start services ({result.returncode}): {result.stderr.strip()}"
            )

        log.info("Waiting for services to be ready...")
        probe = ComposeHealthProbe(docker=self.docker)
        try:
            await probe.wait_until_ready(
                timeout=self.config.health_timeout,
                poll_interval=self.config.health_poll_interval,
            )
        except TimeoutError as e:
            status = await self.docker.compose("ps", quiet=True)
            for line in status.stdout.splitlines():
                log.error("  %s", line)
            raise EnvironmentFailure(
                "Services failed to become healthy within "
                f"{self.config.health_timeout:g} seconds"
            ) from e

        log.info("Test environment is ready")
        if self.docker.verbose:
            await self.docker.compose("ps")

    async def stop(self) -> None:
        """Stop and remove containers and volumes of the topology."""
        log.info("Stopping and removing containers...")
        result = await self.docker.compose("down", "--remove-orphans", "--volumes")
        if result.ok:
            log.info("Test environment cleaned up")
        else:
            log.warning("Failed to tear down test environment: %s", result.stderr.strip())
