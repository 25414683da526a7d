"""Readiness probes polled with a bounded wait."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from role_test_runner.docker import DockerCli

log = logging.getLogger(__name__)

PROGRESS_INTERVAL = 10


@dataclass(frozen=True, kw_only=True)
class ReadinessProbe(ABC):
    """A check repeated until it succeeds or a deadline passes."""

    @property
    @abstractmethod
    def description(self) -> str:
        """What is being waited for, used in log and error messages."""

    @abstractmethod
    async def check(self) -> bool:
        """Return True once the probed resource is ready."""

    async def wait_until_ready(
        self,
        timeout: float = 60,
        poll_interval: float = 2,
    ) -> None:
        """Poll until ready.

        Args:
            timeout: Maximum wait time in seconds
            poll_interval: Seconds between polls

        Raises:
            TimeoutError: If the probe does not succeed within timeout

        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout
        next_progress = started + PROGRESS_INTERVAL

        while True:
            if await self.check():
                return

            now = loop.time()
            if now >= deadline:
                raise TimeoutError(
                    f"{self.description} not ready within {timeout:g} seconds"
                )

            if now >= next_progress:
                log.info(
                    "Still waiting for %s... (%d/%ds)",
                    self.description,
                    now - started,
                    timeout,
                )
                next_progress += PROGRESS_INTERVAL

            await asyncio.sleep(poll_interval)


@dataclass(frozen=True, kw_only=True)
class ComposeHealthProbe(ReadinessProbe):
    """Ready once compose reports its health-checked services as healthy."""

    docker: DockerCli

    @property
    def description(self) -> str:
        """What is being waited for."""
        return "services"

    async def check(self) -> bool:
        """Inspect ``compose ps`` health annotations."""
        result = await self.docker.compose("ps", quiet=True)
        if not result.ok:
            return False
        return is_healthy(result.stdout)


def is_healthy(ps_output: str) -> bool:
    """Decide topology health from ``compose ps`` output.

    At least one service must report ``(healthy)`` and none may still be
    starting or be unhealthy.
    """
    if "(healthy)" not in ps_output:
        return False
    return "(health: starting)" not in ps_output and "(unhealthy)" not in ps_output


@dataclass(frozen=True, kw_only=True)
class SshProbe(ReadinessProbe):
    """Ready once the runner container can open an SSH session to a target."""

    docker: DockerCli
    runner: str
    host: str

    @property
    def description(self) -> str:
        """What is being waited for."""
        return f"SSH connectivity to {self.host}"

    async def check(self) -> bool:
        """Run a trivial remote command over SSH from the runner container."""
        result = await self.docker.exec(
            self.runner,
            "ssh",
            "-o",
            "ConnectTimeout=5",
            "-o",
            "BatchMode=yes",
            f"root@{self.host}",
            "echo",
            "SSH OK",
        )
        return result.ok
