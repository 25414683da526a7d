"""Tests for the environment provisioner."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, Mock, call, patch

import pytest

from role_test_runner.config import HarnessConfig
from role_test_runner.docker import CommandResult, DockerCli
from role_test_runner.provisioner import EnvironmentFailure, EnvironmentProvisioner
from role_test_runner.storage import ReportStore


def result(returncode: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    """Command result with the given status."""
    return CommandResult(
        args=("docker",), returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture
def config(tmp_path: Path) -> HarnessConfig:
    """Create a config with a compose file present."""
    (tmp_path / "docker-compose.test.yml").write_text("services: {}\n")
    return HarnessConfig(project_dir=tmp_path, health_timeout=120)


@pytest.fixture
def docker_mock() -> Mock:
    """Create mock docker CLI with compose available."""
    docker = Mock(spec=DockerCli)
    docker.compose_command = ("docker", "compose")
    docker.verbose = False
    docker.is_running = AsyncMock(return_value=True)
    docker.compose = AsyncMock(return_value=result())
    return docker


@pytest.fixture
def provisioner(config: HarnessConfig, docker_mock: Mock) -> EnvironmentProvisioner:
    """Create provisioner with mock docker."""
    return EnvironmentProvisioner(
        config=config,
        docker=docker_mock,
        store=ReportStore(reports_dir=config.reports_path),
    )


class TestCheckPrerequisites:
    """Tests for EnvironmentProvisioner.check_prerequisites."""

    __test__ = True

    async def test_creates_reports_directory(
        self, provisioner: EnvironmentProvisioner
    ) -> None:
        """Passes and creates the reports directory when all is in place."""
        await provisioner.check_prerequisites()

        assert provisioner.store.reports_dir.is_dir()

    async def test_docker_not_running(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Fails when the docker daemon does not answer."""
        docker_mock.is_running.return_value = False

        with pytest.raises(EnvironmentFailure, match="Docker is not running"):
            await provisioner.check_prerequisites()

    async def test_compose_missing(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Fails without a compose command."""
        docker_mock.compose_command = None

        with pytest.raises(EnvironmentFailure, match="not installed"):
            await provisioner.check_prerequisites()

    async def test_compose_file_missing(
        self, provisioner: EnvironmentProvisioner, config: HarnessConfig
    ) -> None:
        """Fails without the test compose file."""
        config.compose_path.unlink()

        with pytest.raises(EnvironmentFailure, match="Test compose file not found"):
            await provisioner.check_prerequisites()


class TestBuild:
    """Tests for EnvironmentProvisioner.build."""

    __test__ = True

    async def test_builds_without_cache(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Builds all images from scratch."""
        await provisioner.build()

        docker_mock.compose.assert_awaited_once_with("build", "--no-cache")

    async def test_skip(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Does nothing when skipped."""
        await provisioner.build(skip=True)

        docker_mock.compose.assert_not_called()

    async def test_build_failure(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Raises EnvironmentFailure when the build fails."""
        docker_mock.compose.return_value = result(1, stderr="no space left")

        with pytest.raises(EnvironmentFailure, match="no space left"):
            await provisioner.build()


class TestStart:
    """Tests for EnvironmentProvisioner.start."""

    __test__ = True

    async def test_tears_down_then_starts_and_waits(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Removes stale topology, starts services, and waits for health."""
        with patch(
            "role_test_runner.provisioner.ComposeHealthProbe.wait_until_ready",
            new_callable=AsyncMock,
        ) as wait_mock:
            await provisioner.start()

        assert docker_mock.compose.await_args_list[:2] == [
            call("down", "--remove-orphans", quiet=True),
            call("up", "-d"),
        ]
        wait_mock.assert_awaited_once_with(timeout=120, poll_interval=2)

    async def test_stale_teardown_failure_is_ignored(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Nothing to tear down is not an error."""
        docker_mock.compose.side_effect = [result(1, stderr="no such project"), result()]

        with patch(
            "role_test_runner.provisioner.ComposeHealthProbe.wait_until_ready",
            new_callable=AsyncMock,
        ):
            await provisioner.start()

    async def test_up_failure(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Raises EnvironmentFailure when services cannot be started."""
        docker_mock.compose.side_effect = [result(), result(1, stderr="port in use")]

        with pytest.raises(EnvironmentFailure, match="port in use"):
            await provisioner.start()

    async def test_health_timeout_is_fatal(
        self,
        provisioner: EnvironmentProvisioner,
        docker_mock: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Unhealthy services abort with the service status logged."""
        docker_mock.compose.side_effect = [
            result(),
            result(),
            result(stdout="wp-test-centos   Up (unhealthy)\n"),
        ]

        with (
            patch(
                "role_test_runner.provisioner.ComposeHealthProbe.wait_until_ready",
                new_callable=AsyncMock,
                side_effect=TimeoutError("services not ready within 120 seconds"),
            ),
            caplog.at_level(logging.ERROR),
            pytest.raises(
                EnvironmentFailure,
                match="Services failed to become healthy within 120 seconds",
            ),
        ):
            await provisioner.start()

        assert "wp-test-centos   Up (unhealthy)" in caplog.text


class TestStop:
    """Tests for EnvironmentProvisioner.stop."""

    __test__ = True

    async def test_removes_containers_and_volumes(
        self, provisioner: EnvironmentProvisioner, docker_mock: Mock
    ) -> None:
        """Tears down with orphans and volumes."""
        await provisioner.stop()

        docker_mock.compose.assert_awaited_once_with(
            "down", "--remove-orphans", "--volumes"
        )

    async def test_failure_is_a_warning(
        self,
        provisioner: EnvironmentProvisioner,
        docker_mock: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A failed teardown is reported, not raised."""
        docker_mock.compose.return_value = result(1, stderr="daemon gone")

        await provisioner.stop()

        assert "Failed to tear down test environment: daemon gone" in caplog.text
