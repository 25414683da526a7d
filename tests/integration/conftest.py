"""Fixtures for integration tests."""

from pathlib import Path

import pytest

from role_test_runner.testing.fake_docker import FakeDocker


@pytest.fixture
def fake_docker(tmp_path: Path) -> FakeDocker:
    """Install a fake docker executable in a private directory."""
    return FakeDocker.install(tmp_path / "fake-docker")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a role checkout with a compose file."""
    project = tmp_path / "role"
    project.mkdir()
    (project / "docker-compose.test.yml").write_text("services: {}\n")
    return project
