"""Configuration for the test harness."""

from collections import Counter
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from role_test_runner.models.definition import TestScenario, TestTarget

DEFAULT_SCENARIOS: Sequence[TestScenario] = (
    TestScenario(
        id="01-basic-installation",
        name="Basic WordPress Installation with Nginx",
        playbook="01-basic-installation.yml",
    ),
    TestScenario(
        id="02-apache-installation",
        name="WordPress Installation with Apache",
        playbook="02-apache-installation.yml",
    ),
    TestScenario(
        id="03-validation-security",
        name="Validation and Security Features",
        playbook="03-validation-security.yml",
    ),
    TestScenario(
        id="04-security-hardening",
        name="Comprehensive Security Hardening",
        playbook="04-security-hardening.yml",
    ),
    TestScenario(
        id="05-security-edge-cases",
        name="Security Edge Cases and Error Handling",
        playbook="05-security-edge-cases.yml",
    ),
)

DEFAULT_TARGETS: Sequence[TestTarget] = (
    TestTarget(name="ubuntu", host="wp-test-ubuntu", inventory="ubuntu.ini"),
    TestTarget(name="centos", host="wp-test-centos", inventory="centos.ini"),
)


class HarnessConfig(BaseModel):
    """Configuration for the test harness.

    Relative paths are resolved against ``project_dir``.
    """

    project_dir: Path = Field(default_factory=Path.cwd)
    compose_file: Path = Path("docker-compose.test.yml")
    reports_dir: Path = Path("tests/reports")
    scenarios_dir: Path = Path("tests/scenarios")
    inventories_dir: Path = Path("tests/inventories")
    runner_container: str = "wp-test-runner"
    docker_executable: str = "docker"

    health_timeout: float = 120
    health_poll_interval: float = 2
    connectivity_timeout: float = 60
    connectivity_poll_interval: float = 2

    container_name_filters: Sequence[str] = ("wp-test", "wordpress-test")
    image_reference_filters: Sequence[str] = ("*wp-test*", "*wordpress-test*")
    compose_project_label: str = "wordpress-test"

    scenarios: Sequence[TestScenario] = DEFAULT_SCENARIOS
    targets: Sequence[TestTarget] = DEFAULT_TARGETS

    @model_validator(mode="after")
    def check_unique_identifiers(self) -> "HarnessConfig":
        """Reject targets or scenarios that would share report files."""
        for label, values in (
            ("target name", [t.name for t in self.targets]),
            ("scenario id", [s.id for s in self.scenarios]),
            ("scenario playbook", [s.playbook for s in self.scenarios]),
        ):
            duplicates = sorted(v for v, count in Counter(values).items() if count > 1)
            if duplicates:
                raise ValueError(f"Duplicate {label}: {', '.join(duplicates)}")
        return self

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the project directory."""
        return path if path.is_absolute() else self.project_dir / path

    @property
    def compose_path(self) -> Path:
        """Absolute path of the compose file."""
        return self.resolve(self.compose_file)

    @property
    def reports_path(self) -> Path:
        """Absolute path of the reports directory."""
        return self.resolve(self.reports_dir)

    @property
    def scenarios_path(self) -> Path:
        """Absolute path of the scenarios directory."""
        return self.resolve(self.scenarios_dir)

    @property
    def inventories_path(self) -> Path:
        """Absolute path of the inventories directory."""
        return self.resolve(self.inventories_dir)

    def target(self, name: str) -> TestTarget:
        """Look up a declared target by name."""
        for target in self.targets:
            if target.name == name:
                return target
        available = [t.name for t in self.targets]
        raise ValueError(f"Unknown target '{name}'. Available targets: {available}")
