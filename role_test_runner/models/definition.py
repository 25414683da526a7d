"""Models for the scenarios and targets a test run is made of."""

from pydantic import Field

from role_test_runner.models.base import Model

# Report file names join run, target and scenario with underscores.
IDENTIFIER_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9.-]*$"


class TestScenario(Model):
    """A playbook representing one deployment variant of the role."""

    __test__ = False

    id: str = Field(
        ...,
        pattern=IDENTIFIER_PATTERN,
        description="Scenario identifier (e.g. 01-basic-installation)",
    )
    name: str = Field(..., description="Human-readable scenario name")
    playbook: str = Field(..., description="Playbook file name inside the scenarios dir")

    @classmethod
    def from_playbook(cls, playbook: str, name: str | None = None) -> "TestScenario":
        """Build a scenario from its playbook file name."""
        stem = playbook.removesuffix(".yml").removesuffix(".yaml")
        scenario_id = stem.replace("_", "-")
        return cls(id=scenario_id, name=name or stem, playbook=playbook)

    @property
    def number(self) -> str | None:
        """Numeric prefix of the identifier, if any (``01`` for ``01-basic``)."""
        prefix, _, _ = self.id.partition("-")
        return prefix if prefix.isdigit() else None

    def matches(self, selector: str) -> bool:
        """Check whether a user-supplied selector designates this scenario.

        Accepts the numeric prefix with or without leading zeros, the
        identifier, or the playbook file name.
        """
        selector = selector.strip()
        if selector in {self.id, self.playbook}:
            return True
        if self.number is not None and selector.isdigit():
            return int(selector) == int(self.number)
        return False


class TestTarget(Model):
    """An operating-system container the scenarios are applied against."""

    __test__ = False

    name: str = Field(
        ..., pattern=IDENTIFIER_PATTERN, description="Target identifier (e.g. ubuntu)"
    )
    host: str = Field(..., description="Hostname reachable from the runner container")
    inventory: str = Field(..., description="Inventory file name inside the inventories dir")
