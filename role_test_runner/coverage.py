"""Static reference coverage of the role's security features.

Coverage here means a capability is *referenced* by a scenario, task file or
unit-test script on disk. It is computed by file presence and pattern
matching, never by executing anything, so it says nothing about whether a
passing test actually exercises the capability.
"""

import html
import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from pathlib import Path

log = logging.getLogger(__name__)

FEATURES: Sequence[str] = (
    # SELinux
    "selinux_installation",
    "selinux_configuration",
    "selinux_file_contexts",
    "selinux_booleans",
    "selinux_custom_policies",
    "selinux_audit_logging",
    "selinux_troubleshooting",
    # AppArmor
    "apparmor_installation",
    "apparmor_profiles",
    "apparmor_php_profile",
    "apparmor_nginx_profile",
    "apparmor_apache_profile",
    "apparmor_wpcli_profile",
    "apparmor_modes",
    "apparmor_validation",
    # Security tools
    "fail2ban_installation",
    "fail2ban_configuration",
    "fail2ban_wordpress_filters",
    "security_tools_installation",
    "rkhunter_installation",
    "chkrootkit_installation",
    "logwatch_installation",
    # Firewall
    "firewalld_configuration",
    "ufw_configuration",
    "firewall_rules",
    # System hardening
    "kernel_parameters",
    "password_policy",
    "automatic_updates",
    "service_hardening",
    "network_security",
    # WordPress
    "file_permissions",
    "directory_security",
    "upload_protection",
    "wp_config_security",
    # Monitoring and logging
    "audit_logging",
    "security_scripts",
    "security_status_reporting",
    "security_maintenance",
    "cron_configuration",
    # Edge cases and error handling
    "missing_directories",
    "permission_conflicts",
    "platform_detection",
    "privilege_limitations",
    "corrupted_configurations",
    "resource_constraints",
    "concurrent_operations",
    "error_recovery",
)

SCENARIOS: Sequence[str] = (
    "01-basic-installation",
    "02-apache-installation",
    "03-validation-security",
    "04-security-hardening",
    "05-security-edge-cases",
    "unit-tests",
)

UNIT_TESTS = "tests/scripts/security-unit-tests.sh"

FEATURE_TARGET = Decimal(90)
FEATURE_GOOD = Decimal(75)


@dataclass(frozen=True, kw_only=True)
class CoverageRule:
    """Marks coverage when ``path`` exists and, if given, ``pattern`` matches it."""

    path: str
    pattern: str | None = None
    scenario: str | None = None
    features: Sequence[str] = ()

    def matches(self, project_dir: Path) -> bool:
        """Evaluate the rule against the project tree."""
        file = project_dir / self.path
        if not file.is_file():
            return False
        if self.pattern is None:
            return True
        content = file.read_text(encoding="utf-8", errors="replace")
        return re.search(self.pattern, content) is not None


def _scenario(name: str) -> str:
    return f"tests/scenarios/{name}.yml"


RULES: Sequence[CoverageRule] = (
    # Test scenarios
    *(CoverageRule(path=_scenario(s), scenario=s) for s in SCENARIOS[:5]),
    CoverageRule(
        path=_scenario("01-basic-installation"),
        pattern=r"nginx|apache",
        features=("file_permissions", "directory_security"),
    ),
    CoverageRule(
        path=_scenario("04-security-hardening"),
        features=(
            "selinux_configuration",
            "apparmor_profiles",
            "fail2ban_configuration",
            "security_tools_installation",
            "firewall_rules",
            "audit_logging",
            "security_scripts",
        ),
    ),
    CoverageRule(
        path=_scenario("05-security-edge-cases"),
        features=(
            "missing_directories",
            "permission_conflicts",
            "platform_detection",
            "corrupted_configurations",
            "error_recovery",
        ),
    ),
    # Unit-test script
    CoverageRule(path=UNIT_TESTS, scenario="unit-tests"),
    CoverageRule(path=UNIT_TESTS, pattern="test_security_scripts", features=("security_scripts",)),
    CoverageRule(
        path=UNIT_TESTS,
        pattern="test_selinux_config",
        features=("selinux_configuration", "selinux_booleans"),
    ),
    CoverageRule(
        path=UNIT_TESTS,
        pattern="test_apparmor_config",
        features=("apparmor_profiles", "apparmor_modes"),
    ),
    CoverageRule(
        path=UNIT_TESTS,
        pattern="test_security_tools",
        features=("security_tools_installation", "fail2ban_installation"),
    ),
    CoverageRule(
        path=UNIT_TESTS,
        pattern="test_firewall_config",
        features=("firewalld_configuration", "ufw_configuration"),
    ),
    CoverageRule(
        path=UNIT_TESTS,
        pattern="test_file_permissions",
        features=("file_permissions", "wp_config_security"),
    ),
    # Role task files
    CoverageRule(
        path="tasks/selinux.yml",
        features=(
            "selinux_installation",
            "selinux_file_contexts",
            "selinux_booleans",
            "selinux_audit_logging",
        ),
    ),
    CoverageRule(
        path="tasks/selinux.yml",
        pattern=r"custom.*policy",
        features=("selinux_custom_policies",),
    ),
    CoverageRule(
        path="tasks/apparmor.yml",
        features=("apparmor_installation", "apparmor_profiles"),
    ),
    CoverageRule(
        path="tasks/apparmor.yml",
        pattern="wordpress-php-fpm",
        features=("apparmor_php_profile",),
    ),
    CoverageRule(
        path="tasks/apparmor.yml",
        pattern="wordpress-nginx",
        features=("apparmor_nginx_profile",),
    ),
    CoverageRule(
        path="tasks/apparmor.yml",
        pattern="wordpress-apache",
        features=("apparmor_apache_profile",),
    ),
    CoverageRule(
        path="tasks/apparmor.yml",
        pattern="wordpress-wpcli",
        features=("apparmor_wpcli_profile",),
    ),
    CoverageRule(
        path="tasks/security_hardening.yml",
        features=(
            "kernel_parameters",
            "password_policy",
            "automatic_updates",
            "service_hardening",
            "network_security",
            "security_maintenance",
            "cron_configuration",
        ),
    ),
)


@dataclass(frozen=True, kw_only=True)
class CoverageStats:
    """Covered/total counts and the truncated one-decimal percentage."""

    covered: int
    total: int

    @property
    def percentage(self) -> Decimal:
        """Covered share in percent, within [0, 100]."""
        if self.total == 0:
            return Decimal("0.0")
        return (Decimal(self.covered) * 100 / Decimal(self.total)).quantize(
            Decimal("0.1"), rounding=ROUND_DOWN
        )

    @property
    def complete(self) -> bool:
        """Whether everything is covered."""
        return self.total > 0 and self.covered == self.total

    def to_dict(self) -> dict[str, int | float]:
        """JSON-friendly representation."""
        return {
            "covered": self.covered,
            "total": self.total,
            "percentage": float(self.percentage),
        }


def _stats(flags: Mapping[str, bool]) -> CoverageStats:
    return CoverageStats(covered=sum(flags.values()), total=len(flags))


@dataclass(frozen=True, kw_only=True)
class CoverageMatrix:
    """Static reference coverage per feature and per scenario."""

    features: Mapping[str, bool]
    scenarios: Mapping[str, bool]

    @property
    def feature_stats(self) -> CoverageStats:
        """Feature coverage counts."""
        return _stats(self.features)

    @property
    def scenario_stats(self) -> CoverageStats:
        """Scenario implementation counts."""
        return _stats(self.scenarios)


def recommendations(matrix: CoverageMatrix) -> Sequence[str]:
    """Heuristic next steps derived from coverage gaps."""
    items: list[str] = []
    if matrix.feature_stats.percentage < FEATURE_TARGET:
        items.append("Improve feature coverage by implementing tests for uncovered features")
    if not matrix.scenario_stats.complete:
        items.append("Complete implementation of missing test scenarios")
    if not matrix.features.get("selinux_custom_policies", False):
        items.append("Add tests for SELinux custom policy creation and loading")
    if not matrix.features.get("concurrent_operations", False):
        items.append("Add tests for concurrent security operations")
    if not items:
        items.append("Excellent coverage! Consider adding more edge case tests.")
    return items


def verdict(matrix: CoverageMatrix) -> tuple[int, str]:
    """Log level and message judging feature coverage."""
    percentage = matrix.feature_stats.percentage
    if percentage >= FEATURE_TARGET:
        return logging.INFO, "Excellent feature coverage!"
    if percentage >= FEATURE_GOOD:
        return logging.INFO, "Good feature coverage, room for improvement"
    return logging.ERROR, "Feature coverage needs improvement"


def title_case(identifier: str) -> str:
    """``selinux_booleans`` -> ``Selinux Booleans``."""
    return " ".join(word.capitalize() for word in re.split(r"[_-]", identifier))


@dataclass(frozen=True, kw_only=True)
class CoverageReport:
    """Paths of the artifacts written for one coverage analysis."""

    report_id: str
    html: Path
    json: Path
    summary: Path


@dataclass(frozen=True, kw_only=True)
class CoverageAnalyzer:
    """Computes and reports static reference coverage for a role checkout."""

    project_dir: Path
    rules: Sequence[CoverageRule] = RULES
    features: Sequence[str] = FEATURES
    scenarios: Sequence[str] = SCENARIOS
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def analyze(self) -> CoverageMatrix:
        """Recompute the coverage matrix from the files on disk."""
        features = dict.fromkeys(sorted(self.features), False)
        scenarios = dict.fromkeys(sorted(self.scenarios), False)

        for rule in self.rules:
            if not rule.matches(self.project_dir):
                continue
            if rule.scenario is not None and rule.scenario in scenarios:
                scenarios[rule.scenario] = True
            for feature in rule.features:
                if feature in features:
                    features[feature] = True

        return CoverageMatrix(features=features, scenarios=scenarios)

    def write_reports(self, matrix: CoverageMatrix, output_dir: Path) -> CoverageReport:
        """Write the HTML, JSON and text artifacts for a matrix."""
        now = self.clock()
        report_id = f"coverage_{now.astimezone().strftime('%Y%m%d_%H%M%S')}"
        output_dir.mkdir(parents=True, exist_ok=True)

        report = CoverageReport(
            report_id=report_id,
            html=output_dir / f"{report_id}.html",
            json=output_dir / f"{report_id}.json",
            summary=output_dir / f"{report_id}_summary.txt",
        )
        report.html.write_text(render_html(matrix, report_id, now), encoding="utf-8")
        log.info("HTML report generated: %s", report.html)
        report.json.write_text(
            json.dumps(render_json(matrix, report_id, now), indent=2) + "\n",
            encoding="utf-8",
        )
        log.info("JSON report generated: %s", report.json)
        report.summary.write_text(render_text(matrix, report_id, now), encoding="utf-8")
        log.info("Summary report generated: %s", report.summary)
        return report


def render_json(
    matrix: CoverageMatrix, report_id: str, generated: datetime
) -> dict[str, object]:
    """Machine-readable report with flat name -> 0/1 maps."""
    return {
        "report_id": report_id,
        "timestamp": generated.isoformat(),
        "coverage_kind": "static-reference",
        "summary": {
            "feature_coverage": matrix.feature_stats.to_dict(),
            "scenario_coverage": matrix.scenario_stats.to_dict(),
        },
        "features": {name: int(flag) for name, flag in matrix.features.items()},
        "scenarios": {name: int(flag) for name, flag in matrix.scenarios.items()},
    }


def render_text(matrix: CoverageMatrix, report_id: str, generated: datetime) -> str:
    """Plain-text summary with recommendations."""
    features = matrix.feature_stats
    scenarios = matrix.scenario_stats
    lines = [
        "WordPress Enterprise Security Test Coverage Report",
        "=" * 50,
        "",
        f"Report ID: {report_id}",
        f"Generated: {generated.isoformat()}",
        "Coverage kind: static reference (capability referenced in source,",
        "not proven exercised by a passing test)",
        "",
        "OVERALL COVERAGE SUMMARY",
        "=" * 24,
        f"Feature Coverage:  {features.percentage}% ({features.covered}/{features.total})",
        f"Scenario Coverage: {scenarios.percentage}% ({scenarios.covered}/{scenarios.total})",
        "",
        "DETAILED BREAKDOWN",
        "=" * 18,
        "",
        f"Security Features ({features.covered}/{features.total} covered):",
    ]
    for name, covered in matrix.features.items():
        status = "✅ COVERED" if covered else "❌ NOT COVERED"
        lines.append(f"  {title_case(name):<40} {status}")

    lines += ["", f"Test Scenarios ({scenarios.covered}/{scenarios.total} implemented):"]
    for name, implemented in matrix.scenarios.items():
        status = "✅ IMPLEMENTED" if implemented else "❌ NOT IMPLEMENTED"
        lines.append(f"  {title_case(name):<40} {status}")

    lines += ["", "RECOMMENDATIONS", "=" * 15, ""]
    lines += [f"• {item}" for item in recommendations(matrix)]
    lines += [
        "",
        "FILES ANALYZED",
        "=" * 14,
        "• Task files in tasks/ directory",
        "• Test scenarios in tests/scenarios/ directory",
        "• Unit test scripts in tests/scripts/ directory",
        "",
    ]
    return "\n".join(lines)


HTML_STYLE = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       margin: 0; padding: 20px; background-color: #f8f9fa; }
.container { max-width: 1200px; margin: 0 auto; }
.header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white;
          padding: 30px; border-radius: 10px; margin-bottom: 30px; text-align: center; }
.stats-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(250px, 1fr));
              gap: 20px; margin-bottom: 30px; }
.stat-card { background: white; padding: 20px; border-radius: 8px;
             box-shadow: 0 2px 4px rgba(0,0,0,0.1); text-align: center; }
.stat-number { font-size: 2.5em; font-weight: bold; color: #667eea; }
.stat-label { color: #6c757d; margin-top: 5px; }
.coverage-section { background: white; padding: 25px; border-radius: 8px;
                    box-shadow: 0 2px 4px rgba(0,0,0,0.1); margin-bottom: 20px; }
.coverage-item { display: flex; justify-content: space-between; align-items: center;
                 padding: 8px 0; border-bottom: 1px solid #eee; }
.coverage-item:last-child { border-bottom: none; }
.status-icon { width: 20px; height: 20px; border-radius: 50%; display: inline-block;
               margin-left: 10px; }
.icon-pass { background-color: #28a745; }
.icon-fail { background-color: #dc3545; }
.timestamp { color: #6c757d; font-size: 0.9em; text-align: center; margin-top: 20px; }
h2 { color: #495057; }
"""


def _html_items(flags: Mapping[str, bool], on: str, off: str) -> str:
    rows = ""
    for name, flag in flags.items():
        icon = "icon-pass" if flag else "icon-fail"
        rows += f"""
            <div class="coverage-item">
                <div>
                    <strong>{html.escape(title_case(name))}</strong>
                    <span class="status-icon {icon}"></span>
                </div>
                <div>{on if flag else off}</div>
            </div>"""
    return rows


def render_html(matrix: CoverageMatrix, report_id: str, generated: datetime) -> str:
    """Visual report with per-item pass/fail coloring."""
    features = matrix.feature_stats
    scenarios = matrix.scenario_stats
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>WordPress Enterprise Security Test Coverage Report</title>
    <style>{HTML_STYLE}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>WordPress Enterprise Security Test Coverage</h1>
            <p>Static reference coverage: features referenced by scenarios,
               task files and unit-test scripts</p>
            <p>Report ID: {html.escape(report_id)}</p>
        </div>

        <div class="stats-grid">
            <div class="stat-card">
                <div class="stat-number">{features.percentage}%</div>
                <div class="stat-label">Feature Coverage</div>
                <div class="stat-label">({features.covered} / {features.total} features)</div>
            </div>
            <div class="stat-card">
                <div class="stat-number">{scenarios.percentage}%</div>
                <div class="stat-label">Scenario Coverage</div>
                <div class="stat-label">({scenarios.covered} / {scenarios.total} scenarios)</div>
            </div>
            <div class="stat-card">
                <div class="stat-number">{features.total}</div>
                <div class="stat-label">Total Features</div>
                <div class="stat-label">Security features tracked</div>
            </div>
        </div>

        <div class="coverage-section">
            <h2>Security Feature Coverage</h2>{_html_items(matrix.features, "Covered", "Not Covered")}
        </div>

        <div class="coverage-section">
            <h2>Test Scenario Coverage</h2>{_html_items(matrix.scenarios, "Implemented", "Not Implemented")}
        </div>

        <div class="timestamp">
            Report generated on {html.escape(generated.isoformat())}
        </div>
    </div>
</body>
</html>
"""
