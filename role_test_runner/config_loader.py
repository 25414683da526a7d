"""Load harness configuration from YAML."""

import asyncio
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from role_test_runner.config import HarnessConfig

DEFAULT_CONFIG_PATH = Path("tests/harness.yaml")


async def load_harness_config(
    project_dir: Path, config_path: Path | None = None
) -> HarnessConfig:
    """Load the harness configuration for a project.

    Args:
        project_dir: Root of the role repository
        config_path: Explicit YAML file; when omitted, ``tests/harness.yaml``
            is used if present and defaults apply otherwise

    Returns:
        Validated harness configuration

    Raises:
        FileNotFoundError: If an explicit config file does not exist
        ValueError: If the file is empty, not valid YAML, or fails validation

    """
    if config_path is None:
        default = project_dir / DEFAULT_CONFIG_PATH
        if not default.is_file():
            return HarnessConfig(project_dir=project_dir)
        config_path = default
    elif not config_path.is_absolute():
        config_path = project_dir / config_path

    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    content = await asyncio.to_thread(config_path.read_text, encoding="utf-8")

    try:
        data: Any = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty config file: {config_path}")

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid harness config schema in {config_path}: expected a mapping"
        )

    try:
        return HarnessConfig.model_validate({"project_dir": project_dir, **data})
    except ValidationError as e:
        raise ValueError(f"Invalid harness config schema in {config_path}: {e}") from e
