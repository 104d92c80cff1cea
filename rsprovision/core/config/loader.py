"""
Configuration loader — reads provision.yml into a ProvisionConfig.

The file is optional: with no provision.yml the defaults reproduce
the stock librealsense2 install. When a file is found (or given
explicitly) it must be a valid YAML mapping.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from rsprovision.core.models.provision import ProvisionConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "provision.yml"


class ConfigError(Exception):
    """Raised when provisioning configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None, *, search: bool = True) -> ProvisionConfig:
    """Load and validate provisioning configuration.

    Args:
        path: Explicit path to provision.yml. Must exist if given.
        search: When no path is given, walk up from cwd looking for one.

    Returns:
        Validated ProvisionConfig (defaults if no file is found).

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None and search:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return ProvisionConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading provisioning config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provision" key or be flat
    if "provision" in data and isinstance(data["provision"], dict):
        data = data["provision"]

    try:
        config = ProvisionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid provisioning configuration: {e}") from e

    logger.info(
        "Loaded config from %s (%s, %d packages)",
        path, config.repository, len(config.all_packages),
    )
    return config


def state_root(config_path: Path | None) -> Path:
    """Directory that holds .state/ — next to the config file, else cwd."""
    return config_path.parent.resolve() if config_path else Path.cwd()
