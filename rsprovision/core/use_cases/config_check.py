"""
Config check use case — validate provision.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rsprovision.core.config.loader import ConfigError, find_config_file, load_config
from rsprovision.core.models.provision import DEFAULT_REPOSITORY, ProvisionConfig
from rsprovision.core.services.recipe import build_recipe


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ProvisionConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "repository": self.config.repository if self.config else None,
            "package_count": len(self.config.all_packages) if self.config else 0,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate provisioning configuration and report issues.

    Args:
        config_path: Optional explicit path to provision.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    result.config_path = config_path

    try:
        config = load_config(config_path, search=False)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    if config_path is None:
        result.warnings.append("No provision.yml found; using defaults.")

    # allow_failure must name real steps (checked against the full recipe)
    full = config.model_copy(update={"skip_upgrade": False})
    known = set(build_recipe(full, {"cpu_count": 2}).step_ids)
    unknown = sorted(set(config.allow_failure) - known)
    if unknown:
        result.errors.append(f"allow_failure names unknown steps: {', '.join(unknown)}")

    dupes = sorted({p for p in config.extra_packages if p in config.packages})
    if dupes:
        result.warnings.append(f"extra_packages already in the default list: {', '.join(dupes)}")

    if not config.packages:
        result.warnings.append("Dependency package list is empty; the build will likely fail.")

    clone = Path(config.clone_dir)
    if not clone.is_absolute():
        result.errors.append(f"clone_dir must be an absolute path: {config.clone_dir}")
    elif clone.resolve() == Path("/") or len(clone.resolve().parts) < 2:
        result.errors.append(f"clone_dir is not a safe temporary location: {config.clone_dir}")

    if config.repository != DEFAULT_REPOSITORY and not config.branch:
        result.warnings.append("Custom repository without a branch; the remote default branch is used.")

    result.valid = len(result.errors) == 0
    return result
