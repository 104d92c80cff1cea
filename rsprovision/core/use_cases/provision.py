"""
Provision use case — run the librealsense2 recipe end to end.

This is the top-level orchestrator: it loads config, profiles the
host, builds the recipe, executes it fail-fast, and appends the
outcome to the audit ledger.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from rsprovision.adapters.registry import AdapterRegistry, default_registry
from rsprovision.core.config.loader import ConfigError, find_config_file, load_config, state_root
from rsprovision.core.engine.executor import (
    ExecutionPlan,
    ExecutionReport,
    StepCallback,
    build_actions,
    execute_plan,
    generate_operation_id,
    write_audit_entry,
)
from rsprovision.core.models.provision import ProvisionConfig
from rsprovision.core.models.recipe import Recipe
from rsprovision.core.persistence.audit import AuditWriter
from rsprovision.core.services.detection import host_profile
from rsprovision.core.services.recipe import build_recipe

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of a provisioning run (or plan)."""

    config: ProvisionConfig | None = None
    config_path: Path | None = None
    recipe: Recipe | None = None
    plan: ExecutionPlan | None = None
    report: ExecutionReport | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        return self.report.exit_code if self.report else 0

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["config_path"] = str(self.config_path) if self.config_path else None
        if self.recipe:
            result["steps"] = [s.model_dump(mode="json") for s in self.recipe.steps]
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def resolve_recipe(
    config_path: Path | None = None,
    profile: dict | None = None,
) -> ProvisionResult:
    """Load config and build the recipe without executing anything."""
    result = ProvisionResult()
    try:
        if config_path is None:
            config_path = find_config_file()
        result.config_path = config_path
        result.config = load_config(config_path, search=False)
    except ConfigError as e:
        result.error = str(e)
        return result

    if profile is None:
        profile = host_profile()
    result.recipe = build_recipe(result.config, profile)
    return result


def run_provision(
    config_path: Path | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    stream_output: bool = True,
    sudo_password: str = "",
    registry: AdapterRegistry | None = None,
    profile: dict | None = None,
    on_step: StepCallback | None = None,
    audit: bool = True,
) -> ProvisionResult:
    """Provision the host with librealsense2.

    Args:
        config_path: Optional explicit path to provision.yml.
        dry_run: If True, validate every step but execute none.
        mock_mode: If True, use mock adapter responses.
        stream_output: Let commands write straight to the terminal.
        sudo_password: Piped to ``sudo -S``; empty = plain sudo.
        registry: Optional pre-configured adapter registry.
        profile: Optional host profile (default: inspect the host).
        on_step: Optional callback fired before each step.
        audit: Append the outcome to the audit ledger.

    Returns:
        ProvisionResult with the execution report.
    """
    result = resolve_recipe(config_path, profile)
    if result.error:
        return result
    assert result.recipe is not None

    operation_id = generate_operation_id()
    plan = build_actions(result.recipe, operation_id)
    result.plan = plan

    if registry is None:
        registry = default_registry(mock_mode=mock_mode)

    logger.info("Provisioning %s: %d steps (%s)", operation_id, plan.total_actions,
                "dry-run" if dry_run else "mock" if mock_mode else "live")

    start = time.monotonic()
    report = execute_plan(
        plan=plan,
        registry=registry,
        base_dir=str(Path.cwd()),
        dry_run=dry_run,
        stream_output=stream_output,
        sudo_password=sudo_password,
        on_step=on_step,
    )
    result.report = report
    elapsed_ms = int((time.monotonic() - start) * 1000)

    if audit:
        writer = AuditWriter(root=state_root(result.config_path))
        write_audit_entry(
            report,
            writer,
            duration_ms=elapsed_ms,
            mode="dry-run" if dry_run else "mock" if mock_mode else "live",
            context={
                "repository": result.config.repository if result.config else "",
                "not_run": report.not_run,
                "tolerated": report.tolerated,
            },
        )

    return result
