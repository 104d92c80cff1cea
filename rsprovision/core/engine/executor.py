"""
Engine executor — the fail-fast provisioning loop.

Flow:
    recipe → build actions → execute in order → halt on first failure → audit

No retries, no rollback, no cleanup of partial state. A step marked
``allow_failure`` is the only failure the loop steps over.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable

from rsprovision.adapters.registry import AdapterRegistry
from rsprovision.core.models.action import Action, Receipt
from rsprovision.core.models.recipe import Recipe
from rsprovision.core.observability.logging_config import step_context
from rsprovision.core.persistence.audit import AuditEntry, AuditWriter
from rsprovision.core.services.build_analysis import analyse_build_failure, parse_build_progress

logger = logging.getLogger(__name__)

# Called before each action runs: (index, total, action)
StepCallback = Callable[[int, int, Action], None]


@dataclass
class ExecutionPlan:
    """A planned, ordered set of actions."""

    operation_id: str = ""
    recipe: str = ""
    actions: list[Action] = field(default_factory=list)

    @property
    def total_actions(self) -> int:
        return len(self.actions)


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    operation_id: str = ""
    recipe: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    halted_at: str | None = None
    not_run: list[str] = field(default_factory=list)
    tolerated: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def all_ok(self) -> bool:
        return self.halted_at is None and not self.interrupted

    @property
    def status(self) -> str:
        if self.interrupted:
            return "interrupted"
        if self.halted_at is not None:
            return "failed"
        if self.tolerated:
            return "partial"
        return "ok"

    @property
    def failing_receipt(self) -> Receipt | None:
        if self.halted_at is None:
            return None
        for r in self.receipts:
            if r.action_id == self.halted_at:
                return r
        return None

    @property
    def exit_code(self) -> int:
        """Process exit status: 0, the failing command's code, or 1."""
        if self.interrupted:
            return 130
        failing = self.failing_receipt
        if self.halted_at is None:
            return 0
        if failing is not None and failing.return_code:
            rc = failing.return_code
            # killed by signal N → shell convention 128 + N
            return 128 - rc if rc < 0 else rc
        return 1

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "recipe": self.recipe,
            "status": self.status,
            "exit_code": self.exit_code,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "halted_at": self.halted_at,
            "not_run": self.not_run,
            "tolerated": self.tolerated,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


def build_actions(recipe: Recipe, operation_id: str) -> ExecutionPlan:
    """Build an execution plan from a recipe, one Action per step.

    Args:
        recipe: Ordered provisioning steps.
        operation_id: Unique operation identifier.

    Returns:
        ExecutionPlan with actions in recipe order.
    """
    plan = ExecutionPlan(operation_id=operation_id, recipe=recipe.name)

    for step in recipe.steps:
        params: dict = {"timeout": step.timeout, "_display": step.display()}
        if step.cwd:
            params["cwd"] = step.cwd
        if step.adapter == "filesystem":
            params.update(operation=step.operation, path=step.path)
        else:
            params.update(
                command=list(step.command),
                needs_sudo=step.needs_sudo,
                env=dict(step.env),
            )

        plan.actions.append(Action(
            id=step.id,
            name=step.label or step.id,
            adapter=step.adapter,
            phase=step.phase,
            params=params,
            allow_failure=step.allow_failure,
        ))

    return plan


def execute_plan(
    plan: ExecutionPlan,
    registry: AdapterRegistry,
    base_dir: str = ".",
    dry_run: bool = False,
    stream_output: bool = False,
    sudo_password: str = "",
    on_step: StepCallback | None = None,
) -> ExecutionReport:
    """Execute actions in order, halting on the first failure.

    Args:
        plan: The execution plan.
        registry: Adapter registry for dispatch.
        base_dir: Working directory for actions without a cwd.
        dry_run: If True, validate but don't execute.
        stream_output: Let commands write straight to the terminal.
        sudo_password: Piped to ``sudo -S`` for root steps.
        on_step: Optional callback fired before each action.

    Returns:
        ExecutionReport. ``halted_at`` names the failing action and
        ``not_run`` lists every action after it.
    """
    report = ExecutionReport(operation_id=plan.operation_id, recipe=plan.recipe)
    total = plan.total_actions

    for index, action in enumerate(plan.actions):
        if on_step is not None:
            on_step(index, total, action)

        with step_context(action.id):
            try:
                receipt = registry.execute_action(
                    action=action,
                    base_dir=base_dir,
                    dry_run=dry_run,
                    stream_output=stream_output,
                    sudo_password=sudo_password,
                )
            except KeyboardInterrupt:
                logger.warning("Interrupted during %s", action.id)
                report.interrupted = True
                report.not_run = [a.id for a in plan.actions[index:]]
                return report

            report.receipts.append(receipt)

            status_marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
            logger.info("%s %s → %s", status_marker, action.id, receipt.status)

            if not receipt.failed:
                continue

            analysis = analyse_build_failure(
                "\n".join(filter(None, [receipt.error, receipt.metadata.get("stdout")])),
                step_id=action.id,
            )
            if analysis:
                receipt.metadata["analysis"] = analysis
            progress = parse_build_progress(receipt.metadata.get("stdout", ""))
            if progress:
                receipt.metadata["progress"] = progress

            if action.allow_failure:
                logger.warning("Step %s failed but is allowed to fail: %s", action.id, receipt.error)
                report.tolerated.append(action.id)
                continue

            logger.error("Step %s failed (exit %s): %s", action.id, receipt.return_code, receipt.error)
            report.halted_at = action.id
            report.not_run = [a.id for a in plan.actions[index + 1:]]
            break

    return report


def write_audit_entry(
    report: ExecutionReport,
    audit_writer: AuditWriter,
    duration_ms: int = 0,
    mode: str = "live",
    context: dict | None = None,
) -> None:
    """Append one entry for the run to the audit ledger."""
    errors = [
        f"{r.action_id}: {r.error}" for r in report.receipts if r.failed and r.error
    ]
    entry = AuditEntry(
        operation_id=report.operation_id,
        recipe=report.recipe,
        mode=mode,
        status=report.status,
        exit_code=report.exit_code,
        steps_total=report.total + len(report.not_run),
        steps_succeeded=report.succeeded,
        steps_failed=report.failed,
        halted_at=report.halted_at,
        duration_ms=duration_ms,
        errors=[e[:500] for e in errors],
        context=context or {},
    )
    audit_writer.write(entry)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
