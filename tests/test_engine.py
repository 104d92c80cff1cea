"""
Tests for engine executor — planning, fail-fast execution, and audit.
"""

from pathlib import Path

from rsprovision.adapters.mock import MockAdapter
from rsprovision.adapters.registry import AdapterRegistry
from rsprovision.core.engine.executor import (
    ExecutionReport,
    build_actions,
    execute_plan,
    generate_operation_id,
    write_audit_entry,
)
from rsprovision.core.models.action import Receipt
from rsprovision.core.models.provision import ProvisionConfig
from rsprovision.core.models.recipe import Recipe, Step
from rsprovision.core.persistence.audit import AuditWriter
from rsprovision.core.services.recipe import build_recipe


def _recipe(*ids: str, allow: tuple[str, ...] = ()) -> Recipe:
    return Recipe(steps=[
        Step(id=i, label=i.title(), command=["true"], allow_failure=i in allow) for i in ids
    ])


# ── Action Planning Tests ────────────────────────────────────────────


class TestBuildActions:
    def test_one_action_per_step(self, debian_profile):
        recipe = build_recipe(ProvisionConfig(), debian_profile)
        plan = build_actions(recipe, "op-test")
        assert plan.total_actions == len(recipe.steps)
        assert [a.id for a in plan.actions] == recipe.step_ids
        assert plan.recipe == "librealsense2"

    def test_shell_params(self, debian_profile):
        recipe = build_recipe(ProvisionConfig(), debian_profile)
        plan = build_actions(recipe, "op-test")
        action = next(a for a in plan.actions if a.id == "make-install")
        assert action.adapter == "shell"
        assert action.params["command"] == ["make", "install"]
        assert action.params["needs_sudo"] is True
        assert action.params["cwd"] == "/tmp/librealsense/build"
        assert action.params["_display"] == "(cd /tmp/librealsense/build) sudo make install"

    def test_filesystem_params(self, debian_profile):
        plan = build_actions(build_recipe(ProvisionConfig(), debian_profile), "op-test")
        action = next(a for a in plan.actions if a.id == "remove-clone")
        assert action.adapter == "filesystem"
        assert action.params["operation"] == "remove"
        assert action.params["path"] == "/tmp/librealsense"
        assert "command" not in action.params


# ── Execution Tests ──────────────────────────────────────────────────


class TestExecutePlan:
    def test_all_succeed(self, mock_registry):
        registry, mock = mock_registry
        plan = build_actions(_recipe("a", "b", "c"), "op-1")
        report = execute_plan(plan, registry)
        assert report.status == "ok"
        assert report.exit_code == 0
        assert report.succeeded == 3
        assert mock.executed_ids == ["a", "b", "c"]

    def test_halts_on_first_failure(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("b", error="E: Unable to locate package", return_code=100)
        plan = build_actions(_recipe("a", "b", "c", "d"), "op-1")

        report = execute_plan(plan, registry)

        assert mock.executed_ids == ["a", "b"]
        assert report.halted_at == "b"
        assert report.not_run == ["c", "d"]
        assert report.status == "failed"
        assert report.exit_code == 100
        assert not report.all_ok

    def test_failure_without_return_code_exits_one(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("a", error="Command timed out after 5s", return_code=None)
        report = execute_plan(build_actions(_recipe("a"), "op-1"), registry)
        assert report.exit_code == 1

    def test_signal_exit_code(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("a", error="killed", return_code=-9)
        report = execute_plan(build_actions(_recipe("a"), "op-1"), registry)
        assert report.exit_code == 137

    def test_allow_failure_continues(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("b", return_code=2)
        plan = build_actions(_recipe("a", "b", "c", allow=("b",)), "op-1")

        report = execute_plan(plan, registry)

        assert mock.executed_ids == ["a", "b", "c"]
        assert report.halted_at is None
        assert report.tolerated == ["b"]
        assert report.status == "partial"
        assert report.exit_code == 0

    def test_failure_analysis_attached(self, mock_registry):
        registry, mock = mock_registry
        mock.set_failure(
            "make-uninstall",
            error="make: *** No rule to make target 'uninstall'.  Stop.",
            return_code=2,
        )
        report = execute_plan(build_actions(_recipe("make-uninstall"), "op-1"), registry)
        analysis = report.failing_receipt.metadata["analysis"]
        assert "allow_failure" in analysis["suggestion"]

    def test_failure_analysis_when_streaming(self, tmp_path: Path, capsys):
        from rsprovision.adapters.registry import default_registry

        recipe = Recipe(steps=[Step(
            id="make-uninstall",
            label="Uninstall previous SDK",
            command=["sh", "-c", "echo \"make: *** No rule to make target 'uninstall'.  Stop.\" >&2; exit 2"],
        )])
        report = execute_plan(
            build_actions(recipe, "op-1"),
            default_registry(),
            base_dir=str(tmp_path),
            stream_output=True,
        )

        assert report.exit_code == 2
        analysis = report.failing_receipt.metadata["analysis"]
        assert "allow_failure" in analysis["suggestion"]
        assert "No rule to make target" in capsys.readouterr().out

    def test_build_progress_attached(self, mock_registry):
        registry, mock = mock_registry
        mock.set_response("make-build", Receipt.failure(
            adapter="shell",
            action_id="make-build",
            error="make: *** [Makefile:146: all] Error 2",
            return_code=2,
            metadata={"stdout": "[ 12%] Building CXX\n[ 61%] Building CXX"},
        ))
        report = execute_plan(build_actions(_recipe("make-build"), "op-1"), registry)
        assert report.failing_receipt.metadata["progress"] == {"percent": 61}

    def test_callback_fires_per_step(self, mock_registry):
        registry, _ = mock_registry
        seen: list[tuple[int, int, str]] = []
        plan = build_actions(_recipe("a", "b"), "op-1")
        execute_plan(plan, registry, on_step=lambda i, n, a: seen.append((i, n, a.id)))
        assert seen == [(0, 2, "a"), (1, 2, "b")]

    def test_interrupt(self, mock_registry):
        registry, _ = mock_registry

        class _Raising(MockAdapter):
            def execute(self, context):
                if context.action.id == "b":
                    raise KeyboardInterrupt
                return super().execute(context)

        raising = _Raising()
        registry.set_mock_mode(True, raising)
        report = execute_plan(build_actions(_recipe("a", "b", "c"), "op-1"), registry)
        assert report.interrupted
        assert report.not_run == ["b", "c"]
        assert report.status == "interrupted"
        assert report.exit_code == 130

    def test_dry_run_executes_nothing(self, tmp_path: Path, debian_profile):
        from rsprovision.adapters.registry import default_registry

        cfg = ProvisionConfig(clone_dir=str(tmp_path / "librealsense"))
        plan = build_actions(build_recipe(cfg, debian_profile), "op-1")
        report = execute_plan(plan, default_registry(), base_dir=str(tmp_path), dry_run=True)

        assert report.status == "ok"
        assert report.skipped == plan.total_actions
        assert not (tmp_path / "librealsense").exists()

    def test_mock_mode_without_adapter(self, debian_profile):
        plan = build_actions(build_recipe(ProvisionConfig(), debian_profile), "op-1")
        report = execute_plan(plan, AdapterRegistry(mock_mode=True))
        assert report.succeeded == plan.total_actions


class TestExecutionReport:
    def test_to_dict(self):
        report = ExecutionReport(operation_id="op-1", recipe="librealsense2")
        report.receipts.append(Receipt.success(adapter="shell", action_id="a"))
        data = report.to_dict()
        assert data["status"] == "ok"
        assert data["succeeded"] == 1
        assert data["receipts"][0]["action_id"] == "a"


# ── Audit Tests ──────────────────────────────────────────────────────


class TestWriteAuditEntry:
    def test_entry_fields(self, tmp_path: Path, mock_registry):
        registry, mock = mock_registry
        mock.set_failure("b", error="boom", return_code=4)
        report = execute_plan(build_actions(_recipe("a", "b", "c"), "op-x"), registry)

        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        write_audit_entry(report, writer, duration_ms=42, mode="mock")

        (entry,) = writer.read_all()
        assert entry.operation_id == "op-x"
        assert entry.mode == "mock"
        assert entry.status == "failed"
        assert entry.exit_code == 4
        assert entry.steps_total == 3
        assert entry.steps_succeeded == 1
        assert entry.steps_failed == 1
        assert entry.halted_at == "b"
        assert entry.errors == ["b: boom"]
        assert entry.duration_ms == 42


def test_generate_operation_id():
    op = generate_operation_id()
    assert op.startswith("op-")
    assert len(op.split("-")) == 4
    assert op != generate_operation_id()
