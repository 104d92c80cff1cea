"""
Tests for observability — logging setup and step tagging.
"""

import logging
from pathlib import Path

import pytest

from rsprovision.core.observability.logging_config import (
    StepFilter,
    _parse_level,
    setup_logging,
    step_context,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestParseLevel:
    def test_names(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("ERROR") == logging.ERROR

    def test_fallback(self):
        assert _parse_level(None) == logging.WARNING
        assert _parse_level("loud") == logging.WARNING


class TestSetupLogging:
    def test_console_level(self):
        setup_logging(level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_file_handler_lowers_root_level(self, tmp_path: Path):
        log_file = tmp_path / "provision.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2

        logging.getLogger("rsprovision.test").debug("trace line")
        for h in root.handlers:
            h.flush()
        assert "trace line" in log_file.read_text()

    def test_file_log_carries_step_id(self, tmp_path: Path):
        log_file = tmp_path / "provision.log"
        setup_logging(level="ERROR", log_file=str(log_file), log_file_level="INFO")
        log = logging.getLogger("rsprovision.test")

        with step_context("make-build"):
            log.info("compiling")
        log.info("after the step")
        for h in logging.getLogger().handlers:
            h.flush()

        lines = log_file.read_text().splitlines()
        assert "[make-build] rsprovision.test" in lines[0]
        assert "[-] rsprovision.test" in lines[1]


class TestStepContext:
    def test_nested_blocks_restore(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", None, None)
        step_filter = StepFilter()

        with step_context("git-clone"):
            with step_context("inner"):
                step_filter.filter(record)
                assert record.step == "inner"
            step_filter.filter(record)
            assert record.step == "git-clone"
        step_filter.filter(record)
        assert record.step == "-"

    def test_executor_tags_records(self, mock_registry, caplog):
        from rsprovision.core.engine.executor import build_actions, execute_plan
        from rsprovision.core.models.recipe import Recipe, Step

        registry, _ = mock_registry
        caplog.handler.addFilter(StepFilter())
        plan = build_actions(Recipe(steps=[Step(id="apt-clean", command=["true"])]), "op-1")

        with caplog.at_level(logging.INFO, logger="rsprovision.core.engine.executor"):
            execute_plan(plan, registry)

        steps = [r.step for r in caplog.records if r.name == "rsprovision.core.engine.executor"]
        assert steps == ["apt-clean"]
