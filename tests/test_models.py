"""
Tests for core models — Action, Receipt, Step, Recipe, ProvisionConfig.
"""

import pytest
from pydantic import ValidationError

from rsprovision.core.models import Action, ProvisionConfig, Receipt, Recipe, Step
from rsprovision.core.models.provision import BASE_PACKAGES, DEFAULT_PACKAGES


class TestReceipt:
    def test_success(self):
        r = Receipt.success(adapter="shell", action_id="a", output="done", return_code=0)
        assert r.ok
        assert not r.failed
        assert r.output == "done"

    def test_failure(self):
        r = Receipt.failure(adapter="shell", action_id="a", error="boom", return_code=2)
        assert r.failed
        assert r.error == "boom"
        assert r.return_code == 2

    def test_skip(self):
        r = Receipt.skip(adapter="shell", action_id="a", reason="dry")
        assert r.status == "skipped"
        assert not r.ok
        assert not r.failed
        assert r.output == "dry"

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            Receipt(adapter="shell", action_id="a", status="weird")


class TestAction:
    def test_defaults(self):
        a = Action(id="x", adapter="shell")
        assert a.params == {}
        assert a.allow_failure is False


class TestStep:
    def test_display_sudo_with_env(self):
        step = Step(
            id="apt-clean",
            command=["apt-get", "clean"],
            needs_sudo=True,
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )
        assert step.display() == "sudo DEBIAN_FRONTEND=noninteractive apt-get clean"

    def test_display_cwd(self):
        step = Step(id="b", command=["make", "-j3"], cwd="/tmp/x/build")
        assert step.display() == "(cd /tmp/x/build) make -j3"

    def test_display_filesystem_ops(self):
        mk = Step(id="d", adapter="filesystem", operation="mkdir", path="/a/build")
        rm = Step(id="r", adapter="filesystem", operation="remove", path="/a")
        assert mk.display() == "mkdir -p /a/build"
        assert rm.display() == "rm -rf /a"


class TestRecipe:
    def test_lookup_helpers(self):
        recipe = Recipe(steps=[
            Step(id="one", phase="refresh"),
            Step(id="two", phase="build"),
            Step(id="three", phase="build"),
        ])
        assert recipe.step_ids == ["one", "two", "three"]
        assert recipe.get_step("two").phase == "build"
        assert recipe.get_step("missing") is None
        assert [s.id for s in recipe.steps_in_phase("build")] == ["two", "three"]


class TestProvisionConfig:
    def test_defaults(self):
        cfg = ProvisionConfig()
        assert cfg.repository.endswith("IntelRealSense/librealsense.git")
        assert cfg.clone_dir == "/tmp/librealsense"
        assert cfg.build_type == "Release"
        assert cfg.packages == DEFAULT_PACKAGES
        assert cfg.base_packages == BASE_PACKAGES
        assert cfg.effective_prefix == "/usr/local"

    def test_default_lists_are_not_shared(self):
        a = ProvisionConfig()
        a.packages.append("extra")
        assert "extra" not in ProvisionConfig().packages

    def test_all_packages_dedup_keeps_order(self):
        cfg = ProvisionConfig(packages=["a", "b"], extra_packages=["b", "c", "a"])
        assert cfg.all_packages == ["a", "b", "c"]

    def test_prefix_override(self):
        assert ProvisionConfig(install_prefix="/opt/rs").effective_prefix == "/opt/rs"

    @pytest.mark.parametrize("field", ["jobs", "depth"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            ProvisionConfig(**{field: 0})
