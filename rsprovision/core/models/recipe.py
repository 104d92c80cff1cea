"""
Recipe model — the ordered list of provisioning steps.

A Recipe is built from ProvisionConfig and the host profile by
``core.services.recipe.build_recipe``. Order is significant: the
engine runs steps exactly as listed and halts on the first failure.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# Phase order of a full provisioning run
PHASES: tuple[str, ...] = (
    "refresh",
    "dependencies",
    "clone",
    "udev",
    "build",
    "cleanup",
)


class Step(BaseModel):
    """One command (or filesystem operation) in the recipe."""

    id: str
    label: str = ""
    phase: str = ""
    adapter: Literal["shell", "filesystem"] = "shell"

    # shell
    command: list[str] = Field(default_factory=list)
    needs_sudo: bool = False
    env: dict[str, str] = Field(default_factory=dict)

    # filesystem
    operation: str = ""
    path: str = ""

    cwd: str | None = None
    timeout: int = 300
    allow_failure: bool = False

    def display(self) -> str:
        """Render the step as a shell-like line, for plans and logs."""
        if self.adapter == "filesystem":
            verb = {"mkdir": "mkdir -p", "remove": "rm -rf"}.get(self.operation, self.operation)
            line = f"{verb} {self.path}"
        else:
            env = " ".join(f"{k}={v}" for k, v in self.env.items())
            line = " ".join(part for part in (env, " ".join(self.command)) if part)
        if self.needs_sudo:
            line = f"sudo {line}"
        if self.cwd:
            line = f"(cd {self.cwd}) {line}"
        return line


class Recipe(BaseModel):
    """Ordered provisioning steps."""

    name: str = "librealsense2"
    steps: list[Step] = Field(default_factory=list)

    def get_step(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def steps_in_phase(self, phase: str) -> list[Step]:
        return [s for s in self.steps if s.phase == phase]

    @property
    def step_ids(self) -> list[str]:
        return [s.id for s in self.steps]
