"""
Post-run verification — confirm a provisioning run left the host right.

Checks mirror the end-to-end properties of a successful run:

    - every dependency package is installed
    - the udev rules directory holds RealSense rule files
    - SDK headers and libraries exist under the install prefix
    - the temporary clone is gone
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from rsprovision.core.models.provision import ProvisionConfig
from rsprovision.core.services.detection import check_packages

logger = logging.getLogger(__name__)

_LIB_DIRS = ("lib", "lib64", "lib/x86_64-linux-gnu", "lib/aarch64-linux-gnu")

PackageChecker = Callable[[list[str]], dict[str, list[str]]]


@dataclass
class CheckResult:
    """One verification check."""

    name: str
    ok: bool
    message: str = ""
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "ok": self.ok,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class VerificationReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.checks)

    @property
    def failed(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.ok]

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "checks": [c.to_dict() for c in self.checks],
        }


def check_dependencies(
    packages: list[str],
    checker: PackageChecker | None = None,
) -> CheckResult:
    result = (checker or check_packages)(packages)
    missing = result.get("missing", [])
    if missing:
        return CheckResult(
            name="packages",
            ok=False,
            message=f"{len(missing)} package(s) missing: {', '.join(missing)}",
            details=result,
        )
    return CheckResult(
        name="packages",
        ok=True,
        message=f"All {len(packages)} packages installed",
        details=result,
    )


def check_udev_rules(rules_dir: Path) -> CheckResult:
    if not rules_dir.is_dir():
        return CheckResult(
            name="udev_rules",
            ok=False,
            message=f"Rules directory missing: {rules_dir}",
        )
    rules = sorted(p.name for p in rules_dir.glob("*realsense*.rules"))
    if not rules:
        return CheckResult(
            name="udev_rules",
            ok=False,
            message=f"No RealSense rules in {rules_dir}",
        )
    return CheckResult(
        name="udev_rules",
        ok=True,
        message=", ".join(rules),
        details={"rules": rules},
    )


def check_sdk_installed(prefix: Path) -> CheckResult:
    header = prefix / "include" / "librealsense2" / "rs.h"
    libs: list[str] = []
    for sub in _LIB_DIRS:
        libs += sorted(str(p) for p in (prefix / sub).glob("librealsense2.so*"))

    problems: list[str] = []
    if not header.is_file():
        problems.append(f"header not found: {header}")
    if not libs:
        problems.append(f"librealsense2.so not found under {prefix}")

    if problems:
        return CheckResult(name="sdk", ok=False, message="; ".join(problems))
    return CheckResult(
        name="sdk",
        ok=True,
        message=f"SDK installed under {prefix}",
        details={"header": str(header), "libraries": libs},
    )


def check_clone_removed(clone_dir: Path) -> CheckResult:
    if clone_dir.exists():
        return CheckResult(
            name="cleanup",
            ok=False,
            message=f"Temporary source tree still present: {clone_dir}",
        )
    return CheckResult(name="cleanup", ok=True, message=f"{clone_dir} removed")


def verify_installation(
    config: ProvisionConfig,
    checker: PackageChecker | None = None,
) -> VerificationReport:
    """Run every post-provisioning check.

    Args:
        config: The config the run used (packages, prefix, paths).
        checker: Package checker; defaults to dpkg-query.

    Returns:
        VerificationReport — ``ok`` only if every check passed.
    """
    report = VerificationReport()
    packages = [*config.base_packages, *config.all_packages]
    report.checks.append(check_dependencies(packages, checker))
    report.checks.append(check_udev_rules(Path(config.udev_rules_dir)))
    report.checks.append(check_sdk_installed(Path(config.effective_prefix)))
    report.checks.append(check_clone_removed(Path(config.clone_dir)))

    for check in report.failed:
        logger.info("verify: %s failed — %s", check.name, check.message)
    return report
