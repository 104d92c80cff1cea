"""
Preflight use case — can this host be provisioned?

Hard requirements (errors): a Debian-family distro, apt-get, and
either root or sudo. Everything else is informational: git, cmake
and make are installed by the recipe itself.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from rsprovision.core.models.provision import ProvisionConfig
from rsprovision.core.services.detection import (
    default_build_jobs,
    detect_build_toolchain,
    host_profile,
)


@dataclass
class PreflightResult:
    profile: dict = field(default_factory=dict)
    toolchain: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "profile": self.profile,
            "toolchain": self.toolchain,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def run_preflight(
    config: ProvisionConfig,
    profile: dict | None = None,
    toolchain: dict[str, str] | None = None,
) -> PreflightResult:
    """Check the host against the provisioning requirements.

    Args:
        config: Provisioning parameters (clone dir, jobs).
        profile: Host profile (default: inspect the host).
        toolchain: Detected build tools (default: inspect the host).
    """
    result = PreflightResult(
        profile=profile if profile is not None else host_profile(),
        toolchain=toolchain if toolchain is not None else detect_build_toolchain(),
    )
    p = result.profile

    distro = p.get("distro", {})
    if distro.get("family") != "debian":
        result.errors.append(
            f"Unsupported distro '{distro.get('id') or 'unknown'}': a Debian/Ubuntu host is required"
        )
    if not p.get("has_apt"):
        result.errors.append("apt-get not found on PATH")
    if not p.get("is_root") and not p.get("has_sudo"):
        result.errors.append("Not running as root and sudo is not installed")

    clone_dir = Path(config.clone_dir)
    if clone_dir.exists():
        result.warnings.append(
            f"{clone_dir} already exists; git clone will fail until it is removed"
        )

    if not p.get("in_container"):
        result.warnings.append("Not running in a container; the host system will be modified")

    if config.jobs is None and p.get("cpu_count", 1) <= 1:
        result.warnings.append(
            f"Single-core host: build will use {default_build_jobs(p.get('cpu_count'))} job"
        )

    free_mb = _free_disk_mb(clone_dir.parent)
    if free_mb is not None and free_mb < 4096:
        result.warnings.append(
            f"Only {free_mb}MB free under {clone_dir.parent}; the SDK build needs about 4GB"
        )

    return result


def _free_disk_mb(path: Path) -> int | None:
    try:
        return shutil.disk_usage(path).free // (1024 * 1024)
    except OSError:
        return None
