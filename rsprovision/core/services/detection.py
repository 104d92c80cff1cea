"""
Host detection — read-only inspection of the machine being provisioned.

Everything here inspects ambient OS state (os-release, PATH, dpkg
database, CPU count) and never mutates it. The recipe builder and
the preflight/verify use cases are the consumers.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")

_DEBIAN_IDS = frozenset({"debian", "ubuntu"})


def parse_os_release(text: str) -> dict[str, str]:
    """Parse the KEY=value lines of an os-release file."""
    info: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        info[key.strip()] = value.strip().strip('"').strip("'")
    return info


def read_distro(path: Path = OS_RELEASE) -> dict:
    """Read distro identity from os-release.

    Returns::

        {"id": "ubuntu", "version": "22.04", "like": ["debian"],
         "name": "Ubuntu 22.04.4 LTS", "family": "debian"}
    """
    try:
        info = parse_os_release(path.read_text(encoding="utf-8"))
    except OSError:
        return {
            "id": platform.system().lower(),
            "version": "",
            "like": [],
            "name": "",
            "family": "unknown",
        }

    distro_id = info.get("ID", "").lower()
    like = info.get("ID_LIKE", "").lower().split()
    family = "debian" if distro_id in _DEBIAN_IDS or "debian" in like or "ubuntu" in like else (
        like[0] if like else distro_id or "unknown"
    )
    return {
        "id": distro_id,
        "version": info.get("VERSION_ID", ""),
        "like": like,
        "name": info.get("PRETTY_NAME", ""),
        "family": family,
    }


def cpu_count() -> int:
    return os.cpu_count() or 1


def default_build_jobs(cores: int | None = None) -> int:
    """Parallel compile jobs: all cores but one, never below 1."""
    if cores is None:
        cores = cpu_count()
    return max(1, cores - 1)


def is_pkg_installed(pkg: str) -> bool:
    """Check if a Debian package is installed via ``dpkg-query``.

    Returns:
        True if installed, False if not installed or the check failed.
    """
    try:
        r = subprocess.run(
            ["dpkg-query", "-W", "-f=${Status}", pkg],
            capture_output=True, text=True, timeout=10,
        )
        return "install ok installed" in r.stdout
    except FileNotFoundError:
        logger.warning("dpkg-query not found (checking %s)", pkg)
    except subprocess.TimeoutExpired:
        logger.warning("Timeout checking package %s", pkg)
    except OSError as exc:
        logger.warning("OS error checking package %s: %s", pkg, exc)
    return False


def check_packages(packages: list[str]) -> dict[str, list[str]]:
    """Split packages into installed and missing.

    Returns:
        {"missing": ["pkg1", ...], "installed": ["pkg2", ...]}
    """
    missing: list[str] = []
    installed: list[str] = []
    for pkg in packages:
        if is_pkg_installed(pkg):
            installed.append(pkg)
        else:
            missing.append(pkg)
    return {"missing": missing, "installed": installed}


def detect_build_toolchain() -> dict[str, str]:
    """Detect build tools used by the recipe and their versions.

    Returns:
        Dict mapping tool name → version string. Only includes tools
        that are actually installed.
    """
    _patterns = {
        "git": r"(\d+\.\d+\.\d+)",
        "cmake": r"(\d+\.\d+\.\d+)",
        "make": r"(\d+\.\d+)",
        "gcc": r"(\d+\.\d+\.\d+)",
        "g++": r"(\d+\.\d+\.\d+)",
        "pkg-config": r"(\d+\.\d+)",
    }
    found: dict[str, str] = {}
    for binary, pattern in _patterns.items():
        if not shutil.which(binary):
            continue
        try:
            r = subprocess.run(
                [binary, "--version"],
                capture_output=True, text=True, timeout=5,
            )
            m = re.search(pattern, r.stdout + r.stderr)
            found[binary] = m.group(1) if m else "unknown"
        except (OSError, subprocess.TimeoutExpired):
            found[binary] = "unknown"
    return found


def in_container() -> bool:
    """Best-effort check for running inside a container."""
    if Path("/.dockerenv").exists() or Path("/run/.containerenv").exists():
        return True
    try:
        cgroup = Path("/proc/1/cgroup").read_text(encoding="utf-8")
    except OSError:
        return False
    return any(marker in cgroup for marker in ("docker", "containerd", "kubepods", "lxc"))


def host_profile() -> dict:
    """Assemble the host profile consumed by the recipe builder.

    Returns::

        {
            "distro": {...},
            "is_root": False,
            "has_sudo": True,
            "has_apt": True,
            "cpu_count": 8,
            "in_container": True,
        }
    """
    return {
        "distro": read_distro(),
        "is_root": os.geteuid() == 0,
        "has_sudo": shutil.which("sudo") is not None,
        "has_apt": shutil.which("apt-get") is not None,
        "cpu_count": cpu_count(),
        "in_container": in_container(),
    }
