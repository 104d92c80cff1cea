"""
Recipe builder — turns ProvisionConfig + host profile into Steps.

The order here IS the provisioning contract:

    refresh → dependencies → clone → udev → build → cleanup

Each phase mirrors the stock librealsense2 dev-container install.
Kernel patches are never applied; they are not feasible in a
container.
"""

from __future__ import annotations

import logging

from rsprovision.core.models.provision import ProvisionConfig
from rsprovision.core.models.recipe import Recipe, Step
from rsprovision.core.services.detection import default_build_jobs

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

# Options that make apt-get update survive flaky mirrors and proxies
_APT_UPDATE_OPTS = [
    "-o", "Acquire::Retries=3",
    "-o", "Acquire::http::Pipeline-Depth=0",
    "-o", "Acquire::CompressionTypes::Order::=gz",
]


def substitute_vars(command: list[str], variables: dict[str, str]) -> list[str]:
    """Replace ``{var}`` placeholders in a command array.

    Args:
        command: Command array with possible ``{var}`` tokens.
        variables: Mapping of variable names to their values.

    Returns:
        New list with all ``{key}`` tokens substituted.
    """
    result: list[str] = []
    for token in command:
        for key, value in variables.items():
            token = token.replace(f"{{{key}}}", str(value))
        result.append(token)
    return result


def build_jobs(config: ProvisionConfig, profile: dict | None = None) -> int:
    if config.jobs:
        return config.jobs
    cores = (profile or {}).get("cpu_count")
    return default_build_jobs(cores)


def _apt(step_id: str, label: str, args: list[str], timeout: int) -> Step:
    return Step(
        id=step_id,
        label=label,
        phase="refresh",
        command=["apt-get", *args],
        needs_sudo=True,
        env=dict(_APT_ENV),
        timeout=timeout,
    )


def _refresh_steps(config: ProvisionConfig) -> list[Step]:
    t = config.timeouts.apt
    steps = [_apt("apt-update-fix-missing", "Refresh package index", ["update", "--fix-missing"], t)]
    if not config.skip_upgrade:
        steps += [
            _apt("apt-upgrade", "Upgrade packages", ["upgrade", "-y", "--fix-missing"], t),
            _apt("apt-dist-upgrade", "Dist-upgrade packages", ["dist-upgrade", "-y", "--fix-missing"], t),
        ]
    steps += [
        Step(
            id="apt-lists-wipe",
            label="Drop cached package lists",
            phase="refresh",
            command=["sh", "-c", "rm -rf /var/lib/apt/lists/*"],
            needs_sudo=True,
            timeout=config.timeouts.default,
        ),
        _apt("apt-clean", "Clean package cache", ["clean"], config.timeouts.default),
        _apt("apt-update", "Refresh package index (robust)", ["update", *_APT_UPDATE_OPTS], t),
    ]
    return steps


def _install_step(step_id: str, label: str, packages: list[str], timeout: int) -> Step:
    return Step(
        id=step_id,
        label=label,
        phase="dependencies",
        command=["apt-get", "install", "--yes", "--no-install-recommends", *packages],
        needs_sudo=True,
        env=dict(_APT_ENV),
        timeout=timeout,
    )


def _dependency_steps(config: ProvisionConfig) -> list[Step]:
    steps: list[Step] = []
    if config.base_packages:
        steps.append(_install_step(
            "install-base", "Install container prerequisites",
            config.base_packages, config.timeouts.apt,
        ))
    steps.append(Step(
        id="udev-rules-dir",
        label="Ensure udev rules directory",
        phase="dependencies",
        command=["mkdir", "-p", config.udev_rules_dir],
        needs_sudo=True,
        timeout=config.timeouts.default,
    ))
    steps.append(_install_step(
        "install-deps", "Install build dependencies",
        config.all_packages, config.timeouts.apt,
    ))
    return steps


def _clone_step(config: ProvisionConfig) -> Step:
    cmd = ["git", "clone"]
    if config.branch:
        cmd += ["--branch", config.branch]
    if config.depth:
        cmd += ["--depth", str(config.depth)]
    cmd += [config.repository, config.clone_dir]
    return Step(
        id="git-clone",
        label="Clone librealsense",
        phase="clone",
        command=cmd,
        timeout=config.timeouts.clone,
    )


def _build_steps(config: ProvisionConfig, jobs: int, build_dir: str) -> list[Step]:
    variables = {
        "nproc": str(jobs),
        "clone_dir": config.clone_dir,
        "build_dir": build_dir,
    }
    configure_cmd = ["cmake", "..", f"-DCMAKE_BUILD_TYPE={config.build_type}"]
    if config.install_prefix:
        configure_cmd.append(f"-DCMAKE_INSTALL_PREFIX={config.install_prefix}")
    configure_cmd += substitute_vars(config.cmake_args, variables)

    return [
        Step(
            id="build-dir",
            label="Create build directory",
            phase="build",
            adapter="filesystem",
            operation="mkdir",
            path=build_dir,
        ),
        Step(
            id="cmake-configure",
            label=f"Configure ({config.build_type})",
            phase="build",
            command=configure_cmd,
            cwd=build_dir,
            timeout=config.timeouts.configure,
        ),
        Step(
            id="make-uninstall",
            label="Uninstall previous SDK",
            phase="build",
            command=["make", "uninstall"],
            cwd=build_dir,
            needs_sudo=True,
            timeout=config.timeouts.install,
        ),
        Step(
            id="make-clean",
            label="Clean build tree",
            phase="build",
            command=["make", "clean"],
            cwd=build_dir,
            timeout=config.timeouts.default,
        ),
        Step(
            id="make-build",
            label=f"Compile ({jobs} jobs)",
            phase="build",
            command=["make", f"-j{jobs}"],
            cwd=build_dir,
            timeout=config.timeouts.build,
        ),
        Step(
            id="make-install",
            label="Install SDK",
            phase="build",
            command=["make", "install"],
            cwd=build_dir,
            needs_sudo=True,
            timeout=config.timeouts.install,
        ),
    ]


def build_recipe(config: ProvisionConfig, profile: dict | None = None) -> Recipe:
    """Build the ordered provisioning recipe.

    Args:
        config: Provisioning parameters.
        profile: Host profile from ``detection.host_profile()``. Only
            ``cpu_count`` is read; may be None.

    Returns:
        Recipe with every step in execution order.
    """
    jobs = build_jobs(config, profile)
    build_dir = f"{config.clone_dir.rstrip('/')}/build"

    steps: list[Step] = []
    steps += _refresh_steps(config)
    steps += _dependency_steps(config)
    steps.append(_clone_step(config))
    steps.append(Step(
        id="setup-udev-rules",
        label="Install udev rules",
        phase="udev",
        # the script's inner sudo calls need no password once root
        command=["./scripts/setup_udev_rules.sh"],
        cwd=config.clone_dir,
        needs_sudo=True,
        timeout=config.timeouts.default,
    ))
    steps += _build_steps(config, jobs, build_dir)
    steps.append(Step(
        id="remove-clone",
        label="Remove temporary source tree",
        phase="cleanup",
        adapter="filesystem",
        operation="remove",
        path=config.clone_dir,
    ))

    tolerated = set(config.allow_failure)
    known = {s.id for s in steps}
    for unknown in sorted(tolerated - known):
        logger.warning("allow_failure names unknown step '%s'", unknown)
    for step in steps:
        if step.id in tolerated:
            step.allow_failure = True

    return Recipe(steps=steps)
