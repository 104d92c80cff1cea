"""
Provision config model — loaded from provision.yml.

Every field is optional. The defaults reproduce the stock
librealsense2 dev-container install: Release build from the
upstream master branch into the CMake default prefix.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

DEFAULT_REPOSITORY = "https://github.com/IntelRealSense/librealsense.git"
DEFAULT_CLONE_DIR = "/tmp/librealsense"
DEFAULT_UDEV_RULES_DIR = "/etc/udev/rules.d"

# Build and runtime dependencies of librealsense2 (TLS, USB, udev,
# GTK, GL/GLFW and the toolchain).
DEFAULT_PACKAGES: list[str] = [
    "libssl-dev",
    "libusb-1.0-0-dev",
    "libudev-dev",
    "pkg-config",
    "libgtk-3-dev",
    "git",
    "wget",
    "cmake",
    "build-essential",
    "libglfw3-dev",
    "libgl1-mesa-dev",
    "libglu1-mesa-dev",
]

# Container prerequisites: camera tooling, and udev itself so that
# the rules directory exists.
BASE_PACKAGES: list[str] = ["v4l-utils", "udev"]


class Timeouts(BaseModel):
    """Per-kind step timeouts in seconds."""

    apt: int = 1800
    clone: int = 1800
    configure: int = 300
    build: int = 7200
    install: int = 600
    default: int = 300


class ProvisionConfig(BaseModel):
    """Provisioning parameters."""

    repository: str = DEFAULT_REPOSITORY
    branch: str | None = None
    depth: int | None = None
    clone_dir: str = DEFAULT_CLONE_DIR

    build_type: str = "Release"
    cmake_args: list[str] = Field(default_factory=list)
    install_prefix: str | None = None   # None = CMake default (/usr/local)
    jobs: int | None = None             # None = cpu_count - 1

    packages: list[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGES))
    base_packages: list[str] = Field(default_factory=lambda: list(BASE_PACKAGES))
    extra_packages: list[str] = Field(default_factory=list)

    udev_rules_dir: str = DEFAULT_UDEV_RULES_DIR
    skip_upgrade: bool = False
    allow_failure: list[str] = Field(default_factory=list)

    timeouts: Timeouts = Field(default_factory=Timeouts)

    @field_validator("jobs")
    @classmethod
    def _jobs_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("jobs must be >= 1")
        return v

    @field_validator("depth")
    @classmethod
    def _depth_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("depth must be >= 1")
        return v

    @property
    def all_packages(self) -> list[str]:
        """Dependency packages in install order, without duplicates."""
        seen: set[str] = set()
        ordered: list[str] = []
        for pkg in [*self.packages, *self.extra_packages]:
            if pkg not in seen:
                seen.add(pkg)
                ordered.append(pkg)
        return ordered

    @property
    def effective_prefix(self) -> str:
        return self.install_prefix or "/usr/local"
