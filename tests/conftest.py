"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from rsprovision.adapters.mock import MockAdapter
from rsprovision.adapters.registry import AdapterRegistry


@pytest.fixture
def debian_profile() -> dict:
    """A provisionable host: Ubuntu, non-root with sudo, 8 cores."""
    return {
        "distro": {
            "id": "ubuntu",
            "version": "22.04",
            "like": ["debian"],
            "name": "Ubuntu 22.04.4 LTS",
            "family": "debian",
        },
        "is_root": False,
        "has_sudo": True,
        "has_apt": True,
        "cpu_count": 8,
        "in_container": True,
    }


@pytest.fixture
def config_file(tmp_path: Path):
    """Write a provision.yml under tmp_path and return its path.

    The clone dir defaults to a tmp location so tests never look at
    the real /tmp/librealsense.
    """

    def _write(body: str = "") -> Path:
        content = f"clone_dir: {tmp_path / 'librealsense'}\n" + textwrap.dedent(body)
        path = tmp_path / "provision.yml"
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def mock_registry() -> tuple[AdapterRegistry, MockAdapter]:
    """Registry in mock mode backed by a scriptable MockAdapter."""
    mock = MockAdapter()
    registry = AdapterRegistry(mock_mode=True)
    registry.set_mock_mode(True, mock)
    return registry, mock
