"""Shared pytest fixtures for lb-driver tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import LoadBalancerSettings  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep user config files and LB_DRIVER_* variables out of tests."""
    for var in ('LB_DRIVER_CONFIG', 'LB_DRIVER_KUBECTL', 'LB_DRIVER_CONTEXT', 'LB_DRIVER_KUBECONFIG'):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv('HOME', str(tmp_path / 'home'))


@pytest.fixture
def settings():
    """Default settings with short timeouts."""
    return LoadBalancerSettings(wait_timeout=5, command_timeout=10, reprobe_delay=0)


@pytest.fixture
def config_file(tmp_path):
    """Write a settings file and return its path."""
    def _write(content: str) -> Path:
        path = tmp_path / 'lb-driver.yaml'
        path.write_text(content)
        return path
    return _write
