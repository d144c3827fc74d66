"""Shared pytest fixtures for cfnweave tests."""

from pathlib import Path

import pytest

from cfnweave.config import CompilerConfig
from cfnweave.metrics import load_alarm_specs, load_catalog


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def templates_dir(fixtures_dir: Path) -> Path:
    """Return path to template fixtures."""
    return fixtures_dir / "templates"


@pytest.fixture
def catalog_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "metrics" / "catalog.yml"


@pytest.fixture
def alarms_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "metrics" / "alarms.yml"


@pytest.fixture
def catalog(catalog_path: Path):
    """Return the loaded fixture metric catalog."""
    return load_catalog(catalog_path)


@pytest.fixture
def alarm_specs(alarms_path: Path):
    """Return the loaded fixture AlarmSpec set."""
    return load_alarm_specs(alarms_path)


@pytest.fixture
def compiler_config(tmp_path: Path) -> CompilerConfig:
    """Return a config writing into a temporary output directory."""
    config = CompilerConfig()
    config.output.directory = str(tmp_path / "out")
    return config
