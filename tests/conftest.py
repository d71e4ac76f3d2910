"""Shared test fixtures for quantguard tests."""

import os
from pathlib import Path

import numpy as np
import pytest

from quantguard.config import QuantGuardConfig, StatisticsConfig

FIXTURES = Path(__file__).parent / "fixtures"


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config files and QUANTGUARD_* variables out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("QUANTGUARD_"):
            monkeypatch.delenv(key)
    return home


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture
def config():
    """Default configuration with a single worker."""
    return QuantGuardConfig(workers=1)


@pytest.fixture
def small_pbo_config():
    """Eight PBO blocks, so 80-row matrices split evenly."""
    return QuantGuardConfig(workers=2, statistics=StatisticsConfig(pbo_blocks=8))


@pytest.fixture
def noise_matrix():
    """160 periods x 6 variants of pure noise."""
    rng = np.random.default_rng(0)
    return rng.normal(0.0, 0.01, size=(160, 6))


@pytest.fixture
def dominant_matrix():
    """Column 0 beats every other variant in every period range."""
    rng = np.random.default_rng(1)
    matrix = rng.normal(0.0, 0.001, size=(160, 6))
    matrix[:, 0] += 0.01
    return matrix


@pytest.fixture
def flat_returns():
    """Twenty returns averaging zero."""
    return [0.01, -0.01] * 10


@pytest.fixture
def strong_returns():
    """A hundred steadily positive returns."""
    return [0.012, 0.008] * 50
