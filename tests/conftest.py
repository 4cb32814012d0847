"""
Global test configuration.
"""

import pytest

from chainkit.config import CONFIG_ENV_VAR, config
from tests.helpers import AddOne, Double


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch):
    """Run every test on the repository configuration, restoring it afterwards"""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    yield
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    config.reload()


@pytest.fixture
def add_one() -> AddOne:
    return AddOne()


@pytest.fixture
def double() -> Double:
    return Double()
