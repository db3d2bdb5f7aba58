"""Shared fixtures for Earshot tests."""

import pytest

from earshot.core.permission import PermissionGate
from earshot.ui.display import ImmediateDispatcher, MemoryDisplay
from earshot.utils.config import get_default_config
from fakes import DeniedPermission, GrantedPermission, group


@pytest.fixture
def fast_config():
    """Default configuration with a fast schedule for tests."""
    config = get_default_config()
    config["schedule"].update({
        "initial_delay_ms": 1,
        "interval_ms": 10,
        "max_consecutive_failures": 3,
        "stop_timeout_ms": 1000,
    })
    return config


@pytest.fixture
def memory_display():
    return MemoryDisplay()


@pytest.fixture
def immediate_dispatcher():
    return ImmediateDispatcher()


@pytest.fixture
def granted_gate():
    return PermissionGate(GrantedPermission())


@pytest.fixture
def denied_permission():
    return DeniedPermission()


@pytest.fixture
def scenario_classifications():
    """The five-category example: Dog, Bird twice, Wind, Cat."""
    return [group(("Dog", 0.9), ("Bird", 0.5), ("Bird", 0.2), ("Wind", 0.31), ("Cat", 0.05))]
