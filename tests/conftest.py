"""Shared fixtures for RoadCron tests."""
from __future__ import annotations

import pytest

from tests.helpers import FakeTimerFactory


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()
