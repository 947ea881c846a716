"""Test configuration and fixtures."""

import logging

import pytest

from d8_mirror.image.layout import ImageLayout
from d8_mirror.puller.puller import PullerService
from d8_mirror.utils.log import UserLogger
from tests.helpers import FakeGetterService


@pytest.fixture
def user_logger():
    """Progress logger writing to the captured test log."""
    return UserLogger(logging.getLogger("tests.user"))


@pytest.fixture
def puller(user_logger):
    """Puller retrying without waiting."""
    return PullerService(user_logger=user_logger, retry_interval=0)


@pytest.fixture
def layout(tmp_path):
    """Fresh empty image layout."""
    return ImageLayout.create(tmp_path / "layout")


@pytest.fixture
def getter():
    """Scripted getter service."""
    return FakeGetterService()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring registry"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")
