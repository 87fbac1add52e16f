"""Shared pytest configuration and fixtures."""

import pytest
from rest_framework.test import APIClient

from core.settings_resolver import clear_settings_cache

pytest_plugins = [
    "bookings.tests.fixtures",
]


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()
