# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up environment variables before any imports
# - Provides a recording logger so tests can assert on log records
# - Provides app/client factories for development and production mode
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# app.main builds a module-level app at import time

os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app


# =============================================================================
# Test Doubles
# =============================================================================

class RecordingLogger:
    """StructuredLogger stand-in that keeps every record in memory."""

    name = "test"

    def __init__(self):
        self.records: list[dict] = []

    def _record(self, level: str, message: str, **attributes):
        self.records.append({"level": level, "message": message, "attributes": attributes})

    def debug(self, message, **attributes):
        self._record("debug", message, **attributes)

    def info(self, message, **attributes):
        self._record("info", message, **attributes)

    def warn(self, message, **attributes):
        self._record("warn", message, **attributes)

    warning = warn

    def error(self, message, **attributes):
        self._record("error", message, **attributes)

    def child(self, suffix):
        # Fault channels record into the same list
        return self

    def at(self, level: str) -> list[dict]:
        return [record for record in self.records if record["level"] == level]

    def messages(self, level: str | None = None) -> list[str]:
        records = self.records if level is None else self.at(level)
        return [record["message"] for record in records]


class FixedClock:
    """Uptime source returning a fixed value."""

    def __init__(self, value: float):
        self.value = value

    def uptime(self) -> float:
        return self.value


# =============================================================================
# Fixtures
# =============================================================================

def make_settings(**overrides) -> Settings:
    values = {"ENVIRONMENT": "development"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
def dev_settings():
    return make_settings()


@pytest.fixture
def prod_settings():
    return make_settings(ENVIRONMENT="production")


@pytest.fixture
def app(dev_settings, logger):
    return create_app(settings=dev_settings, logger=logger)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def prod_app(prod_settings, logger):
    return create_app(settings=prod_settings, logger=logger)


@pytest.fixture
def prod_client(prod_app):
    return TestClient(prod_app)
