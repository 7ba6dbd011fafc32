"""
Pytest configuration and shared fixtures for sheetsync tests.
"""

import os
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from sheetsync.session import SyncEngine
from tests.fakes import FakeSpreadsheet, FakeTable, ManualScheduler
from utils.metrics import SyncMetrics

TASK_GRID = [
    ["Name", "Due Date", "% Complete"],
    ["Write docs", "2024-01-05", 50],
    ["Ship it", "2024-02-01", 0],
]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch) -> None:
    """Set default environment variables if not already set."""
    defaults = {
        "POSTGRES_HOST": "localhost",
        "POSTGRES_PORT": "5432",
        "POSTGRES_DB": "sheetsync_test",
        "POSTGRES_USER": "postgres",
        "POSTGRES_PASSWORD": "postgres_test_password",
    }

    for key, value in defaults.items():
        if key not in os.environ:
            monkeypatch.setenv(key, value)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def sync_metrics(registry) -> SyncMetrics:
    return SyncMetrics(registry=registry)


@pytest.fixture
def sheet() -> FakeSpreadsheet:
    return FakeSpreadsheet([list(row) for row in TASK_GRID])


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def engine(sheet, table, scheduler, sync_metrics) -> SyncEngine:
    return SyncEngine(sheet, table, scheduler=scheduler, metrics=sync_metrics)


@pytest.fixture
def connected_engine(engine) -> SyncEngine:
    engine.connect("sheet-id", "Tasks", "tasks")
    return engine
