"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./billing-test.db")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_paystack_secret")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")
os.environ.setdefault("ADMIN_EMAIL", "")
os.environ.setdefault("SENDER_API_KEY", "")

from src.models import Base, OrderStatus, ProductCategory  # noqa: E402
from tests.helpers import STATUS_IDS, Seeder, reset_caches  # noqa: E402


@pytest.fixture(autouse=True)
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Engine, None, None]:
    """Provide a fresh SQLite database with the schema and order statuses.

    The application reaches the same file through aiosqlite; tests seed and
    inspect it through this synchronous engine.

    Yields:
        Engine: Synchronous engine bound to the test database.
    """
    db_path = tmp_path / "billing.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    reset_caches()

    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        session.add_all(OrderStatus(order_status_id=sid, name=name) for name, sid in STATUS_IDS.items())
        session.add(ProductCategory(category_name="Course"))
        session.commit()

    yield engine

    engine.dispose()
    reset_caches()


@pytest.fixture
def seed(database: Engine) -> Seeder:
    """Provide a row factory bound to the test database."""
    return Seeder(database)


@pytest.fixture
def test_settings() -> Any:
    """Provide settings read from the test environment."""
    from src.core.config import get_settings

    return get_settings()


@pytest.fixture
def notifier() -> MagicMock:
    """Provide a notification dispatcher that records calls."""
    mock = MagicMock()
    mock.notify_payment = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def client(notifier: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client with the notification dispatcher mocked.

    Args:
        notifier: Mocked dispatcher injected in place of the real one.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.api.deps import get_notification_service
    from src.main import app

    app.dependency_overrides[get_notification_service] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
