"""Shared test setup: in-memory database and a temporary log directory."""

import os
import tempfile
from collections.abc import Iterator

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="receipt-insights-logs-")
os.environ["RECEIPT_AGENT"] = "placeholder"
os.environ.pop("ANALYSIS_BACKEND_URL", None)

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from receipt_insights.core.db import create_session_factory, get_engine, init_db  # noqa: E402
from receipt_insights.services.expense_store import ExpenseStore  # noqa: E402


@pytest.fixture
def session_factory() -> Iterator[sessionmaker]:
    """Session factory over a fresh in-memory database."""
    engine = get_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory: sessionmaker) -> ExpenseStore:
    """ExpenseStore over a fresh in-memory database."""
    return ExpenseStore(session_factory)
