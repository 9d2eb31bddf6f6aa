"""Shared test fixtures and configuration."""

import os
import pytest
from typing import Any, Dict

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
def stripe_row():
    """Build a legacy-export row; keyword arguments override columns by name."""

    def _make(**overrides: Any) -> Dict[str, str]:
        row = {
            "Transaction ID": "ch_1001",
            "Cust Subscription Data ID": "",
            "Cust ID": "cus_1001",
            "Amount": "50.00",
            "Created Formatted": "2025-03-01 10:15:00",
            "Status": "succeeded",
            "Cust Subscription Data Plan Nickname": "",
            "Description": "General Monthly Donation",
            "metadata": "",
            "Cust Email": "jane@example.org",
            "Billing Details Email": "",
            "Billing Details Name": "Jane Donor",
            "Cust Phone": "555-0100",
            "Billing Details Address Line 1": "1 Main St",
            "Billing Details Address Line 2": "",
            "Billing Details Address City": "Springfield",
            "Billing Detail Address State": "IL",
            "Billing Details Address Postal Code": "62701",
            "Billing Details Address Country": "US",
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def auth_headers():
    """Return headers with authentication."""
    return {"Authorization": f"Bearer {os.environ['API_KEY']}"}


# Database fixtures
@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    from donation_ledger.database import Base, create_async_engine

    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    from donation_ledger.database import get_async_session_factory

    return get_async_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger_scope(session_factory):
    """Opens one committed ledger scope per call, like the importer does per row."""
    from donation_ledger.database.ledger import ledger_transaction

    return lambda: ledger_transaction(session_factory)
