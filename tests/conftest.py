"""Shared test fixtures and configuration."""

import os
import pytest
from typing import Dict

# Set up test environment variables before importing modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key_id")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_key_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "rzp_test_webhook_secret")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("FEE_GATEWAY", "simulator")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")


@pytest.fixture
def settings():
    """Settings built from the test environment."""
    from fee_ledger.config import Settings

    return Settings.from_env()


@pytest.fixture
def simulator(settings):
    """Simulator signing with the same secrets the services verify with."""
    from fee_ledger.connectors import SimulatorConnector, SimulatorConfig

    return SimulatorConnector(SimulatorConfig(
        seed=42,
        key_secret=settings.razorpay_key_secret,
        webhook_secret=settings.razorpay_webhook_secret,
    ))


# Database fixtures for integration tests
@pytest.fixture
async def test_db_engine():
    """Create an in-memory SQLite database for testing."""
    from fee_ledger.database import Base, create_async_engine

    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def file_db_engine(tmp_path):
    """SQLite file database, for tests that need independent connections."""
    from fee_ledger.database import Base, create_async_engine

    engine = create_async_engine(database_url=f"sqlite+aiosqlite:///{tmp_path / 'fees.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db_session(test_db_engine):
    """Create a database session for testing."""
    from fee_ledger.database import get_async_session_factory

    session_factory = get_async_session_factory(test_db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_account(test_db_session):
    """Factory creating committed fee accounts; amounts in paise."""
    from fee_ledger.database import FeeAccountRepository

    async def _make(total_owed: int = 500000, student_id: str = "stu_001", **kwargs):
        account = await FeeAccountRepository(test_db_session).create(
            student_id=student_id,
            total_owed=total_owed,
            **kwargs,
        )
        await test_db_session.commit()
        return account

    return _make


@pytest.fixture
def token_headers():
    """Build Authorization headers for a role."""
    from fee_ledger.auth import create_token

    def _headers(role: str = "student", subject: str = "user_1") -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_token(subject, role)}"}

    return _headers
