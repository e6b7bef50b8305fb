"""
Pytest configuration and fixtures

Tests run against a single in-memory SQLite database migrated to Alembic head
once per session. Every table except the subscription_plans reference data is
emptied after each test.
"""
import pytest
import sys
import os
from pathlib import Path

# Settings are read at import time, so the environment has to be in place first.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only-0123456789")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BOOTSTRAP_RETRY_DELAY_S"] = "0"
os.environ["BOOTSTRAP_SETTLE_DELAY_S"] = "0"
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("ENVIRONMENT", "test")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(scope="session", autouse=True)
def _ensure_db_schema_is_at_head():
    """Apply all Alembic migrations to the test database."""
    try:
        from alembic import command
        from alembic.config import Config

        api_root = Path(__file__).resolve().parents[1]
        alembic_ini = api_root / "alembic.ini"

        cfg = Config(str(alembic_ini))
        # Alembic's script_location in alembic.ini is relative ("alembic")
        # so we set the working directory explicitly.
        cfg.set_main_option("script_location", str(api_root / "alembic"))
        command.upgrade(cfg, "head")
    except Exception as e:
        # Tests should fail loudly if migrations cannot be applied.
        raise RuntimeError(f"Failed to upgrade DB to Alembic head: {e}") from e


from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine
from core.events import ChangeFeed
from services.account_bootstrap import AccountBootstrap
from services.identity_service import sign_up
from services.store import StoreGateway

KEEP_TABLES = {"subscription_plans"}
DEFAULT_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            if table.name not in KEEP_TABLES:
                conn.execute(table.delete())


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(feed):
    """Store gateway with its own change feed, isolated from the app's."""
    return StoreGateway(SessionLocal, feed)


@pytest.fixture
def sleeps():
    """Records requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def bootstrap(store, sleeps):
    return AccountBootstrap(
        store,
        max_attempts=3,
        retry_delay=1.0,
        settle_delay=0.5,
        alias_suffix_attempts=5,
        sleep=sleeps.append,
    )


@pytest.fixture
def make_session(store):
    """Factory: sign up an identity and return its AuthSession."""
    def _make(email="a@b.com", password=DEFAULT_PASSWORD, **metadata):
        return sign_up(store, email, password, metadata)
    return _make


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as c:
        yield c