"""Shared pytest fixtures for FinanzaPro tests."""

import pytest

from finanzapro.clients import MockRemoteClient
from finanzapro.config import SyncConfig
from finanzapro.db.database import Database
from finanzapro.services import DataManager, SyncEngine

USER_ID = "user-1"


@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path."""
    return tmp_path / "test_finanzapro.db"


@pytest.fixture
def database(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db
    db.close()


@pytest.fixture
def mock_remote():
    """In-memory remote signed in as the test user."""
    return MockRemoteClient(user_id=USER_ID)


@pytest.fixture
def sync_config():
    """Fast sync settings: short debounce and timeout, immediate retries."""
    return SyncConfig(
        debounce_seconds=0.01,
        remote_timeout_seconds=0.5,
        max_attempts=3,
        backoff_base_seconds=0.0,
        backoff_max_seconds=0.0,
    )


@pytest.fixture
async def engine(database, mock_remote, sync_config):
    """Sync engine for the test user, online."""
    sync_engine = SyncEngine(database, mock_remote, sync_config, user_id=USER_ID)
    yield sync_engine
    await sync_engine.cancel_scheduled()
    await sync_engine.wait_scheduled()


@pytest.fixture
async def manager(database, mock_remote, sync_config):
    """Initialized, online data manager for the test user."""
    data_manager = DataManager(database, mock_remote, sync_config)
    await data_manager.initialize(USER_ID)
    yield data_manager
    await data_manager.engine.cancel_scheduled()
    await data_manager.engine.wait_scheduled()


@pytest.fixture
async def offline_manager(database, mock_remote, sync_config):
    """Initialized data manager that starts offline."""
    mock_remote.offline = True
    data_manager = DataManager(database, mock_remote, sync_config, online=False)
    await data_manager.initialize(USER_ID)
    yield data_manager
    await data_manager.engine.cancel_scheduled()
    await data_manager.engine.wait_scheduled()

