"""
Shared fixtures: setiap test memakai SQLite file sendiri sebagai lock store.
"""

import pytest

from sqllock.locking.provider import LockProvider
from sqllock.storage.lock_store import LockStore


@pytest.fixture
def db_url(tmp_path):
    """Sync SQLAlchemy URL ke SQLite file di tmp_path"""
    return f"sqlite:///{tmp_path / 'locks.db'}"


@pytest.fixture
def async_db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'locks.db'}"


@pytest.fixture
def store(db_url):
    store = LockStore(db_url)
    store.ensure_schema()
    yield store
    store.dispose()


@pytest.fixture
def provider(db_url):
    """Provider dengan lock table yang sudah dibuat"""
    provider = LockProvider.from_url(db_url)
    provider.ensure_schema()
    yield provider
    provider.close()
