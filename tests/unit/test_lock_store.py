"""
Unit tests untuk SQLAlchemy lock record store.
"""

import pytest
from sqlalchemy import MetaData, inspect
from sqlalchemy.dialects import mssql, mysql, postgresql, sqlite
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.schema import CreateTable

from sqllock.storage.lock_store import (
    AsyncLockStore,
    ClaimOutcome,
    LockStore,
    build_lock_table,
    is_unique_violation,
)


class FakeDriverError(Exception):
    """Meniru DBAPI exception dengan atribut driver-specific"""

    def __init__(self, *args, sqlstate=None, pgcode=None):
        super().__init__(*args)
        self.sqlstate = sqlstate
        self.pgcode = pgcode


def _integrity_error(orig):
    return IntegrityError("INSERT INTO locks", {}, orig)


def test_ensure_schema_is_idempotent(store):
    """Test ensure_schema bisa dipanggil berulang kali"""
    assert store.table_exists()

    store.ensure_schema()
    store.ensure_schema()

    assert store.table_exists()


def test_schema_columns(store):
    """Test kolom lock table sesuai schema"""
    inspector = inspect(store.engine)
    columns = {col['name']: col for col in inspector.get_columns('DistributedLocks')}

    assert set(columns) == {'identity', 'token', 'context', 'created_at'}
    assert columns['identity']['nullable'] is False
    assert columns['token']['nullable'] is False
    assert columns['context']['nullable'] is True
    assert columns['created_at']['nullable'] is False
    assert columns['created_at']['default'] is not None

    pk = inspector.get_pk_constraint('DistributedLocks')
    assert pk['constrained_columns'] == ['identity']


@pytest.mark.parametrize('dialect, expected_default', [
    (sqlite.dialect(), 'DEFAULT CURRENT_TIMESTAMP'),
    (postgresql.dialect(), "DEFAULT TIMEZONE('utc', CURRENT_TIMESTAMP)"),
    (mysql.dialect(), 'DEFAULT (UTC_TIMESTAMP())'),
    (mssql.dialect(), 'DEFAULT GETUTCDATE()'),
])
def test_created_at_default_is_utc_per_dialect(dialect, expected_default):
    """Test DDL created_at memakai UTC timestamp di setiap backend"""
    ddl = str(CreateTable(build_lock_table()).compile(dialect=dialect))

    created_at = next(line for line in ddl.splitlines() if 'created_at' in line)
    assert expected_default in created_at


def test_custom_table_name(db_url):
    """Test table name bisa dikonfigurasi"""
    store = LockStore(db_url, table_name='JobLocks')
    store.ensure_schema()

    assert inspect(store.engine).has_table('JobLocks')
    assert not inspect(store.engine).has_table('DistributedLocks')
    store.dispose()


def test_try_claim_acquired_then_contended(store):
    """Test insert kedua pada identity yang sama adalah contention"""
    assert store.try_claim('resource1', 'token-a') == ClaimOutcome.ACQUIRED
    assert store.try_claim('resource1', 'token-b') == ClaimOutcome.CONTENDED

    record = store.get_record('resource1')
    assert record['token'] == 'token-a'


def test_claim_stores_context_and_timestamp(store):
    """Test context disimpan dan created_at di-set oleh store"""
    store.try_claim('resource1', 'token-a', context='worker-7')

    record = store.get_record('resource1')
    assert record['identity'] == 'resource1'
    assert record['context'] == 'worker-7'
    assert record['created_at'] is not None


def test_delete_claim_requires_matching_token(store):
    """Test delete dengan token yang salah tidak menghapus record"""
    store.try_claim('resource1', 'token-a')

    assert store.delete_claim('resource1', 'fabricated-token') == 0
    assert store.get_record('resource1') is not None

    assert store.delete_claim('resource1', 'token-a') == 1
    assert store.get_record('resource1') is None


def test_delete_missing_record_returns_zero(store):
    """Test delete record yang tidak ada bukan error"""
    assert store.delete_claim('missing', 'token') == 0


def test_ensure_schema_ignores_concurrent_create(store, monkeypatch):
    """Test DDL race diabaikan jika table sudah ada"""
    def racing_create_all(self, bind, **kwargs):
        raise OperationalError("CREATE TABLE", {}, Exception("table already exists"))

    monkeypatch.setattr(MetaData, 'create_all', racing_create_all)

    store.ensure_schema()


def test_ensure_schema_propagates_real_failures(db_url, monkeypatch):
    """Test DDL error di-propagate jika table memang belum ada"""
    def failing_create_all(self, bind, **kwargs):
        raise OperationalError("CREATE TABLE", {}, Exception("permission denied"))

    monkeypatch.setattr(MetaData, 'create_all', failing_create_all)
    store = LockStore(db_url)

    with pytest.raises(OperationalError):
        store.ensure_schema()
    store.dispose()


def test_unique_violation_sqlite_message():
    """Test SQLite UNIQUE constraint message dikenali"""
    orig = FakeDriverError("UNIQUE constraint failed: DistributedLocks.identity")
    assert is_unique_violation(_integrity_error(orig))


def test_unique_violation_sqlstate():
    """Test PostgreSQL SQLSTATE 23505 dikenali"""
    assert is_unique_violation(_integrity_error(FakeDriverError("boom", sqlstate="23505")))
    assert is_unique_violation(_integrity_error(FakeDriverError("boom", pgcode="23505")))


def test_unique_violation_error_numbers():
    """Test MySQL dan SQL Server error numbers dikenali"""
    assert is_unique_violation(_integrity_error(FakeDriverError(1062, "Duplicate entry 'x'")))
    assert is_unique_violation(_integrity_error(FakeDriverError(2627, "Violation")))


def test_other_integrity_errors_are_not_contention():
    """Test NOT NULL violation bukan contention"""
    orig = FakeDriverError("NOT NULL constraint failed: DistributedLocks.token")
    assert not is_unique_violation(_integrity_error(orig))


def test_non_unique_integrity_error_propagates(store, monkeypatch):
    """Test integrity error lain tidak diubah jadi CONTENDED"""
    def failing_statement(lock_id, token, context):
        return store.table.insert().values(identity=lock_id, token=None, context=context)

    monkeypatch.setattr(store, '_claim_statement', failing_statement)

    with pytest.raises(IntegrityError):
        store.try_claim('resource1', 'token-a')


@pytest.mark.asyncio
async def test_async_store_claim_and_delete(async_db_url):
    """Test async store dengan aiosqlite"""
    store = AsyncLockStore(async_db_url)
    await store.ensure_schema()
    assert await store.table_exists()

    assert await store.try_claim('resource1', 'token-a', 'ctx') == ClaimOutcome.ACQUIRED
    assert await store.try_claim('resource1', 'token-b') == ClaimOutcome.CONTENDED

    record = await store.get_record('resource1')
    assert record['context'] == 'ctx'

    assert await store.delete_claim('resource1', 'token-b') == 0
    assert await store.delete_claim('resource1', 'token-a') == 1
    assert await store.get_record('resource1') is None

    await store.dispose()


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
