"""
Lock Record Store berbasis SQLAlchemy.

Primary key pada kolom `identity` adalah satu-satunya mekanisme mutual
exclusion. Store ini hanya menyediakan:
- insert yang bisa ditolak oleh unique constraint (claim)
- delete yang di-qualify dengan identity + token (release)
- DDL "create table if not exists"

Setiap operasi membuka dan menutup connection sendiri (NullPool).
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import (
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    inspect,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.expression import FunctionElement

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "DistributedLocks"
MAX_LOCK_ID_LENGTH = 255
TOKEN_LENGTH = 255

# Duplicate-key signals dari berbagai driver
UNIQUE_VIOLATION_SQLSTATE = "23505"
UNIQUE_VIOLATION_ERRNOS = {1062, 2601, 2627}  # MySQL, SQL Server
UNIQUE_VIOLATION_MARKERS = (
    "unique constraint",
    "duplicate key",
    "duplicate entry",
    "primary key constraint",
)


class utcnow(FunctionElement):
    """Current UTC timestamp dari store, di-render per dialect"""
    type = DateTime()
    inherit_cache = True


@compiles(utcnow)
def _compile_utcnow(element, compiler, **kw):
    return "CURRENT_TIMESTAMP"


@compiles(utcnow, "postgresql")
def _compile_utcnow_postgresql(element, compiler, **kw):
    return "TIMEZONE('utc', CURRENT_TIMESTAMP)"


@compiles(utcnow, "mysql")
def _compile_utcnow_mysql(element, compiler, **kw):
    # Expression default butuh MySQL >= 8.0.13
    return "(UTC_TIMESTAMP())"


@compiles(utcnow, "mssql")
def _compile_utcnow_mssql(element, compiler, **kw):
    return "GETUTCDATE()"


def build_lock_table(table_name: str = DEFAULT_TABLE_NAME,
                     metadata: Optional[MetaData] = None) -> Table:
    """Definisi Lock Record table"""
    return Table(
        table_name,
        metadata if metadata is not None else MetaData(),
        Column("identity", String(MAX_LOCK_ID_LENGTH), primary_key=True, nullable=False),
        Column("token", String(TOKEN_LENGTH), nullable=False),
        Column("context", Text, nullable=True),
        Column("created_at", DateTime, nullable=False, server_default=utcnow()),
    )


class ClaimOutcome(Enum):
    """Hasil satu claim attempt"""
    ACQUIRED = "acquired"    # Insert berhasil, caller memegang lock
    CONTENDED = "contended"  # Unique violation, lock dipegang caller lain


def is_unique_violation(error: IntegrityError) -> bool:
    """
    Check apakah IntegrityError adalah duplicate-key violation.

    Integrity errors lain (NOT NULL, dsb) bukan contention dan harus
    di-propagate sebagai operation failure.
    """
    orig = getattr(error, "orig", None)
    if orig is None:
        return False

    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True

    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in UNIQUE_VIOLATION_ERRNOS:
        return True

    message = str(orig).lower()
    return any(marker in message for marker in UNIQUE_VIOLATION_MARKERS)


class _BaseLockStore:
    """Statement builders yang dipakai sync dan async store"""

    def __init__(self,
                 database_url: str,
                 table_name: str = DEFAULT_TABLE_NAME,
                 engine_options: Optional[Dict[str, Any]] = None):
        """
        Args:
            database_url: SQLAlchemy URL ke store
            table_name: Nama lock table
            engine_options: Extra kwargs untuk create_engine
        """
        self.database_url = database_url
        self.table_name = table_name
        self.engine_options = dict(engine_options or {})
        self.table = build_lock_table(table_name)

    def _claim_statement(self, lock_id: str, token: str, context: Optional[str]):
        return insert(self.table).values(identity=lock_id, token=token, context=context)

    def _release_statement(self, lock_id: str, token: str):
        return delete(self.table).where(
            self.table.c.identity == lock_id,
            self.table.c.token == token,
        )

    def _record_statement(self, lock_id: str):
        return select(self.table).where(self.table.c.identity == lock_id)

    def _has_table(self, sync_conn) -> bool:
        return inspect(sync_conn).has_table(self.table_name)

    def __repr__(self):
        return f"{type(self).__name__}(table={self.table_name!r})"


class LockStore(_BaseLockStore):
    """Synchronous lock record store"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(
                self.database_url, poolclass=NullPool, **self.engine_options
            )
        return self._engine

    def ensure_schema(self):
        """Create lock table jika belum ada"""
        try:
            with self.engine.begin() as conn:
                self.table.metadata.create_all(conn, checkfirst=True)
        except SQLAlchemyError as e:
            # Proses lain bisa menang race di level DDL
            if not self._exists_after_failure():
                raise
            logger.warning(f"Lock table {self.table_name} created concurrently, ignoring: {e}")

    def _exists_after_failure(self) -> bool:
        try:
            return self.table_exists()
        except SQLAlchemyError:
            return False

    def table_exists(self) -> bool:
        with self.engine.connect() as conn:
            return self._has_table(conn)

    def try_claim(self, lock_id: str, token: str, context: Optional[str] = None) -> ClaimOutcome:
        """
        Insert lock record.

        Returns:
            ClaimOutcome.ACQUIRED atau ClaimOutcome.CONTENDED

        Raises:
            SQLAlchemyError: untuk semua failure selain duplicate key
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(self._claim_statement(lock_id, token, context))
        except IntegrityError as e:
            if is_unique_violation(e):
                return ClaimOutcome.CONTENDED
            raise
        return ClaimOutcome.ACQUIRED

    def delete_claim(self, lock_id: str, token: str) -> int:
        """Delete record milik token ini. Returns jumlah row yang terhapus."""
        with self.engine.begin() as conn:
            result = conn.execute(self._release_statement(lock_id, token))
            return result.rowcount

    def get_record(self, lock_id: str) -> Optional[Dict[str, Any]]:
        """Baca lock record untuk diagnostics"""
        with self.engine.connect() as conn:
            row = conn.execute(self._record_statement(lock_id)).first()
        return dict(row._mapping) if row is not None else None

    def dispose(self):
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


class AsyncLockStore(_BaseLockStore):
    """
    Asynchronous lock record store (sqlalchemy.ext.asyncio).
    URL harus memakai async driver, contoh: sqlite+aiosqlite:///locks.db
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._engine: Optional[AsyncEngine] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self.database_url, poolclass=NullPool, **self.engine_options
            )
        return self._engine

    async def ensure_schema(self):
        """Create lock table jika belum ada"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(self.table.metadata.create_all, checkfirst=True)
        except SQLAlchemyError as e:
            if not await self._exists_after_failure():
                raise
            logger.warning(f"Lock table {self.table_name} created concurrently, ignoring: {e}")

    async def _exists_after_failure(self) -> bool:
        try:
            return await self.table_exists()
        except SQLAlchemyError:
            return False

    async def table_exists(self) -> bool:
        async with self.engine.connect() as conn:
            return await conn.run_sync(self._has_table)

    async def try_claim(self, lock_id: str, token: str, context: Optional[str] = None) -> ClaimOutcome:
        """Async version dari LockStore.try_claim"""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(self._claim_statement(lock_id, token, context))
        except IntegrityError as e:
            if is_unique_violation(e):
                return ClaimOutcome.CONTENDED
            raise
        return ClaimOutcome.ACQUIRED

    async def delete_claim(self, lock_id: str, token: str) -> int:
        async with self.engine.begin() as conn:
            result = await conn.execute(self._release_statement(lock_id, token))
            return result.rowcount

    async def get_record(self, lock_id: str) -> Optional[Dict[str, Any]]:
        async with self.engine.connect() as conn:
            result = await conn.execute(self._record_statement(lock_id))
            row = result.first()
        return dict(row._mapping) if row is not None else None

    async def dispose(self):
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
