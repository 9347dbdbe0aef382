"""
Distributed Lock Provider.
Implementasi mutual exclusion antar proses dengan:
- Lock table di relational store sebagai arbitration point
- Claim = insert; primary key violation = lock sedang dipegang
- Fixed-interval retry sampai deadline
- Release yang di-validasi dengan token (identity + token harus match)

Provider tidak menyimpan state tentang siapa memegang lock apa;
satu-satunya source of truth adalah lock table.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .handle import LockHandle
from ..exceptions import LockOperationError, LockTimeoutError, SchemaBootstrapError
from ..storage.lock_store import (
    AsyncLockStore,
    ClaimOutcome,
    DEFAULT_TABLE_NAME,
    LockStore,
    MAX_LOCK_ID_LENGTH,
)
from ..utils.config import Config
from ..utils.metrics import metrics, measure_time

logger = logging.getLogger(__name__)

# Interval antara claim attempts (seconds)
DEFAULT_RETRY_INTERVAL = 0.1


def validate_request(lock_id: str, timeout: Optional[float] = None):
    """
    Validasi argument sebelum store disentuh.

    Raises:
        ValueError: lock_id kosong, lebih dari 255 karakter, atau timeout negatif
        TypeError: lock_id bukan string
    """
    if lock_id is None or lock_id == "":
        raise ValueError("Lock ID cannot be null or empty")
    if not isinstance(lock_id, str):
        raise TypeError(f"Lock ID must be a string, got {type(lock_id).__name__}")
    if len(lock_id) > MAX_LOCK_ID_LENGTH:
        raise ValueError(f"Lock ID length must be <= {MAX_LOCK_ID_LENGTH} characters")
    if timeout is not None and timeout < 0:
        raise ValueError("Timeout cannot be negative")


class LockProvider:
    """
    Provider untuk distributed locks di atas SQL table.

    Semua operasi punya versi sync dan async dengan behaviour yang sama;
    bedanya hanya cara menunggu (time.sleep vs asyncio.sleep).
    """

    def __init__(self,
                 store: Optional[LockStore] = None,
                 async_store: Optional[AsyncLockStore] = None,
                 retry_interval: float = DEFAULT_RETRY_INTERVAL,
                 auto_create_schema: bool = False):
        """
        Args:
            store: Store untuk operasi sync
            async_store: Store untuk operasi async
            retry_interval: Jeda antara claim attempts (seconds)
            auto_create_schema: Ensure schema sebelum acquire pertama
        """
        if store is None and async_store is None:
            raise ValueError("At least one of store or async_store is required")
        if retry_interval <= 0:
            raise ValueError("retry_interval must be positive")

        self.store = store
        self.async_store = async_store
        self.retry_interval = retry_interval
        self.auto_create_schema = auto_create_schema

        # Hanya flag untuk schema bootstrap, bukan state lock
        self._schema_ready = False
        self._async_schema_ready = False

    @classmethod
    def from_url(cls,
                 database_url: str,
                 async_database_url: Optional[str] = None,
                 table_name: str = DEFAULT_TABLE_NAME,
                 retry_interval: float = DEFAULT_RETRY_INTERVAL,
                 auto_create_schema: bool = False,
                 engine_options: Optional[Dict[str, Any]] = None) -> "LockProvider":
        """
        Buat provider dari SQLAlchemy URL.

        Async URL di-derive dari sync URL jika tidak diberikan. Jika tidak ada
        async driver yang dikenal, provider hanya mendukung operasi sync.
        """
        if async_database_url is None:
            try:
                async_database_url = Config.get_async_database_url(database_url)
            except ValueError as e:
                logger.debug(f"Async operations disabled: {e}")

        store = LockStore(database_url, table_name, engine_options)
        async_store = None
        if async_database_url:
            async_store = AsyncLockStore(async_database_url, table_name, engine_options)

        return cls(
            store=store,
            async_store=async_store,
            retry_interval=retry_interval,
            auto_create_schema=auto_create_schema,
        )

    @classmethod
    def from_config(cls) -> "LockProvider":
        """Buat provider dari environment configuration"""
        return cls.from_url(
            Config.DATABASE_URL,
            async_database_url=Config.ASYNC_DATABASE_URL or None,
            table_name=Config.LOCK_TABLE_NAME,
            retry_interval=Config.get_retry_interval(),
            auto_create_schema=Config.LOCK_AUTO_CREATE_SCHEMA,
        )

    def _require_store(self) -> LockStore:
        if self.store is None:
            raise RuntimeError("LockProvider has no synchronous store configured")
        return self.store

    def _require_async_store(self) -> AsyncLockStore:
        if self.async_store is None:
            raise RuntimeError("LockProvider has no asynchronous store configured")
        return self.async_store

    # ------------------------------------------------------------------
    # Schema bootstrap
    # ------------------------------------------------------------------

    def ensure_schema(self):
        """
        Create lock table jika belum ada. Idempotent.

        Raises:
            SchemaBootstrapError: jika store gagal
        """
        store = self._require_store()
        try:
            store.ensure_schema()
        except SQLAlchemyError as e:
            metrics.record_error('ensure_schema')
            raise SchemaBootstrapError(store.table_name, str(e)) from e

        self._schema_ready = True
        logger.info(f"Lock table {store.table_name} is ready")

    async def ensure_schema_async(self):
        """Async version dari ensure_schema()"""
        store = self._require_async_store()
        try:
            await store.ensure_schema()
        except SQLAlchemyError as e:
            metrics.record_error('ensure_schema')
            raise SchemaBootstrapError(store.table_name, str(e)) from e

        self._async_schema_ready = True
        logger.info(f"Lock table {store.table_name} is ready")

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def _next_delay(self, deadline: Optional[float]) -> Optional[float]:
        """
        Hitung jeda sebelum attempt berikutnya.
        Returns None jika tidak boleh retry lagi (tanpa deadline / deadline lewat).
        """
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        return min(self.retry_interval, remaining)

    def try_acquire(self, lock_id: str, timeout: Optional[float] = None,
                    context: Optional[str] = None) -> Optional[LockHandle]:
        """
        Coba acquire lock.

        Args:
            lock_id: Nama resource yang di-lock (1-255 karakter)
            timeout: Waktu maksimum menunggu (seconds). None = coba sekali saja
            context: Annotation bebas yang disimpan bersama lock

        Returns:
            LockHandle jika berhasil, None jika lock sedang dipegang caller lain

        Raises:
            ValueError: argument tidak valid
            LockOperationError: store gagal
        """
        validate_request(lock_id, timeout)
        store = self._require_store()
        if self.auto_create_schema and not self._schema_ready:
            self.ensure_schema()

        token = str(uuid.uuid4())
        deadline = time.monotonic() + timeout if timeout is not None else None

        with measure_time() as timer:
            acquired = self._claim_until_deadline(store, lock_id, token, context, deadline)
        return self._finish_acquire(lock_id, token, context, acquired, timer.elapsed)

    def _claim_until_deadline(self, store: LockStore, lock_id: str, token: str,
                              context: Optional[str], deadline: Optional[float]) -> bool:
        while True:
            if self._claim(store, lock_id, token, context) is ClaimOutcome.ACQUIRED:
                return True

            delay = self._next_delay(deadline)
            if delay is None:
                return False
            logger.debug(f"Lock '{lock_id}' is busy, retrying in {delay:.3f}s")
            time.sleep(delay)

    def _claim(self, store: LockStore, lock_id: str, token: str,
               context: Optional[str]) -> ClaimOutcome:
        try:
            outcome = store.try_claim(lock_id, token, context)
        except SQLAlchemyError as e:
            metrics.record_error('acquire')
            raise LockOperationError(lock_id, 'acquire') from e
        metrics.record_claim(outcome.value)
        return outcome

    async def try_acquire_async(self, lock_id: str, timeout: Optional[float] = None,
                                context: Optional[str] = None) -> Optional[LockHandle]:
        """
        Async version dari try_acquire().

        Cancellation (Task.cancel) dihormati selama store I/O dan selama
        backoff; CancelledError di-propagate ke caller.
        """
        validate_request(lock_id, timeout)
        store = self._require_async_store()
        if self.auto_create_schema and not self._async_schema_ready:
            await self.ensure_schema_async()

        token = str(uuid.uuid4())
        deadline = time.monotonic() + timeout if timeout is not None else None

        with measure_time() as timer:
            acquired = await self._claim_until_deadline_async(store, lock_id, token, context, deadline)
        return self._finish_acquire(lock_id, token, context, acquired, timer.elapsed)

    async def _claim_until_deadline_async(self, store: AsyncLockStore, lock_id: str, token: str,
                                          context: Optional[str], deadline: Optional[float]) -> bool:
        while True:
            if await self._claim_async(store, lock_id, token, context) is ClaimOutcome.ACQUIRED:
                return True

            delay = self._next_delay(deadline)
            if delay is None:
                return False
            logger.debug(f"Lock '{lock_id}' is busy, retrying in {delay:.3f}s")
            await asyncio.sleep(delay)

    async def _claim_async(self, store: AsyncLockStore, lock_id: str, token: str,
                           context: Optional[str]) -> ClaimOutcome:
        try:
            outcome = await store.try_claim(lock_id, token, context)
        except asyncio.CancelledError:
            # Insert mungkin sudah commit sebelum cancellation masuk
            await self._discard_claim_async(store, lock_id, token)
            raise
        except SQLAlchemyError as e:
            metrics.record_error('acquire')
            raise LockOperationError(lock_id, 'acquire') from e
        metrics.record_claim(outcome.value)
        return outcome

    async def _discard_claim_async(self, store: AsyncLockStore, lock_id: str, token: str):
        """Best-effort delete untuk claim yang dibatalkan"""
        try:
            await asyncio.shield(store.delete_claim(lock_id, token))
        except (SQLAlchemyError, asyncio.CancelledError) as e:
            logger.warning(f"Could not clean up cancelled claim on '{lock_id}': {e!r}")

    def _finish_acquire(self, lock_id: str, token: str, context: Optional[str],
                        acquired: bool, elapsed: float) -> Optional[LockHandle]:
        metrics.record_acquisition(acquired, elapsed)
        if not acquired:
            logger.info(f"Lock '{lock_id}' is held by another owner, not acquired")
            return None

        logger.info(f"Acquired lock '{lock_id}' in {elapsed:.3f}s")
        return LockHandle(self, lock_id, token, context)

    def acquire(self, lock_id: str, timeout: Optional[float] = None,
                context: Optional[str] = None) -> LockHandle:
        """
        Acquire lock, raise jika tidak berhasil.

        Raises:
            LockTimeoutError: lock tidak didapat sebelum timeout
        """
        handle = self.try_acquire(lock_id, timeout, context)
        if handle is None:
            metrics.record_timeout()
            raise LockTimeoutError(lock_id, timeout if timeout is not None else 0.0)
        return handle

    async def acquire_async(self, lock_id: str, timeout: Optional[float] = None,
                            context: Optional[str] = None) -> LockHandle:
        """Async version dari acquire()"""
        handle = await self.try_acquire_async(lock_id, timeout, context)
        if handle is None:
            metrics.record_timeout()
            raise LockTimeoutError(lock_id, timeout if timeout is not None else 0.0)
        return handle

    # ------------------------------------------------------------------
    # Release validation (dipanggil oleh LockHandle)
    # ------------------------------------------------------------------

    def _release_claim(self, lock_id: str, token: str):
        store = self._require_store()
        try:
            deleted = store.delete_claim(lock_id, token)
        except SQLAlchemyError as e:
            metrics.record_error('release')
            raise LockOperationError(lock_id, 'release') from e
        self._log_release(lock_id, deleted)

    async def _release_claim_async(self, lock_id: str, token: str):
        store = self._require_async_store()
        try:
            deleted = await store.delete_claim(lock_id, token)
        except SQLAlchemyError as e:
            metrics.record_error('release')
            raise LockOperationError(lock_id, 'release') from e
        self._log_release(lock_id, deleted)

    def _log_release(self, lock_id: str, deleted: int):
        metrics.record_release(deleted)
        if deleted:
            logger.info(f"Released lock '{lock_id}'")
        else:
            logger.warning(f"Lock '{lock_id}' was already gone when releasing")

    # ------------------------------------------------------------------

    def close(self):
        """Dispose sync engine"""
        if self.store is not None:
            self.store.dispose()

    async def aclose(self):
        """Dispose semua engines"""
        self.close()
        if self.async_store is not None:
            await self.async_store.dispose()

    def __repr__(self):
        return (f"LockProvider(store={self.store!r}, async_store={self.async_store!r}, "
                f"retry_interval={self.retry_interval})")
