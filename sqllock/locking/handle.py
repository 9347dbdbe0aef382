"""
Lock Handle: representasi in-process dari satu claim yang berhasil.

State machine:
    HELD --release()--> RELEASED --release()--> RELEASED (no-op)
    HELD --dispose()--> DISPOSED (errors suppressed)
    RELEASED --dispose()--> DISPOSED (no-op)
"""

import logging
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .provider import LockProvider

logger = logging.getLogger(__name__)


class LockState(Enum):
    """Lifecycle state dari handle"""
    HELD = "held"
    RELEASED = "released"
    DISPOSED = "disposed"


class LockHandle:
    """
    Handle untuk lock yang sedang dipegang.

    Hanya dibuat oleh LockProvider saat claim berhasil. Tidak thread-safe:
    satu handle dimiliki satu caller.

    Bisa dipakai sebagai context manager (sync maupun async); saat keluar
    dari block lock di-release secara best-effort.
    """

    def __init__(self, provider: "LockProvider", lock_id: str, token: str,
                 context: Optional[str] = None):
        self._provider = provider
        self._lock_id = lock_id
        self._token = token
        self._context = context
        self._state = LockState.HELD

    @property
    def lock_id(self) -> str:
        return self._lock_id

    @property
    def context(self) -> Optional[str]:
        return self._context

    @property
    def token(self) -> str:
        return self._token

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def held(self) -> bool:
        return self._state is LockState.HELD

    def release(self):
        """
        Release lock.

        No-op jika handle tidak HELD. Jika delete gagal, error
        di-propagate dan handle tetap HELD sehingga release bisa di-retry.

        Raises:
            LockOperationError: jika store gagal
        """
        if not self.held:
            return
        self._provider._release_claim(self._lock_id, self._token)
        self._state = LockState.RELEASED

    async def release_async(self):
        """Async version dari release()"""
        if not self.held:
            return
        await self._provider._release_claim_async(self._lock_id, self._token)
        self._state = LockState.RELEASED

    def dispose(self) -> Optional[Exception]:
        """
        Best-effort release. Tidak pernah raise.

        Returns:
            Exception yang di-suppress, atau None
        """
        error = None
        if self.held:
            try:
                self.release()
            except Exception as e:
                error = e
                logger.warning(f"Ignoring error while disposing lock '{self._lock_id}': {e}")
        self._state = LockState.DISPOSED
        return error

    async def dispose_async(self) -> Optional[Exception]:
        """Async version dari dispose()"""
        error = None
        if self.held:
            try:
                await self.release_async()
            except Exception as e:
                error = e
                logger.warning(f"Ignoring error while disposing lock '{self._lock_id}': {e}")
        self._state = LockState.DISPOSED
        return error

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False

    async def __aenter__(self) -> "LockHandle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.dispose_async()
        return False

    def __repr__(self):
        return f"LockHandle({self._lock_id}, state={self._state.value})"
