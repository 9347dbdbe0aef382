"""Storage package initialization"""

from .lock_store import (
    AsyncLockStore,
    ClaimOutcome,
    LockStore,
    build_lock_table,
    is_unique_violation,
)

__all__ = ['AsyncLockStore', 'ClaimOutcome', 'LockStore', 'build_lock_table', 'is_unique_violation']
