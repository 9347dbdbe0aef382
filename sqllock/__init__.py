"""
SQL Distributed Lock

Mutual exclusion antar proses menggunakan relational table:
- Claim lock = insert row; primary key menjamin hanya satu pemilik
- Release di-validasi dengan token milik claim
- Sync dan async API dengan semantics yang sama
"""

from .exceptions import (
    DistributedLockError,
    LockOperationError,
    LockTimeoutError,
    SchemaBootstrapError,
)
from .locking import LockHandle, LockProvider, LockState
from .utils.config import Config

__version__ = "1.0.0"

__all__ = [
    'Config',
    'DistributedLockError',
    'LockHandle',
    'LockOperationError',
    'LockProvider',
    'LockState',
    'LockTimeoutError',
    'SchemaBootstrapError',
]
