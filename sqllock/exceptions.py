"""
Exceptions untuk distributed lock operations.

Contention (lock sedang dipegang proses lain) BUKAN exception:
try_acquire mengembalikan None untuk kasus itu.
"""

from typing import Optional


class DistributedLockError(Exception):
    """Base exception untuk semua distributed lock errors"""


class LockTimeoutError(DistributedLockError):
    """Raised saat acquire() tidak mendapat lock sebelum deadline"""

    def __init__(self, lock_id: str, timeout: float = 0.0):
        self.lock_id = lock_id
        self.timeout = timeout
        super().__init__(
            f"Timeout occurred while trying to acquire lock '{lock_id}' within {timeout}s"
        )


class LockOperationError(DistributedLockError):
    """
    Raised saat store gagal (connectivity, query, permissions) selama
    acquire atau release. Error asli tersedia di __cause__.
    """

    def __init__(self, lock_id: str, operation: str):
        self.lock_id = lock_id
        self.operation = operation
        super().__init__(f"Failed to {operation} lock '{lock_id}'")


class SchemaBootstrapError(DistributedLockError):
    """Raised saat lock table tidak bisa dibuat"""

    def __init__(self, table_name: str, reason: Optional[str] = None):
        self.table_name = table_name
        message = f"Failed to ensure lock table '{table_name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
