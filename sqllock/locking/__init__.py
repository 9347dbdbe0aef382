"""Locking package initialization"""

from .handle import LockHandle, LockState
from .provider import DEFAULT_RETRY_INTERVAL, LockProvider, validate_request

__all__ = ['DEFAULT_RETRY_INTERVAL', 'LockHandle', 'LockProvider', 'LockState', 'validate_request']
