"""
Configuration manager untuk distributed lock provider.
File ini membaca environment variables dan menyediakan
konfigurasi default untuk provider, store, dan logging.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.engine import make_url

# Load environment variables dari .env file
load_dotenv()

# Sync driver -> async driver yang dipakai AsyncLockStore
ASYNC_DRIVERS = {
    'sqlite': 'sqlite+aiosqlite',
    'postgresql': 'postgresql+asyncpg',
    'mysql': 'mysql+aiomysql',
    'mssql': 'mssql+aioodbc',
}

# Driver yang sudah bisa dipakai langsung oleh create_async_engine
ASYNC_CAPABLE_DRIVERS = {'aiosqlite', 'asyncpg', 'psycopg', 'aiomysql', 'asyncmy', 'aioodbc'}


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Class untuk manage semua konfigurasi sistem"""

    # Store Configuration
    DATABASE_URL: str = os.getenv('DATABASE_URL', 'sqlite:///distributed_locks.db')
    ASYNC_DATABASE_URL: str = os.getenv('ASYNC_DATABASE_URL', '')
    LOCK_TABLE_NAME: str = os.getenv('LOCK_TABLE_NAME', 'DistributedLocks')
    LOCK_AUTO_CREATE_SCHEMA: bool = _env_bool('LOCK_AUTO_CREATE_SCHEMA')

    # Retry interval antara claim attempts (dalam milliseconds)
    LOCK_RETRY_INTERVAL_MS: int = int(os.getenv('LOCK_RETRY_INTERVAL_MS', 100))

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE: str = os.getenv('LOG_FILE', '')

    @staticmethod
    def get_async_database_url(database_url: Optional[str] = None) -> str:
        """
        Derive async URL dari sync URL.
        Contoh: "sqlite:///locks.db" -> "sqlite+aiosqlite:///locks.db"

        URL yang sudah memakai async driver dikembalikan apa adanya.
        Returns: SQLAlchemy URL string untuk create_async_engine
        """
        if database_url is None:
            if Config.ASYNC_DATABASE_URL:
                return Config.ASYNC_DATABASE_URL
            database_url = Config.DATABASE_URL

        url = make_url(database_url)
        # Default driver tanpa "+driver" berbeda antar versi SQLAlchemy
        if '+' in url.drivername and url.get_driver_name() in ASYNC_CAPABLE_DRIVERS:
            return database_url

        backend = url.get_backend_name()
        if backend not in ASYNC_DRIVERS:
            raise ValueError(f"No known async driver for database backend '{backend}'")
        return url.set(drivername=ASYNC_DRIVERS[backend]).render_as_string(hide_password=False)

    @staticmethod
    def get_retry_interval() -> float:
        """Retry interval dalam seconds"""
        return Config.LOCK_RETRY_INTERVAL_MS / 1000.0

    @classmethod
    def display(cls, database_url: Optional[str] = None, table_name: Optional[str] = None):
        """Print konfigurasi efektif untuk debugging (argument = override dari CLI)"""
        database_url = database_url or cls.DATABASE_URL
        print("=== Configuration ===")
        print(f"Database: {make_url(database_url).render_as_string(hide_password=True)}")
        print(f"Lock table: {table_name or cls.LOCK_TABLE_NAME}")
        print(f"Retry interval: {cls.LOCK_RETRY_INTERVAL_MS}ms")
        print(f"Auto create schema: {cls.LOCK_AUTO_CREATE_SCHEMA}")
        print("=" * 30)


# Test configuration saat file dijalankan langsung
if __name__ == "__main__":
    Config.display()
