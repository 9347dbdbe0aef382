"""
Main entry point untuk menjalankan lock provider dari command line.

Contoh:
    python -m sqllock init
    python -m sqllock acquire job-42 --timeout 5 --hold 10
    python -m sqllock demo
"""

import asyncio
import argparse
import logging
import sys
import time
from typing import Optional

from sqllock.exceptions import DistributedLockError, LockTimeoutError
from sqllock.locking.provider import LockProvider
from sqllock.utils.config import Config
from sqllock.utils.metrics import metrics

EXIT_TIMEOUT = 2


def setup_logging():
    """Setup logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if Config.LOG_FILE:
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def build_provider(args: argparse.Namespace) -> LockProvider:
    """Buat provider dari CLI arguments, fallback ke Config"""
    return LockProvider.from_url(
        args.database_url or Config.DATABASE_URL,
        async_database_url=None if args.database_url else (Config.ASYNC_DATABASE_URL or None),
        table_name=args.table or Config.LOCK_TABLE_NAME,
        retry_interval=Config.get_retry_interval(),
    )


def run_acquire(provider: LockProvider, lock_id: str, timeout: Optional[float],
                context: Optional[str], hold: float) -> int:
    """Acquire lock, hold selama `hold` seconds, lalu release"""
    provider.ensure_schema()
    try:
        with provider.acquire(lock_id, timeout=timeout, context=context):
            print(f"Acquired lock '{lock_id}', holding for {hold}s")
            if hold > 0:
                time.sleep(hold)
    except LockTimeoutError as e:
        print(str(e))
        return EXIT_TIMEOUT
    print(f"Released lock '{lock_id}'")
    return 0


async def basic_example(provider: LockProvider):
    """Acquire, kerjakan sesuatu, release otomatis"""
    lock_id = "example-basic-lock"

    handle = await provider.try_acquire_async(lock_id)
    if handle is None:
        print(f"   Could not acquire lock '{lock_id}'")
        return

    async with handle:
        print(f"   Acquired lock '{lock_id}'")
        await asyncio.sleep(1)
        print("   Work completed")
    print(f"   Lock '{lock_id}' released")


async def timeout_example(provider: LockProvider):
    """Lock kedua pada resource yang sama harus timeout"""
    lock_id = "example-timeout-lock"

    first = await provider.try_acquire_async(lock_id)
    if first is None:
        print(f"   Could not acquire lock '{lock_id}'")
        return

    async with first:
        print(f"   First lock acquired '{lock_id}'")
        try:
            second = await provider.acquire_async(lock_id, timeout=2)
            await second.release_async()
            print("   This should not be reached")
        except LockTimeoutError as e:
            print(f"   Expected timeout: {e}")


async def concurrent_example(provider: LockProvider, workers: int = 3):
    """Beberapa task berebut lock yang sama"""
    lock_id = "example-concurrent-lock"

    async def worker(task_id: int):
        handle = await provider.try_acquire_async(lock_id, timeout=5, context=f"task-{task_id}")
        if handle is None:
            print(f"   Task {task_id} could not acquire lock '{lock_id}'")
            return
        async with handle:
            print(f"   Task {task_id} acquired lock '{lock_id}'")
            await asyncio.sleep(2)
            print(f"   Task {task_id} completed work")

    await asyncio.gather(*(worker(i) for i in range(1, workers + 1)))


async def run_demo(provider: LockProvider):
    """Jalankan semua example scenarios"""
    await provider.ensure_schema_async()
    print("Database table ensured")

    print("\n1. Basic lock usage")
    await basic_example(provider)

    print("\n2. Lock with timeout")
    await timeout_example(provider)

    print("\n3. Concurrent lock attempts")
    await concurrent_example(provider)

    await provider.aclose()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='SQL Distributed Lock')
    parser.add_argument('--database-url', help='SQLAlchemy database URL', default=None)
    parser.add_argument('--table', help='Lock table name', default=None)
    parser.add_argument('--show-metrics', action='store_true',
                        help='Print Prometheus metrics before exit')

    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('init', help='Create lock table if missing')

    acquire_parser = subparsers.add_parser('acquire', help='Acquire, hold, and release a lock')
    acquire_parser.add_argument('lock_id')
    acquire_parser.add_argument('--timeout', type=float, default=None,
                                help='Seconds to wait for the lock')
    acquire_parser.add_argument('--context', default=None, help='Annotation stored with the lock')
    acquire_parser.add_argument('--hold', type=float, default=0.0,
                                help='Seconds to hold the lock before releasing')

    subparsers.add_parser('demo', help='Run example lock scenarios')

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    # Display configuration yang benar-benar dipakai
    Config.display(args.database_url, args.table)

    provider = build_provider(args)
    exit_code = 0
    try:
        if args.command == 'init':
            provider.ensure_schema()
            print(f"Lock table '{provider.store.table_name}' ensured")
        elif args.command == 'acquire':
            exit_code = run_acquire(provider, args.lock_id, args.timeout, args.context, args.hold)
        elif args.command == 'demo':
            if provider.async_store is None:
                print("Error: demo needs an async driver for this database URL "
                      "(set ASYNC_DATABASE_URL)")
                exit_code = 1
            else:
                asyncio.run(run_demo(provider))
    except KeyboardInterrupt:
        print("\nExiting...")
    except DistributedLockError as e:
        print(f"Error: {e}")
        exit_code = 1
    finally:
        provider.close()

    if args.show_metrics:
        print(metrics.get_metrics().decode())

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
