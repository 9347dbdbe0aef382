"""
Load testing scenarios menggunakan Locust.

Setiap simulated user memanggil LockProvider langsung (tanpa HTTP),
jadi lock table di DATABASE_URL yang jadi bottleneck.

Cara menjalankan:
  python -m sqllock init
  locust -f benchmarks/load_test_scenarios.py --headless -u 20 -r 5 -t 1m
"""

from locust import User, task, between, events
import random
import time

from sqllock.exceptions import LockTimeoutError
from sqllock.locking.provider import LockProvider


def _fire(environment, name, start, exception=None):
    """Report satu operasi ke Locust statistics"""
    environment.events.request.fire(
        request_type="lock",
        name=name,
        response_time=(time.monotonic() - start) * 1000,
        response_length=0,
        exception=exception,
        context={},
    )


class LockProviderUser(User):
    """
    Simulate worker yang berebut sejumlah kecil resources.
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        """Called saat user start"""
        self.user_id = random.randint(1, 1000)
        self.resources = [f"resource_{i}" for i in range(10)]
        self.provider = LockProvider.from_config()

    def on_stop(self):
        self.provider.close()

    @task(3)
    def acquire_with_timeout(self):
        """Acquire dengan timeout, hold sebentar, lalu release"""
        resource = random.choice(self.resources)

        start = time.monotonic()
        try:
            handle = self.provider.acquire(resource, timeout=1, context=f"user-{self.user_id}")
        except LockTimeoutError as e:
            _fire(self.environment, "acquire", start, e)
            return
        _fire(self.environment, "acquire", start)

        time.sleep(random.uniform(0.05, 0.2))

        start = time.monotonic()
        handle.release()
        _fire(self.environment, "release", start)

    @task(2)
    def try_acquire_once(self):
        """Single attempt tanpa menunggu; lock sibuk bukan failure"""
        resource = random.choice(self.resources)

        start = time.monotonic()
        handle = self.provider.try_acquire(resource)
        _fire(self.environment, "try_acquire", start)

        if handle is not None:
            with handle:
                time.sleep(random.uniform(0.01, 0.05))

    @task(1)
    def hot_resource(self):
        """Semua user berebut satu resource yang sama"""
        start = time.monotonic()
        try:
            with self.provider.acquire("hot_resource", timeout=2):
                _fire(self.environment, "acquire_hot", start)
                time.sleep(0.02)
        except LockTimeoutError as e:
            _fire(self.environment, "acquire_hot", start, e)


# Event handlers untuk custom metrics
@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("Load test starting...")


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("Load test complete!")
    print(f"Total requests: {environment.stats.total.num_requests}")
    print(f"Failure rate: {environment.stats.total.fail_ratio:.2%}")
