"""
Metrics collector menggunakan Prometheus.
File ini mengumpulkan data lock activity seperti
claim attempts, contention, timeouts, dan acquire latency.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest
import time
import psutil


class MetricsCollector:
    """
    Class untuk mengumpulkan metrics lock provider.
    Menggunakan Prometheus format untuk monitoring.
    """

    def __init__(self):
        # Counter: setiap insert attempt ke lock table
        self.claim_attempts = Counter(
            'lock_claim_attempts_total',
            'Total number of lock claim attempts',
            ['outcome']
        )

        # Counter: hasil akhir try_acquire
        self.acquisitions = Counter(
            'lock_acquisitions_total',
            'Total number of lock acquisition calls',
            ['result']
        )

        self.timeouts = Counter(
            'lock_timeouts_total',
            'Total number of acquire calls that timed out'
        )

        self.releases = Counter(
            'lock_releases_total',
            'Total number of lock releases',
            ['result']
        )

        self.operation_errors = Counter(
            'lock_operation_errors_total',
            'Total number of store failures',
            ['operation']
        )

        # Histogram: waktu dari try_acquire dipanggil sampai selesai
        self.acquire_latency = Histogram(
            'lock_acquire_latency_seconds',
            'Lock acquisition latency in seconds'
        )

        # System metrics
        self.cpu_usage = Gauge('cpu_usage_percent', 'CPU usage percentage')
        self.memory_usage = Gauge('memory_usage_percent', 'Memory usage percentage')

    def record_claim(self, outcome: str):
        """Record satu claim attempt (acquired / contended)"""
        self.claim_attempts.labels(outcome=outcome).inc()

    def record_acquisition(self, acquired: bool, duration: float):
        """
        Record hasil try_acquire.

        Args:
            acquired: True jika lock didapat
            duration: Total waktu acquisition dalam seconds
        """
        result = 'acquired' if acquired else 'not_acquired'
        self.acquisitions.labels(result=result).inc()
        self.acquire_latency.observe(duration)

    def record_timeout(self):
        self.timeouts.inc()

    def record_release(self, rows_deleted: int):
        """Record release; 0 rows berarti lock sudah tidak ada"""
        result = 'released' if rows_deleted else 'already_gone'
        self.releases.labels(result=result).inc()

    def record_error(self, operation: str):
        self.operation_errors.labels(operation=operation).inc()

    def update_system_metrics(self):
        """Update CPU dan memory usage"""
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def get_metrics(self) -> bytes:
        """
        Export metrics dalam Prometheus format.
        Returns: Metrics data dalam bytes
        """
        self.update_system_metrics()
        return generate_latest()


# Context manager untuk measure acquisition time
class measure_time:
    """
    Context manager untuk mengukur execution time.

    Contoh penggunaan:
        with measure_time() as timer:
            # your code here
            pass
        print(f"Execution time: {timer.elapsed}s")
    """

    def __init__(self):
        self.start_time = None
        self.elapsed = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.monotonic() - self.start_time
        return False


# Singleton instance
metrics = MetricsCollector()
