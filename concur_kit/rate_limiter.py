"""A token-bucket rate limiter refilled by a background thread."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

log = logging.getLogger(__name__)


class RateLimiter:
    """Holds at most ``rate`` tokens and adds one every ``1/rate`` seconds."""

    def __init__(self, rate: int) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.interval = 1.0 / rate
        self._tokens = rate
        self._cond = threading.Condition()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._refill, daemon=True)
        self._thread.start()

    def __enter__(self) -> "RateLimiter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def available(self) -> int:
        with self._cond:
            return self._tokens

    def _refill(self) -> None:
        while not self._stop.wait(self.interval):
            with self._cond:
                if self._tokens < self.rate:
                    self._tokens += 1
                    self._cond.notify()

    def allow(self) -> bool:
        """Take a token if one is available, without blocking."""
        with self._cond:
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False

    def wait(self, timeout: float | None = None) -> None:
        """Block until a token is taken; raise TimeoutError after ``timeout``."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._tokens > 0, timeout):
                raise TimeoutError("no token became available")
            self._tokens -= 1

    def close(self) -> None:
        """Stop refilling tokens."""
        self._stop.set()
        self._thread.join()


def _worker(worker_id: int, limiter: RateLimiter) -> None:
    for i in range(1, 11):
        if limiter.allow():
            print(f"worker {worker_id}: request {i} passed ({time.strftime('%H:%M:%S')})")
        else:
            print(f"worker {worker_id}: request {i} limited, waiting...")
            limiter.wait()
            print(f"worker {worker_id}: request {i} passed on retry ({time.strftime('%H:%M:%S')})")
        time.sleep(0.1)
    print(f"worker {worker_id} finished all requests")


def demo() -> None:
    print("=== Rate limiter demo ===")
    print("limit: 5 requests per second")
    with RateLimiter(5) as limiter, ThreadPoolExecutor(max_workers=3) as pool:
        for worker_id in range(1, 4):
            pool.submit(_worker, worker_id, limiter)
    print("all workers finished")