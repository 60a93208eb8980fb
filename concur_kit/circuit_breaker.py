"""A circuit breaker guarding calls to an unreliable service."""

from __future__ import annotations

import enum
import logging
import random
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class State(enum.Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __str__(self) -> str:
        return self.value


class CircuitOpenError(RuntimeError):
    """Raised when the breaker is open and rejects a call."""


class ServiceCallError(RuntimeError):
    """Raised when the simulated service fails a call."""


@dataclass(frozen=True)
class CircuitBreakerConfig:
    max_failures: int = 5
    reset_timeout: float = 3.0
    failure_ratio: float = 0.5
    min_request_count: int = 10


class CircuitBreaker:
    """Opens when the failure ratio crosses a threshold, probes after a timeout."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = State.CLOSED
        self._failures = 0
        self._requests = 0
        self._last_fail = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    def call(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` unless the breaker is open; its exceptions count as failures."""
        if not self._allow_request():
            raise CircuitOpenError("circuit breaker is OPEN")
        try:
            result = fn()
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result
        finally:
            with self._lock:
                self._requests += 1

    def _allow_request(self) -> bool:
        with self._lock:
            if self._state is State.OPEN:
                if self._clock() - self._last_fail > self.config.reset_timeout:
                    self._state = State.HALF_OPEN
                    log.info("circuit breaker: OPEN -> HALF_OPEN")
                    return True
                return False
            return True

    def _on_success(self) -> None:
        with self._lock:
            if self._state is State.HALF_OPEN:
                self._state = State.CLOSED
                self._failures = 0
                log.info("circuit breaker: HALF_OPEN -> CLOSED")

    def _on_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_fail = self._clock()
            if self._state is State.HALF_OPEN:
                self._state = State.OPEN
                log.info("circuit breaker: HALF_OPEN -> OPEN")
                return
            if self._state is State.CLOSED and self._requests >= self.config.min_request_count:
                ratio = (
                    self._failures / self._requests if self._requests else float("inf")
                )
                if ratio >= self.config.failure_ratio:
                    self._state = State.OPEN
                    log.info("circuit breaker: CLOSED -> OPEN (failure ratio %.2f%%)", ratio * 100)

    def stats(self) -> tuple[int, int, State]:
        """Return (requests, failures, state)."""
        with self._lock:
            return self._requests, self._failures, self._state


class UnstableService:
    """A service that fails a configurable fraction of its calls."""

    def __init__(
        self,
        failure_rate: float,
        rng: random.Random | None = None,
        delay_range: tuple[float, float] = (0.05, 0.25),
    ) -> None:
        self._failure_rate = failure_rate
        self._rng = rng or random.Random()
        self.delay_range = delay_range
        self._lock = threading.Lock()

    @property
    def failure_rate(self) -> float:
        with self._lock:
            return self._failure_rate

    def call(self, request_id: str) -> None:
        low, high = self.delay_range
        if high > 0:
            time.sleep(self._rng.uniform(low, high))
        if self._rng.random() < self.failure_rate:
            log.info("service call failed: %s", request_id)
            raise ServiceCallError(f"service call failed for request {request_id}")
        log.info("service call succeeded: %s", request_id)

    def set_failure_rate(self, rate: float) -> None:
        with self._lock:
            self._failure_rate = rate
        log.info("service failure rate set to %.2f%%", rate * 100)


def _run_phase(breaker: CircuitBreaker, service: UnstableService,
               ids: range, gap: float, report_every: int) -> None:
    def request(req_id: int) -> None:
        try:
            breaker.call(lambda: service.call(f"req-{req_id}"))
        except (CircuitOpenError, ServiceCallError) as exc:
            print(f"request req-{req_id} failed: {exc}")
        requests, failures, state = breaker.stats()
        if req_id % report_every == 0:
            print(f"stats: requests={requests}, failures={failures}, state={state}")

    with ThreadPoolExecutor(max_workers=len(ids)) as pool:
        for req_id in ids:
            pool.submit(request, req_id)
            time.sleep(gap)


def demo() -> None:
    """Trip the breaker with a failing service, then let it recover."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Circuit breaker demo ===")
    config = CircuitBreakerConfig(
        max_failures=5, reset_timeout=3.0, failure_ratio=0.5, min_request_count=10
    )
    breaker = CircuitBreaker(config)
    service = UnstableService(0.7)
    print(
        f"config: failure ratio={config.failure_ratio * 100:.0f}%, "
        f"min requests={config.min_request_count}, reset timeout={config.reset_timeout}s"
    )

    print("\n=== phase 1: high failure rate ===")
    _run_phase(breaker, service, range(1, 21), 0.1, 5)
    time.sleep(1)

    print("\n=== phase 2: waiting for reset ===")
    service.set_failure_rate(0.2)
    time.sleep(4)

    print("\n=== phase 3: low failure rate ===")
    _run_phase(breaker, service, range(21, 51), 0.15, 10)

    requests, failures, state = breaker.stats()
    print("\n=== final stats ===")
    print(f"requests: {requests}")
    print(f"failures: {failures}")
    if requests:
        print(f"failure ratio: {failures / requests * 100:.2f}%")
    print(f"final state: {state}")