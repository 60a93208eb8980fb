"""A counting semaphore, a resource pool built on it and a connection limiter."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

log = logging.getLogger(__name__)


class ResourceUnavailableError(LookupError):
    """Raised when a permit was taken but no resource was left."""


class ConnectionLimitError(RuntimeError):
    """Raised when a connection is refused because the limit is reached."""


class Semaphore:
    """Hands out at most ``capacity`` permits at a time."""

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._held = 0
        self._cond = threading.Condition()

    def __enter__(self) -> "Semaphore":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    def acquire(self) -> None:
        """Block until a permit is free, then take it."""
        with self._cond:
            self._cond.wait_for(lambda: self._held < self.capacity)
            self._held += 1

    def release(self) -> None:
        with self._cond:
            if self._held == 0:
                raise ValueError("release without a matching acquire")
            self._held -= 1
            self._cond.notify()

    def try_acquire(self) -> bool:
        """Take a permit if one is free, without blocking."""
        with self._cond:
            if self._held >= self.capacity:
                return False
            self._held += 1
            return True

    def available(self) -> int:
        with self._cond:
            return self.capacity - self._held


@dataclass(frozen=True)
class Resource:
    id: int
    name: str


class ResourcePool:
    """Lends resources out first in, first out; callers wait when all are in use."""

    def __init__(self, resources: list[Resource]) -> None:
        self.resources = list(resources)
        self._semaphore = Semaphore(len(self.resources))
        self._available: deque[Resource] = deque(self.resources)
        self._in_use: dict[int, Resource] = {}
        self._lock = threading.Lock()

    def acquire_resource(self) -> Resource:
        self._semaphore.acquire()
        with self._lock:
            if not self._available:
                self._semaphore.release()
                raise ResourceUnavailableError("no resources available")
            resource = self._available.popleft()
            self._in_use[resource.id] = resource
            return resource

    def release_resource(self, resource: Resource) -> None:
        """Give a resource back; one that is not on loan is ignored."""
        with self._lock:
            if resource.id in self._in_use:
                del self._in_use[resource.id]
                self._available.append(resource)
                self._semaphore.release()

    def stats(self) -> tuple[int, int, int]:
        """Return (available, in use, free permits)."""
        with self._lock:
            return len(self._available), len(self._in_use), self._semaphore.available()


class ConnectionManager:
    """Refuses connections beyond a fixed number of concurrent ones."""

    def __init__(self, max_connections: int) -> None:
        self._semaphore = Semaphore(max_connections)
        self._active = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def handle_connection(self, client_id: int, hold_time: float | None = None) -> int:
        """Hold a connection for a while; return the active count once connected.

        ``hold_time`` defaults to ``client_id % 3 + 1`` seconds.
        """
        log.info("client %d connecting...", client_id)
        if not self._semaphore.try_acquire():
            log.info("client %d refused (limit reached)", client_id)
            raise ConnectionLimitError("connection limit reached")
        try:
            with self._lock:
                self._active += 1
                active = self._active
            log.info("client %d connected (active: %d)", client_id, active)
            time.sleep(client_id % 3 + 1 if hold_time is None else hold_time)
            with self._lock:
                self._active -= 1
                remaining = self._active
        finally:
            self._semaphore.release()
        log.info("client %d disconnected (active: %d)", client_id, remaining)
        return active


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Semaphore demo ===")

    print("\n1. resource pool:")
    pool = ResourcePool([Resource(i, f"database connection {i}") for i in (1, 2, 3)])

    def use(worker_id: int) -> None:
        print(f"worker {worker_id} requests a resource")
        try:
            resource = pool.acquire_resource()
        except ResourceUnavailableError as exc:
            print(f"worker {worker_id} failed: {exc}")
            return
        print(f"worker {worker_id} got {resource.name}")
        time.sleep(worker_id * 0.5)
        pool.release_resource(resource)
        available, in_use, permits = pool.stats()
        print(f"worker {worker_id} released {resource.name} - "
              f"available: {available}, in use: {in_use}, permits: {permits}")

    with ThreadPoolExecutor(max_workers=5) as executor:
        for worker_id in range(1, 6):
            executor.submit(use, worker_id)

    print("\n2. connection limit:")
    manager = ConnectionManager(3)

    def connect(client_id: int) -> None:
        try:
            manager.handle_connection(client_id)
        except ConnectionLimitError as exc:
            print(f"client {client_id} refused: {exc}")

    with ThreadPoolExecutor(max_workers=8) as executor:
        for client_id in range(1, 9):
            executor.submit(connect, client_id)
            time.sleep(0.2)

    print("\n3. bounded batch processing:")
    permits = Semaphore(2)

    def process(name: str) -> None:
        print(f"{name} waiting for a permit...")
        with permits:
            print(f"{name} processing (free permits: {permits.available()})")
            time.sleep(2)
            print(f"{name} done")

    with ThreadPoolExecutor(max_workers=5) as executor:
        for name in ("task A", "task B", "task C", "task D", "task E"):
            executor.submit(process, name)
            time.sleep(0.3)
    print("\nsemaphore demo finished")