"""A load balancer spreading requests over servers with pluggable strategies."""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

log = logging.getLogger(__name__)


class ServerError(RuntimeError):
    """Raised when a server fails to process a request."""


class NoHealthyServerError(LookupError):
    """Raised when no healthy server can take a request."""


class Server:
    """A backend that takes a random time per request and sometimes fails."""

    def __init__(
        self,
        server_id: int,
        address: str,
        weight: int = 1,
        rng: random.Random | None = None,
        delay_range: tuple[float, float] = (0.5, 1.5),
        failure_rate: float = 0.05,
    ) -> None:
        self.id = server_id
        self.address = address
        self.weight = weight
        self.delay_range = delay_range
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._active = 0
        self._total = 0
        self._failed = 0
        self._healthy = True
        self._lock = threading.Lock()

    @property
    def healthy(self) -> bool:
        with self._lock:
            return self._healthy

    def process_request(self, request_id: str) -> None:
        with self._lock:
            self._active += 1
        try:
            low, high = self.delay_range
            delay = self._rng.uniform(low, high) if high > 0 else 0.0
            log.info("server %d (%s) starts request %s", self.id, self.address, request_id)
            time.sleep(delay)
            if self._rng.random() < self.failure_rate:
                with self._lock:
                    self._failed += 1
                log.info("server %d failed request %s", self.id, request_id)
                raise ServerError(f"server {self.id} failed to process request")
            with self._lock:
                self._total += 1
            log.info(
                "server %d (%s) finished request %s (%.3fs)",
                self.id,
                self.address,
                request_id,
                delay,
            )
        finally:
            with self._lock:
                self._active -= 1

    def stats(self) -> tuple[int, int, int]:
        """Return (active, total, failed) request counts."""
        with self._lock:
            return self._active, self._total, self._failed

    def set_healthy(self, healthy: bool) -> None:
        with self._lock:
            self._healthy = healthy
        if healthy:
            log.info("server %d is healthy again", self.id)
        else:
            log.info("server %d marked unhealthy", self.id)

    def __repr__(self) -> str:
        return f"Server({self.id!r}, {self.address!r}, weight={self.weight!r})"


class Strategy(Protocol):
    name: str

    def select(self, servers: Sequence[Server]) -> Server | None: ...


class RoundRobinStrategy:
    """Cycle through the healthy servers."""

    name = "RoundRobin"

    def __init__(self) -> None:
        self._current = 0
        self._lock = threading.Lock()

    def select(self, servers: Sequence[Server]) -> Server | None:
        healthy = [s for s in servers if s.healthy]
        if not healthy:
            return None
        with self._lock:
            self._current += 1
            index = self._current % len(healthy)
        return healthy[index]


class LeastConnectionsStrategy:
    """Pick the healthy server with the fewest active requests."""

    name = "LeastConnections"

    def select(self, servers: Sequence[Server]) -> Server | None:
        selected = None
        fewest = -1
        for server in servers:
            if not server.healthy:
                continue
            active, _, _ = server.stats()
            if fewest == -1 or active < fewest:
                fewest = active
                selected = server
        return selected


class WeightedRoundRobinStrategy:
    """Smooth weighted round robin over the healthy servers."""

    name = "WeightedRoundRobin"

    def __init__(self) -> None:
        self._weights: dict[int, int] = {}
        self._current: dict[int, int] = {}
        self._lock = threading.Lock()

    def select(self, servers: Sequence[Server]) -> Server | None:
        if not servers:
            return None
        with self._lock:
            for server in servers:
                if server.id not in self._weights:
                    self._weights[server.id] = server.weight
                    self._current[server.id] = 0

            selected = None
            best = -1
            total = 0
            for server in servers:
                if not server.healthy:
                    continue
                self._current[server.id] += self._weights[server.id]
                total += self._weights[server.id]
                if self._current[server.id] > best:
                    best = self._current[server.id]
                    selected = server

            if selected is not None:
                self._current[selected.id] -= total
            return selected


class LoadBalancer:
    """Routes requests to servers chosen by a strategy and keeps counts."""

    def __init__(self, strategy: Strategy) -> None:
        self.strategy = strategy
        self._servers: list[Server] = []
        self._lock = threading.Lock()
        self._total_requests = 0
        self._failed_requests = 0
        self._health_stop = threading.Event()
        self._health_thread: threading.Thread | None = None

    @property
    def servers(self) -> list[Server]:
        with self._lock:
            return list(self._servers)

    def add_server(self, server: Server) -> None:
        with self._lock:
            self._servers.append(server)
        log.info("added server %d (%s) weight=%d", server.id, server.address, server.weight)

    def remove_server(self, server_id: int) -> None:
        with self._lock:
            for i, server in enumerate(self._servers):
                if server.id == server_id:
                    del self._servers[i]
                    log.info("removed server %d", server_id)
                    break

    def process_request(self, request_id: str) -> None:
        with self._lock:
            self._total_requests += 1
            servers = list(self._servers)
        server = self.strategy.select(servers)
        if server is None:
            with self._lock:
                self._failed_requests += 1
            raise NoHealthyServerError("no healthy server available")
        try:
            server.process_request(request_id)
        except ServerError:
            with self._lock:
                self._failed_requests += 1
            raise

    def stats(self) -> dict[str, Any]:
        with self._lock:
            servers = list(self._servers)
            total, failed = self._total_requests, self._failed_requests
        rows = []
        for server in servers:
            active, done, errors = server.stats()
            rows.append(
                {
                    "id": server.id,
                    "active": active,
                    "total": done,
                    "failed": errors,
                    "healthy": server.healthy,
                }
            )
        return {
            "strategy": self.strategy.name,
            "total_requests": total,
            "failed_requests": failed,
            "servers": rows,
        }

    def print_stats(self) -> None:
        stats = self.stats()
        print(f"\n=== load balancer stats (strategy: {stats['strategy']}) ===")
        print(f"total requests: {stats['total_requests']}")
        print(f"failed requests: {stats['failed_requests']}")
        print("\nservers:")
        for row in stats["servers"]:
            health = "healthy" if row["healthy"] else "unhealthy"
            print(
                f"server {row['id']}: active={row['active']}, total={row['total']}, "
                f"failed={row['failed']}, status={health}"
            )

    def start_health_check(
        self, interval: float = 3.0, rng: random.Random | None = None
    ) -> None:
        """Every interval, fail healthy servers at 10% and restore failed ones at 20%."""
        if self._health_thread is not None:
            return
        rng = rng or random.Random()
        self._health_stop.clear()

        def check() -> None:
            while not self._health_stop.wait(interval):
                for server in self.servers:
                    if server.healthy:
                        if rng.random() < 0.1:
                            server.set_healthy(False)
                    elif rng.random() < 0.2:
                        server.set_healthy(True)

        self._health_thread = threading.Thread(target=check, daemon=True)
        self._health_thread.start()

    def stop_health_check(self) -> None:
        self._health_stop.set()
        if self._health_thread is not None:
            self._health_thread.join()
            self._health_thread = None


def demo() -> None:
    """Send concurrent requests through each strategy and print the results."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Load balancer demo ===")
    strategies: list[Strategy] = [
        RoundRobinStrategy(),
        LeastConnectionsStrategy(),
        WeightedRoundRobinStrategy(),
    ]
    for strategy in strategies:
        print(f"\n--- strategy: {strategy.name} ---")
        lb = LoadBalancer(strategy)
        lb.add_server(Server(1, "192.168.1.1:8080", 3))
        lb.add_server(Server(2, "192.168.1.2:8080", 2))
        lb.add_server(Server(3, "192.168.1.3:8080", 1))
        lb.add_server(Server(4, "192.168.1.4:8080", 4))
        lb.start_health_check()

        def send(req_id: int) -> None:
            try:
                lb.process_request(f"req-{req_id}")
            except (ServerError, NoHealthyServerError) as exc:
                print(f"request req-{req_id} failed: {exc}")

        with ThreadPoolExecutor(max_workers=20) as pool:
            for i in range(1, 21):
                pool.submit(send, i)
                time.sleep(0.05)
        time.sleep(1)
        lb.print_stats()
        lb.stop_health_check()
        time.sleep(2)
    print("\nload balancer demo finished")