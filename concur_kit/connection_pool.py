"""A bounded pool of simulated database connections with health checks."""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)


class ConnectionError_(RuntimeError):
    """Raised when a connection cannot connect, close or run a query."""


class PoolClosedError(RuntimeError):
    """Raised when the pool has been closed."""


class PoolTimeoutError(TimeoutError):
    """Raised when no idle connection arrives within the timeout."""


class DBConnection:
    """A simulated database connection that is slow and sometimes fails."""

    def __init__(
        self,
        conn_id: str,
        rng: random.Random | None = None,
        connect_failure: float = 0.05,
        query_failure: float = 0.1,
        alive_failure: float = 0.03,
        delay_scale: float = 1.0,
    ) -> None:
        self.id = conn_id
        self.connect_failure = connect_failure
        self.query_failure = query_failure
        self.alive_failure = alive_failure
        self.delay_scale = delay_scale
        self._rng = rng or random.Random()
        self._connected = False
        self.created_time = time.monotonic()
        self._last_used = self.created_time
        self._queries = 0
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connected

    @property
    def queries(self) -> int:
        with self._lock:
            return self._queries

    @property
    def last_used(self) -> float:
        """Monotonic time of the last successful use."""
        with self._lock:
            return self._last_used

    @last_used.setter
    def last_used(self, value: float) -> None:
        with self._lock:
            self._last_used = value

    def _pause(self, low_ms: int, span_ms: int) -> None:
        if self.delay_scale > 0:
            time.sleep((self._rng.randrange(span_ms) + low_ms) / 1000 * self.delay_scale)

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                raise ConnectionError_(f"connection {self.id} already connected")
            self._pause(50, 100)
            if self._rng.random() < self.connect_failure:
                raise ConnectionError_(f"failed to connect {self.id}")
            self._connected = True
        log.info("connection %s established", self.id)

    def close(self) -> None:
        with self._lock:
            if not self._connected:
                raise ConnectionError_(f"connection {self.id} not connected")
            self._connected = False
        log.info("connection %s closed", self.id)

    def execute(self, query: str) -> str:
        with self._lock:
            if not self._connected:
                raise ConnectionError_(f"connection {self.id} not connected")
            self._pause(50, 200)
            if self._rng.random() < self.query_failure:
                raise ConnectionError_(f"query failed on connection {self.id}")
            self._queries += 1
            self._last_used = time.monotonic()
            return f"Result from {self.id}: {query}"

    def is_alive(self) -> bool:
        """Check the connection; a failed check leaves it disconnected."""
        with self._lock:
            if self._rng.random() < self.alive_failure:
                self._connected = False
                return False
            return self._connected

    def __repr__(self) -> str:
        return f"DBConnection({self.id!r})"


def _safe_close(conn) -> None:
    with suppress(ConnectionError_):
        conn.close()


@dataclass(frozen=True)
class PoolConfig:
    min_connections: int = 3
    max_connections: int = 10
    max_idle_time: float = 5.0
    connection_timeout: float = 3.0
    health_check_period: float = 2.0


class ConnectionPool:
    """Keeps idle connections ready, lends them out and takes them back."""

    def __init__(self, config: PoolConfig, factory: Callable[[str], Any]) -> None:
        if config.min_connections < 0 or config.max_connections < config.min_connections:
            raise ValueError("invalid pool configuration")
        if config.max_idle_time <= 0 or config.health_check_period <= 0:
            raise ValueError("invalid pool configuration")
        self.config = config
        self._factory = factory
        self._idle: queue.Queue = queue.Queue(maxsize=config.max_connections)
        self._active: dict[str, Any] = {}
        self._lock = threading.RLock()
        self._closed = False
        self._stop = threading.Event()
        self._counts = dict.fromkeys(
            ("created", "borrowed", "returned", "failed", "evicted", "health_checks"), 0
        )
        for _ in range(config.min_connections):
            conn = self._create()
            if conn is not None:
                self._idle.put_nowait(conn)
        self._threads = [
            threading.Thread(
                target=self._every,
                args=(config.health_check_period, self.perform_health_check),
                daemon=True,
            ),
            threading.Thread(
                target=self._every,
                args=(config.max_idle_time / 2, self.evict_idle_connections),
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _bump(self, key: str) -> int:
        with self._lock:
            self._counts[key] += 1
            return self._counts[key]

    def _every(self, period: float, action: Callable[[], None]) -> None:
        while not self._stop.wait(period):
            action()

    def _create(self):
        conn = self._factory(f"conn-{self._bump('created')}")
        try:
            conn.connect()
        except ConnectionError_ as exc:
            self._bump("failed")
            log.warning("creating connection failed: %s", exc)
            return None
        return conn

    def _activate(self, conn):
        with self._lock:
            self._active[conn.id] = conn
        return conn

    def _refill_if_low(self) -> None:
        if self._idle.qsize() < self.config.min_connections:
            conn = self._create()
            if conn is not None:
                try:
                    self._idle.put_nowait(conn)
                except queue.Full:
                    _safe_close(conn)

    def borrow(self):
        """Take an idle connection, waiting up to the configured timeout."""
        if self._closed:
            raise PoolClosedError("connection pool is closed")
        self._bump("borrowed")
        try:
            conn = self._idle.get(timeout=self.config.connection_timeout)
        except queue.Empty:
            raise PoolTimeoutError("connection timeout") from None
        if conn.is_alive():
            self._activate(conn)
            conn.last_used = time.monotonic()
            return conn
        self._bump("evicted")
        _safe_close(conn)
        replacement = self._create()
        if replacement is not None:
            return self._activate(replacement)
        with self._lock:
            active_count = len(self._active)
        if active_count < self.config.max_connections:
            conn = self._create()
            if conn is not None:
                return self._activate(conn)
        raise ConnectionError_("no available connections")

    def give_back(self, conn) -> None:
        """Return a borrowed connection; dead or surplus ones are closed."""
        if self._closed:
            _safe_close(conn)
            raise PoolClosedError("connection pool is closed")
        with self._lock:
            if conn.id not in self._active:
                raise ValueError("connection not from this pool")
            del self._active[conn.id]
            self._counts["returned"] += 1
            if conn.is_alive():
                try:
                    self._idle.put_nowait(conn)
                except queue.Full:
                    _safe_close(conn)
            else:
                self._counts["evicted"] += 1
                _safe_close(conn)

    @contextmanager
    def connection(self) -> Iterator[Any]:
        conn = self.borrow()
        try:
            yield conn
        finally:
            self.give_back(conn)

    def _sweep(self, keep: Callable[[Any], bool]) -> None:
        for _ in range(self._idle.qsize()):
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            if keep(conn):
                try:
                    self._idle.put_nowait(conn)
                except queue.Full:
                    _safe_close(conn)
            else:
                self._bump("evicted")
                _safe_close(conn)
                self._refill_if_low()

    def perform_health_check(self) -> None:
        """Close idle connections that fail their check, keeping the minimum."""
        self._bump("health_checks")
        self._sweep(lambda conn: conn.is_alive())

    def evict_idle_connections(self) -> None:
        """Close connections idle longer than allowed, keeping the minimum."""
        now = time.monotonic()
        self._sweep(lambda conn: now - conn.last_used <= self.config.max_idle_time)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                raise PoolClosedError("pool already closed")
            self._closed = True
        self._stop.set()
        for thread in self._threads:
            thread.join()
        while True:
            try:
                _safe_close(self._idle.get_nowait())
            except queue.Empty:
                break
        with self._lock:
            active = list(self._active.values())
        for conn in active:
            _safe_close(conn)
        log.info("connection pool closed")

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "idle_connections": self._idle.qsize(),
                "active_connections": len(self._active),
                **self._counts,
            }


class DBClient:
    """Runs queries on connections borrowed from a pool."""

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool

    def query(self, query: str) -> Any:
        conn = self.pool.borrow()
        try:
            return conn.execute(query)
        finally:
            with suppress(PoolClosedError, ValueError):
                self.pool.give_back(conn)


def demo() -> None:
    """Run concurrent clients against a pool and report its counters."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Connection pool demo ===")
    config = PoolConfig(3, 10, 5.0, 3.0, 2.0)
    with ConnectionPool(config, DBConnection) as pool:
        client = DBClient(pool)
        print(
            f"pool ready: min={config.min_connections}, max={config.max_connections}, "
            f"idle timeout={config.max_idle_time}s"
        )
        rng = random.Random()

        def run_client(client_id: int) -> None:
            for seq in range(1, 6):
                query = f"SELECT * FROM table WHERE client={client_id} AND seq={seq}"
                try:
                    result = client.query(query)
                except (ConnectionError_, PoolTimeoutError, PoolClosedError) as exc:
                    print(f"client {client_id} query {seq} failed: {exc}")
                else:
                    print(f"client {client_id} query {seq} ok: {result}")
                time.sleep(rng.random() * 0.5)
            print(f"client {client_id} finished")

        with ThreadPoolExecutor(max_workers=20) as executor:
            for client_id in range(1, 21):
                executor.submit(run_client, client_id)

        print("\n=== final stats ===")
        for key, value in pool.stats().items():
            print(f"{key}: {value}")
        print("\nwaiting for idle eviction...")
        time.sleep(6)
        print("\n=== stats after eviction ===")
        for key, value in pool.stats().items():
            print(f"{key}: {value}")
    print("\nconnection pool demo finished")