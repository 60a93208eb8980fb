import random
import threading
import time

import pytest

from concur_kit.connection_pool import (
    ConnectionError_,
    ConnectionPool,
    DBClient,
    DBConnection,
    PoolClosedError,
    PoolConfig,
    PoolTimeoutError,
)


def make_conn(conn_id, **overrides):
    params = dict(
        rng=random.Random(1),
        connect_failure=0.0,
        query_failure=0.0,
        alive_failure=0.0,
        delay_scale=0.0,
    )
    params.update(overrides)
    return DBConnection(conn_id, **params)


class Factory:
    def __init__(self, **overrides):
        self.overrides = overrides
        self.made = []

    def __call__(self, conn_id):
        conn = make_conn(conn_id, **self.overrides)
        self.made.append(conn)
        return conn


def make_pool(min_connections=2, max_connections=5, timeout=0.05, **overrides):
    factory = Factory(**overrides)
    config = PoolConfig(
        min_connections=min_connections,
        max_connections=max_connections,
        max_idle_time=120.0,
        connection_timeout=timeout,
        health_check_period=60.0,
    )
    return ConnectionPool(config, factory), factory


def test_connection_lifecycle():
    conn = make_conn("c1")
    conn.connect()
    assert conn.connected
    with pytest.raises(ConnectionError_):
        conn.connect()
    conn.close()
    assert not conn.connected
    with pytest.raises(ConnectionError_):
        conn.close()


def test_execute_returns_result_and_counts():
    conn = make_conn("c1")
    conn.connect()
    assert conn.execute("SELECT 1") == "Result from c1: SELECT 1"
    conn.execute("SELECT 2")
    assert conn.queries == 2


def test_execute_requires_connection():
    with pytest.raises(ConnectionError_):
        make_conn("c1").execute("SELECT 1")


def test_connect_failure():
    conn = make_conn("c1", connect_failure=1.0)
    with pytest.raises(ConnectionError_):
        conn.connect()
    assert not conn.connected


def test_failed_alive_check_disconnects():
    conn = make_conn("c1", alive_failure=1.0)
    conn.connect()
    assert conn.is_alive() is False
    with pytest.raises(ConnectionError_):
        conn.execute("SELECT 1")


@pytest.mark.parametrize("min_c,max_c", [(-1, 5), (5, 2)])
def test_invalid_config(min_c, max_c):
    with pytest.raises(ValueError):
        ConnectionPool(PoolConfig(min_c, max_c), Factory())


def test_pool_creates_minimum():
    pool, factory = make_pool(min_connections=2)
    with pool:
        stats = pool.stats()
        assert stats["idle_connections"] == 2
        assert stats["created"] == 2
        assert [c.id for c in factory.made] == ["conn-1", "conn-2"]


def test_borrow_and_give_back():
    pool, _ = make_pool(min_connections=2)
    with pool:
        conn = pool.borrow()
        assert conn.id == "conn-1"
        assert pool.stats()["active_connections"] == 1
        assert pool.stats()["idle_connections"] == 1
        pool.give_back(conn)
        stats = pool.stats()
        assert stats["returned"] == 1
        assert stats["idle_connections"] == 2
        assert stats["active_connections"] == 0


def test_connection_context_manager_returns():
    pool, _ = make_pool(min_connections=1)
    with pool:
        with pool.connection() as conn:
            assert pool.stats()["active_connections"] == 1
            assert conn.connected
        assert pool.stats()["idle_connections"] == 1
        assert pool.stats()["borrowed"] == pool.stats()["returned"]


def test_borrow_times_out_on_empty_pool():
    pool, _ = make_pool(min_connections=0)
    with pool:
        with pytest.raises(PoolTimeoutError):
            pool.borrow()


def test_give_back_foreign_connection():
    pool, _ = make_pool(min_connections=1)
    with pool:
        stranger = make_conn("other")
        stranger.connect()
        with pytest.raises(ValueError):
            pool.give_back(stranger)


def test_borrow_replaces_dead_connection():
    pool, factory = make_pool(min_connections=1)
    with pool:
        factory.made[0].alive_failure = 1.0
        conn = pool.borrow()
        assert conn is not factory.made[0]
        assert conn.connected
        assert pool.stats()["evicted"] == 1


def test_health_check_evicts_and_refills():
    pool, factory = make_pool(min_connections=2)
    with pool:
        factory.made[0].alive_failure = 1.0
        pool.perform_health_check()
        stats = pool.stats()
        assert stats["health_checks"] == 1
        assert stats["evicted"] == 1
        assert stats["idle_connections"] == 2
        assert not factory.made[0].connected


def test_idle_eviction():
    pool, factory = make_pool(min_connections=2)
    with pool:
        factory.made[0].last_used = time.monotonic() - 1000
        pool.evict_idle_connections()
        stats = pool.stats()
        assert stats["evicted"] == 1
        assert stats["idle_connections"] == 2
        assert stats["created"] == 3
        assert not factory.made[0].connected
        assert factory.made[1].connected


def test_close_closes_everything():
    pool, factory = make_pool(min_connections=2)
    borrowed = pool.borrow()
    pool.close()
    assert all(not c.connected for c in factory.made)
    assert not borrowed.connected
    with pytest.raises(PoolClosedError):
        pool.close()
    with pytest.raises(PoolClosedError):
        pool.borrow()


def test_give_back_after_close():
    pool, _ = make_pool(min_connections=1)
    conn = pool.borrow()
    pool.close()
    with pytest.raises(PoolClosedError):
        pool.give_back(conn)
    assert not conn.connected


def test_client_query():
    pool, _ = make_pool(min_connections=1)
    with pool:
        client = DBClient(pool)
        assert client.query("SELECT 1") == "Result from conn-1: SELECT 1"
        stats = pool.stats()
        assert stats["borrowed"] == 1
        assert stats["returned"] == 1


def test_client_query_failure_still_returns_connection():
    pool, _ = make_pool(min_connections=1, query_failure=1.0)
    with pool:
        with pytest.raises(ConnectionError_):
            DBClient(pool).query("SELECT 1")
        assert pool.stats()["active_connections"] == 0
        assert pool.stats()["idle_connections"] == 1


def test_concurrent_clients():
    pool, _ = make_pool(min_connections=3, max_connections=3, timeout=5.0)
    results = []
    lock = threading.Lock()
    with pool:
        client = DBClient(pool)

        def run(n):
            result = client.query(f"q{n}")
            with lock:
                results.append(result)

        threads = [threading.Thread(target=run, args=(n,)) for n in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        stats = pool.stats()
        assert len(results) == 12
        assert all(r.endswith(f": {r.split(': ')[-1]}") and r.startswith("Result from conn-")
                   for r in results)
        assert stats["active_connections"] == 0
        assert stats["borrowed"] == stats["returned"] == 12