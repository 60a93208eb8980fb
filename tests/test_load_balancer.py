import threading
import time
from collections import Counter

import pytest

from concur_kit.load_balancer import (
    LeastConnectionsStrategy,
    LoadBalancer,
    NoHealthyServerError,
    RoundRobinStrategy,
    Server,
    ServerError,
    WeightedRoundRobinStrategy,
)


def make_server(server_id, weight=1, failure_rate=0.0, delay=(0.0, 0.0)):
    return Server(server_id, f"10.0.0.{server_id}:8080", weight,
                  delay_range=delay, failure_rate=failure_rate)


class ZeroRandom:
    def random(self):
        return 0.0

    def uniform(self, a, b):
        return a


def test_server_success_counts_total():
    server = make_server(1)
    server.process_request("req-1")
    server.process_request("req-2")
    active, total, failed = server.stats()
    assert (active, total, failed) == (0, 2, 0)


def test_server_failure_raises_and_counts():
    server = make_server(1, failure_rate=1.0)
    with pytest.raises(ServerError):
        server.process_request("req-1")
    assert server.stats() == (0, 0, 1)


def test_server_active_count_during_request():
    server = make_server(1, delay=(0.3, 0.3))
    thread = threading.Thread(target=server.process_request, args=("r",))
    thread.start()
    time.sleep(0.1)
    assert server.stats()[0] == 1
    thread.join()
    assert server.stats()[0] == 0


def test_round_robin_spreads_evenly_over_healthy():
    servers = [make_server(i) for i in (1, 2, 3)]
    servers[1].set_healthy(False)
    strategy = RoundRobinStrategy()
    picks = Counter(strategy.select(servers).id for _ in range(10))
    assert picks[1] == picks[3] == 5
    assert 2 not in picks


def test_round_robin_returns_none_without_healthy():
    servers = [make_server(1)]
    servers[0].set_healthy(False)
    assert RoundRobinStrategy().select(servers) is None
    assert RoundRobinStrategy().select([]) is None


def test_least_connections_prefers_idle_server():
    busy = make_server(1, delay=(0.4, 0.4))
    idle = make_server(2)
    thread = threading.Thread(target=busy.process_request, args=("r",))
    thread.start()
    time.sleep(0.1)
    assert LeastConnectionsStrategy().select([busy, idle]) is idle
    thread.join()


def test_least_connections_skips_unhealthy():
    first, second = make_server(1), make_server(2)
    first.set_healthy(False)
    assert LeastConnectionsStrategy().select([first, second]) is second
    second.set_healthy(False)
    assert LeastConnectionsStrategy().select([first, second]) is None


def test_weighted_round_robin_follows_weights():
    servers = [make_server(1, 3), make_server(2, 2), make_server(3, 1)]
    strategy = WeightedRoundRobinStrategy()
    total_weight = sum(s.weight for s in servers)
    picks = Counter(strategy.select(servers).id for _ in range(total_weight * 4))
    for server in servers:
        assert picks[server.id] == server.weight * 4


def test_weighted_round_robin_empty():
    assert WeightedRoundRobinStrategy().select([]) is None


def test_balancer_without_servers_raises():
    lb = LoadBalancer(RoundRobinStrategy())
    with pytest.raises(NoHealthyServerError):
        lb.process_request("req-1")
    stats = lb.stats()
    assert stats["total_requests"] == stats["failed_requests"] == 1


def test_balancer_counts_server_failures():
    lb = LoadBalancer(LeastConnectionsStrategy())
    lb.add_server(make_server(1, failure_rate=1.0))
    with pytest.raises(ServerError):
        lb.process_request("req-1")
    stats = lb.stats()
    assert stats["failed_requests"] == 1
    assert stats["servers"][0]["failed"] == 1
    assert stats["strategy"] == "LeastConnections"


def test_balancer_add_and_remove():
    lb = LoadBalancer(RoundRobinStrategy())
    for i in (1, 2, 3):
        lb.add_server(make_server(i))
    lb.remove_server(2)
    assert [s.id for s in lb.servers] == [1, 3]
    for n in range(4):
        lb.process_request(f"req-{n}")
    stats = lb.stats()
    assert stats["failed_requests"] == 0
    assert sum(row["total"] for row in stats["servers"]) == 4


def test_health_check_marks_servers_unhealthy():
    lb = LoadBalancer(RoundRobinStrategy())
    lb.add_server(make_server(1))
    lb.add_server(make_server(2))
    lb.start_health_check(interval=0.01, rng=ZeroRandom())
    deadline = time.monotonic() + 2
    while time.monotonic() < deadline and any(s.healthy for s in lb.servers):
        time.sleep(0.01)
    lb.stop_health_check()
    assert all(not row["healthy"] for row in lb.stats()["servers"])


def test_print_stats_output(capsys):
    lb = LoadBalancer(WeightedRoundRobinStrategy())
    lb.add_server(make_server(7))
    lb.print_stats()
    out = capsys.readouterr().out
    assert "WeightedRoundRobin" in out
    assert "server 7" in out