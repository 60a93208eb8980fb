"""Command line entry: greets, or runs one of the concurrency demos."""

from __future__ import annotations

import argparse
from collections.abc import Callable

from concur_kit import (
    actor,
    basics,
    cancellation,
    circuit_breaker,
    connection_pool,
    distributed,
    fan,
    load_balancer,
    message_queue,
    pipeline,
    producer_consumer,
    pubsub,
    rate_limiter,
    semaphore,
    worker_pool,
)

DEMOS: dict[str, Callable[[], None]] = {
    "actor": actor.demo,
    "basics": basics.demo,
    "cancellation": cancellation.demo,
    "circuit-breaker": circuit_breaker.demo,
    "connection-pool": connection_pool.demo,
    "distributed": distributed.demo,
    "fan": fan.demo,
    "load-balancer": load_balancer.demo,
    "message-queue": message_queue.demo,
    "pipeline": pipeline.demo,
    "producer-consumer": producer_consumer.demo,
    "pubsub": pubsub.demo,
    "rate-limiter": rate_limiter.demo,
    "semaphore": semaphore.demo,
    "worker-pool": worker_pool.demo,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="concur-kit", description="Run a concurrency pattern demo."
    )
    parser.add_argument("demo", nargs="?", choices=sorted(DEMOS), help="demo to run")
    parser.add_argument("--list", action="store_true", help="list available demos")
    args = parser.parse_args(argv)
    if args.list:
        for name in sorted(DEMOS):
            print(name)
        return 0
    if args.demo is None:
        print("Hello, World!")
        return 0
    DEMOS[args.demo]()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())