"""Basic channel patterns: a sender thread, a squaring pipeline and a job pool."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

log = logging.getLogger(__name__)

_END = object()


@dataclass(frozen=True)
class Job:
    id: int
    data: str


@dataclass(frozen=True)
class JobResult:
    job: Job
    length: int


def send_messages(messages: Iterable[str], delay: float = 0.5) -> Iterator[str]:
    """Send messages from a background thread; iterate to receive them in order."""
    channel: queue.Queue = queue.Queue(maxsize=1)
    items = list(messages)

    def sender() -> None:
        try:
            for number, msg in enumerate(items, start=1):
                log.info("sending message %d: %s", number, msg)
                channel.put(msg)
                if delay > 0:
                    time.sleep(delay)
        finally:
            channel.put(_END)
            log.info("sending finished")

    threading.Thread(target=sender, daemon=True).start()

    def receive() -> Iterator[str]:
        while (msg := channel.get()) is not _END:
            yield msg

    return receive()


def generator(*args: int) -> Iterator[int]:
    """Yield the given numbers in order."""
    yield from args


def square(source: Iterable[int]) -> Iterator[int]:
    """Yield the square of each number."""
    for n in source:
        yield n * n


def run_job_pool(
    jobs: Iterable[Job], num_workers: int = 3, delay: float = 0.5
) -> list[JobResult]:
    """Measure each job's data on a pool of workers; results in completion order."""
    if num_workers < 1:
        raise ValueError("num_workers must be at least 1")

    def work(job: Job) -> JobResult:
        log.info("processing job %d", job.id)
        if delay > 0:
            time.sleep(delay)
        log.info("finished job %d", job.id)
        return JobResult(job, len(job.data))

    with ThreadPoolExecutor(max_workers=num_workers) as pool:
        futures = [pool.submit(work, job) for job in jobs]
        return [future.result() for future in as_completed(futures)]


def demo() -> None:
    print("=== Channel basics demo ===")
    count = 0
    for msg in send_messages(["Hello", "World", "Threads", "Queue"]):
        count += 1
        print(f"received message {count}: {msg}")
    print(f"received {count} messages")

    print("\n=== Pipeline: number -> square ===")
    for result in square(generator(1, 2, 3, 4, 5)):
        print(f"result: {result}")

    print("\n=== Job pool ===")
    data = ["hello", "world", "thread", "concurrency", "programming"]
    jobs = [Job(i, text) for i, text in enumerate(data, start=1)]
    for result in run_job_pool(jobs):
        print(f"job {result.job.id} ({result.job.data}) -> length: {result.length}")
    print("all jobs finished")