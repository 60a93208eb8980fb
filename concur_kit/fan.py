"""Fan-out of a task stream over several workers and fan-in of their results."""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")
_CLOSED = object()


@dataclass(frozen=True)
class FanTask:
    id: int
    data: int


@dataclass(frozen=True)
class FanResult:
    task_id: int
    result: int


class _Channel(Generic[T]):
    """A closable queue that any number of readers can iterate until closed."""

    def __init__(self) -> None:
        self._queue: queue.Queue = queue.Queue()

    def put(self, item: T) -> None:
        self._queue.put(item)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[T]:
        while (item := self._queue.get()) is not _CLOSED:
            yield item
        self._queue.put(_CLOSED)


def _spawn(target, *args) -> None:
    threading.Thread(target=target, args=args, daemon=True).start()


def task_generator(tasks: Iterable[FanTask], delay: float = 0.1) -> _Channel[FanTask]:
    """Emit the tasks one by one from a background thread, then close."""
    out: _Channel[FanTask] = _Channel()
    items = list(tasks)

    def emit() -> None:
        try:
            for task in items:
                out.put(task)
                if delay > 0:
                    time.sleep(delay)
        finally:
            out.close()

    _spawn(emit)
    return out


def fan_out(
    source: _Channel[FanTask],
    num_workers: int,
    delay_range: tuple[float, float] = (0.1, 0.6),
    rng: random.Random | None = None,
) -> list[_Channel[FanResult]]:
    """Start workers that square the tasks they take; one output per worker."""
    rng = rng or random.Random()
    outputs: list[_Channel[FanResult]] = []

    def work(worker_id: int, out: _Channel[FanResult]) -> None:
        try:
            low, high = delay_range
            for task in source:
                if high > 0:
                    time.sleep(rng.uniform(low, high))
                result = FanResult(task.id, task.data * task.data)
                log.info(
                    "worker %d processed task %d: %d -> %d",
                    worker_id,
                    task.id,
                    task.data,
                    result.result,
                )
                out.put(result)
            log.info("worker %d done", worker_id)
        finally:
            out.close()

    for worker_id in range(1, num_workers + 1):
        out: _Channel[FanResult] = _Channel()
        outputs.append(out)
        _spawn(work, worker_id, out)
    return outputs


def fan_in(sources: Sequence[_Channel[T]]) -> _Channel[T]:
    """Merge several channels into one that closes when all of them have."""
    output: _Channel[T] = _Channel()

    def forward(index: int, source: _Channel[T]) -> None:
        for item in source:
            log.info("collected from channel %d: %s", index + 1, item)
            output.put(item)

    threads = [
        threading.Thread(target=forward, args=(i, s), daemon=True)
        for i, s in enumerate(sources)
    ]
    for thread in threads:
        thread.start()

    def close_when_done() -> None:
        for thread in threads:
            thread.join()
        output.close()

    _spawn(close_when_done)
    return output


def drain(channel: _Channel[T]) -> list[T]:
    """Collect everything from a channel until it closes."""
    return list(channel)


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Fan-out / fan-in demo ===")
    tasks = [FanTask(i, i + 1) for i in range(1, 9)]
    print(f"{len(tasks)} tasks to process")
    print("starting 3 workers")
    results = drain(fan_in(fan_out(task_generator(tasks), 3)))
    print("\nresults by task id:")
    for result in sorted(results, key=lambda r: r.task_id):
        print(f"task {result.task_id}: {result.result}")
    print(f"\ndone, processed {len(results)} tasks")