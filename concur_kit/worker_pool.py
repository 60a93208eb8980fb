"""A fixed pool of workers summing integer tasks, faster for higher priority."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

_DONE = object()


@dataclass(frozen=True)
class PoolTask:
    id: int
    data: list[int] = field(default_factory=list)
    priority: int = 0


@dataclass(frozen=True)
class TaskResult:
    task_id: int
    sum: int
    worker: int


class WorkerPool:
    """Workers take tasks from a queue and post their sums to a results queue.

    A task sleeps ``(5 - priority) * time_unit`` seconds before it is summed.
    """

    def __init__(self, num_workers: int, time_unit: float = 0.1) -> None:
        self.num_workers = num_workers
        self.time_unit = time_unit
        self._tasks: queue.Queue = queue.Queue(maxsize=100)
        self._results: queue.Queue = queue.Queue(maxsize=100)
        self._threads: list[threading.Thread] = []
        self._closed = False

    def _work(self, worker_id: int) -> None:
        while (task := self._tasks.get()) is not _DONE:
            log.info("worker %d starts task %d (priority %d)", worker_id, task.id, task.priority)
            time.sleep(max(0.0, (5 - task.priority) * self.time_unit))
            total = sum(task.data)
            self._results.put(TaskResult(task.id, total, worker_id))
            log.info("worker %d finished task %d: %d", worker_id, task.id, total)
        log.info("worker %d exits", worker_id)

    def start(self) -> None:
        for worker_id in range(1, self.num_workers + 1):
            thread = threading.Thread(target=self._work, args=(worker_id,), daemon=True)
            thread.start()
            self._threads.append(thread)

    def submit(self, task: PoolTask) -> None:
        if self._closed:
            raise RuntimeError("pool is closed")
        self._tasks.put(task)

    def close(self) -> None:
        """Accept no more tasks; workers exit once the queue drains."""
        if self._closed:
            raise RuntimeError("pool is already closed")
        self._closed = True
        for _ in range(self.num_workers):
            self._tasks.put(_DONE)

    def wait(self) -> None:
        """Wait for all workers to exit, then end the results stream."""
        for thread in self._threads:
            thread.join()
        self._results.put(_DONE)

    def results(self) -> Iterator[TaskResult]:
        while (result := self._results.get()) is not _DONE:
            yield result


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Worker pool demo ===")
    pool = WorkerPool(3)
    pool.start()
    tasks = [
        PoolTask(1, [1, 2, 3, 4], 1),
        PoolTask(2, [5, 6, 7, 8], 3),
        PoolTask(3, [9, 10, 11], 2),
        PoolTask(4, [12, 13, 14, 15], 1),
        PoolTask(5, [16, 17], 3),
    ]
    for task in tasks:
        pool.submit(task)
    pool.close()
    threading.Thread(target=pool.wait, daemon=True).start()

    print("\nresults:")
    for result in pool.results():
        print(f"task {result.task_id}: sum={result.sum} (worker {result.worker})")
    print("all tasks done")