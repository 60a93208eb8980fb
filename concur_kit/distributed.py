"""Task routing over a consistent-hash ring of workers."""

from __future__ import annotations

import bisect
import logging
import queue
import threading
import time
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

log = logging.getLogger(__name__)


class NoWorkersError(LookupError):
    """Raised when the ring holds no workers."""


class QueueFullError(RuntimeError):
    """Raised when the task queue cannot take another task."""


class UnhealthyWorkerError(RuntimeError):
    """Raised when an unhealthy worker is asked to process a task."""


@dataclass(frozen=True)
class Task:
    """A unit of work identified by its id."""

    id: str
    payload: Any = None
    created: datetime = field(default_factory=datetime.now)


class DistributedWorker:
    """A worker that takes a fixed time to process each task."""

    def __init__(self, worker_id: str, processing_time: float = 0.0) -> None:
        self.id = worker_id
        self.processing_time = processing_time
        self._processed = 0
        self._healthy = True
        self._lock = threading.RLock()

    @property
    def processed_count(self) -> int:
        with self._lock:
            return self._processed

    @property
    def healthy(self) -> bool:
        with self._lock:
            return self._healthy

    @property
    def load(self) -> float:
        """Load expressed as the processing time in seconds."""
        return float(self.processing_time)

    def process_task(self, task: Task) -> None:
        with self._lock:
            if not self._healthy:
                raise UnhealthyWorkerError(f"worker {self.id} is not healthy")
            log.info("worker %s starts task %s", self.id, task.id)
            time.sleep(self.processing_time)
            self._processed += 1
            log.info(
                "worker %s finished task %s (total: %d)",
                self.id,
                task.id,
                self._processed,
            )

    def set_healthy(self, healthy: bool) -> None:
        with self._lock:
            self._healthy = healthy
        log.info("worker %s is now %s", self.id, "healthy" if healthy else "failed")

    def __repr__(self) -> str:
        return f"DistributedWorker({self.id!r}, {self.processing_time!r})"


def _hash(data: str) -> int:
    return zlib.crc32(data.encode("utf-8"))


class ConsistentHash:
    """A consistent-hash ring with a fixed number of virtual nodes per worker."""

    def __init__(self, replicas: int) -> None:
        self.replicas = replicas
        self._ring: dict[int, str] = {}
        self._sorted_keys: list[int] = []
        self._workers: dict[str, DistributedWorker] = {}
        self._lock = threading.RLock()

    def _virtual_hashes(self, worker_id: str):
        return (_hash(f"{worker_id}#{i}") for i in range(self.replicas))

    def add_worker(self, worker) -> None:
        with self._lock:
            self._workers[worker.id] = worker
            for h in self._virtual_hashes(worker.id):
                self._ring[h] = worker.id
                bisect.insort(self._sorted_keys, h)
        log.info("worker %s added to ring (virtual nodes: %d)", worker.id, self.replicas)

    def remove_worker(self, worker_id: str) -> None:
        with self._lock:
            for h in self._virtual_hashes(worker_id):
                self._ring.pop(h, None)
                pos = bisect.bisect_left(self._sorted_keys, h)
                if pos < len(self._sorted_keys) and self._sorted_keys[pos] == h:
                    del self._sorted_keys[pos]
            self._workers.pop(worker_id, None)
        log.info("worker %s removed from ring", worker_id)

    def get_worker(self, task_id: str):
        """Return the worker owning the first ring point at or after the key's hash."""
        with self._lock:
            if not self._ring:
                raise NoWorkersError("no workers available")
            h = _hash(task_id)
            idx = bisect.bisect_left(self._sorted_keys, h)
            if idx == len(self._sorted_keys):
                idx = 0
            return self._workers[self._ring[self._sorted_keys[idx]]]

    def all_workers(self) -> list:
        with self._lock:
            return list(self._workers.values())


class WorkerManager:
    """Queues tasks and routes each one to its worker on the ring."""

    def __init__(self, replicas: int, queue_size: int = 100) -> None:
        self._ring = ConsistentHash(replicas)
        self._tasks: queue.Queue[Task] = queue.Queue(maxsize=queue_size)
        self._stop = threading.Event()
        self._processor: threading.Thread | None = None
        self._inflight: list[threading.Thread] = []
        self._inflight_lock = threading.Lock()

    def add_worker(self, worker) -> None:
        self._ring.add_worker(worker)

    def remove_worker(self, worker_id: str) -> None:
        self._ring.remove_worker(worker_id)

    def submit_task(self, task: Task) -> None:
        try:
            self._tasks.put_nowait(task)
        except queue.Full:
            raise QueueFullError("task queue is full") from None
        log.info("task %s queued", task.id)

    def start(self) -> None:
        self._stop.clear()
        self._processor = threading.Thread(target=self._run, daemon=True)
        self._processor.start()
        log.info("worker manager started")

    def stop(self) -> None:
        """Stop routing and wait for tasks already handed to workers."""
        self._stop.set()
        if self._processor is not None:
            self._processor.join()
            self._processor = None
        with self._inflight_lock:
            pending, self._inflight = self._inflight, []
        for thread in pending:
            thread.join()
        log.info("worker manager stopped")

    def __enter__(self) -> "WorkerManager":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                task = self._tasks.get(timeout=0.05)
            except queue.Empty:
                continue
            self._dispatch(task)

    def _dispatch(self, task: Task) -> None:
        try:
            worker = self._ring.get_worker(task.id)
        except NoWorkersError as exc:
            log.warning("cannot route task %s: %s", task.id, exc)
            return
        if not worker.healthy:
            log.warning("worker %s is unhealthy, task %s dropped", worker.id, task.id)
            return
        thread = threading.Thread(target=self._process, args=(worker, task), daemon=True)
        with self._inflight_lock:
            self._inflight = [t for t in self._inflight if t.is_alive()]
            self._inflight.append(thread)
        thread.start()

    @staticmethod
    def _process(worker, task: Task) -> None:
        try:
            worker.process_task(task)
        except UnhealthyWorkerError as exc:
            log.warning("task processing failed: %s", exc)

    def stats(self) -> dict[str, dict[str, Any]]:
        workers = self._ring.all_workers()
        result: dict[str, dict[str, Any]] = {
            w.id: {"processed": w.processed_count, "healthy": w.healthy, "load": w.load}
            for w in workers
        }
        result["total"] = {
            "workers": len(workers),
            "healthy_workers": sum(1 for w in workers if w.healthy),
            "total_processed": sum(w.processed_count for w in workers),
        }
        return result


def _submit_batch(manager: WorkerManager, numbers: range) -> None:
    for i in numbers:
        task = Task(f"task-{i:02d}", f"task data {i}")
        try:
            manager.submit_task(task)
        except QueueFullError as exc:
            print(f"submit failed: {exc}")
        time.sleep(0.05)


def demo() -> None:
    """Route batches of tasks while a worker fails, leaves and comes back."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Distributed worker demo ===")
    manager = WorkerManager(3)
    workers = [
        DistributedWorker("worker-1", 0.1),
        DistributedWorker("worker-2", 0.2),
        DistributedWorker("worker-3", 0.15),
        DistributedWorker("worker-4", 0.3),
    ]
    print("\n--- adding workers ---")
    for worker in workers:
        manager.add_worker(worker)

    with manager:
        print("\n--- submitting tasks ---")
        _submit_batch(manager, range(1, 21))
        time.sleep(3)

        print("\n--- simulating a failure ---")
        workers[1].set_healthy(False)
        _submit_batch(manager, range(21, 31))
        time.sleep(2)

        print("\n--- removing failed worker ---")
        manager.remove_worker("worker-2")
        print("\n--- restoring worker ---")
        workers[1].set_healthy(True)
        manager.add_worker(workers[1])

        print("\n--- last batch ---")
        _submit_batch(manager, range(31, 41))
        time.sleep(3)

        print("\n=== final stats ===")
        stats = manager.stats()
        for worker_id, worker_stats in stats.items():
            if worker_id != "total":
                print(f"worker {worker_id}: {worker_stats}")
        print(f"total: {stats['total']}")