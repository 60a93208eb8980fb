"""Multi-stage data pipelines: generate, filter, transform, fan out and aggregate."""

from __future__ import annotations

import dataclasses
import logging
import queue
import random
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataItem:
    id: int
    value: int
    stage: str = ""


class DataGeneratorStage:
    """Emits ``count`` items with random values in 0..99; ignores its input."""

    def __init__(
        self, count: int, rng: random.Random | None = None, delay: float = 0.1
    ) -> None:
        self.name = "Generator"
        self.count = count
        self._rng = rng or random.Random()
        self.delay = delay

    def process(self, source: Iterable[DataItem] | None) -> Iterator[DataItem]:
        for i in range(1, self.count + 1):
            item = DataItem(i, self._rng.randrange(100), self.name)
            log.info("%s: generated id=%d value=%d", self.name, item.id, item.value)
            yield item
            if self.delay > 0:
                time.sleep(self.delay)
        log.info("%s: generation finished", self.name)


class FilterStage:
    """Passes on only the items the predicate accepts."""

    def __init__(self, name: str, predicate: Callable[[DataItem], bool]) -> None:
        self.name = name
        self.predicate = predicate

    def process(self, source: Iterable[DataItem]) -> Iterator[DataItem]:
        for item in source:
            if self.predicate(item):
                log.info("%s: passed id=%d value=%d", self.name, item.id, item.value)
                yield dataclasses.replace(item, stage=self.name)
            else:
                log.info("%s: dropped id=%d value=%d", self.name, item.id, item.value)
        log.info("%s: filtering finished", self.name)


class TransformStage:
    """Applies a function to every item."""

    def __init__(
        self,
        name: str,
        transformer: Callable[[DataItem], DataItem],
        delay: float = 0.05,
    ) -> None:
        self.name = name
        self.transformer = transformer
        self.delay = delay

    def process(self, source: Iterable[DataItem]) -> Iterator[DataItem]:
        for item in source:
            transformed = dataclasses.replace(self.transformer(item), stage=self.name)
            log.info(
                "%s: id=%d %d -> %d", self.name, item.id, item.value, transformed.value
            )
            yield transformed
            if self.delay > 0:
                time.sleep(self.delay)
        log.info("%s: transforming finished", self.name)


class AggregateStage:
    """Sums values in batches of ``batch_size``; a short final batch is emitted too."""

    def __init__(self, name: str, batch_size: int) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.name = name
        self.size = batch_size

    def _emit(self, batch_id: int, batch: list[DataItem]) -> DataItem:
        total = sum(item.value for item in batch)
        log.info(
            "%s: batch %d with %d items, sum=%d", self.name, batch_id, len(batch), total
        )
        return DataItem(batch_id, total, self.name)

    def process(self, source: Iterable[DataItem]) -> Iterator[DataItem]:
        batch: list[DataItem] = []
        batch_id = 1
        for item in source:
            batch.append(item)
            if len(batch) >= self.size:
                yield self._emit(batch_id, batch)
                batch = []
                batch_id += 1
        if batch:
            yield self._emit(batch_id, batch)
        log.info("%s: aggregation finished", self.name)


_DONE = object()


class ParallelStage:
    """Applies a function on several worker threads; output order is not kept."""

    def __init__(
        self,
        name: str,
        workers: int,
        worker_func: Callable[[DataItem], DataItem],
        delay_range: tuple[float, float] = (0.1, 0.3),
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.name = name
        self.workers = workers
        self.worker_func = worker_func
        self.delay_range = delay_range

    def process(self, source: Iterable[DataItem]) -> Iterator[DataItem]:
        items = iter(source)
        take_lock = threading.Lock()
        out: queue.Queue = queue.Queue()
        low, high = self.delay_range

        def take():
            with take_lock:
                return next(items, _DONE)

        def work(worker_id: int) -> None:
            try:
                while (item := take()) is not _DONE:
                    processed = dataclasses.replace(
                        self.worker_func(item), stage=f"{self.name}-Worker{worker_id}"
                    )
                    log.info(
                        "%s worker %d: id=%d %d -> %d",
                        self.name,
                        worker_id,
                        item.id,
                        item.value,
                        processed.value,
                    )
                    out.put(processed)
                    if high > 0:
                        time.sleep(random.uniform(low, high))
            except Exception as exc:  # handed to the reading side
                out.put(exc)
            finally:
                out.put(_DONE)

        for worker_id in range(1, self.workers + 1):
            threading.Thread(target=work, args=(worker_id,), daemon=True).start()

        def collect() -> Iterator[DataItem]:
            remaining = self.workers
            while remaining:
                got = out.get()
                if got is _DONE:
                    remaining -= 1
                elif isinstance(got, Exception):
                    raise got
                else:
                    yield got
            log.info("%s: all workers finished", self.name)

        return collect()


class Pipeline:
    """Chains stages; the first stage is the source."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.stages: list = []

    def add_stage(self, stage) -> "Pipeline":
        self.stages.append(stage)
        return self

    def execute(self) -> Iterator[DataItem]:
        if not self.stages:
            return iter(())
        log.info("starting pipeline %s", self.name)
        current = self.stages[0].process(None)
        for stage in self.stages[1:]:
            log.info("connecting stage %s", stage.name)
            current = stage.process(current)
        return current


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Pipeline processing demo ===")
    pipeline = (
        Pipeline("data pipeline")
        .add_stage(DataGeneratorStage(10))
        .add_stage(FilterStage("filter", lambda item: item.value % 2 == 0))
        .add_stage(
            TransformStage("square", lambda item: dataclasses.replace(item, value=item.value**2))
        )
        .add_stage(
            ParallelStage("parallel", 3, lambda item: dataclasses.replace(item, value=item.value + 10))
        )
        .add_stage(AggregateStage("aggregate", 3))
    )
    print("\n=== final results ===")
    results = []
    for item in pipeline.execute():
        results.append(item)
        print(f"batch {item.id}: sum={item.value}, from={item.stage}")
    print(f"\npipeline finished, {len(results)} results")
    print(f"total of all batches: {sum(item.value for item in results)}")