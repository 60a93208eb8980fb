"""Several producers feeding several consumers through a bounded queue."""

from __future__ import annotations

import logging
import queue
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: float


def produce(
    producer_id: int,
    products: queue.Queue,
    count: int = 5,
    max_delay: float = 0.5,
    rng: random.Random | None = None,
) -> list[Product]:
    """Put ``count`` products on the queue and return them."""
    rng = rng or random.Random()
    made = []
    for i in range(1, count + 1):
        product = Product(
            id=producer_id * 100 + i,
            name=f"product-{producer_id}-{i}",
            price=rng.random() * 100,
        )
        log.info("producer %d made %s", producer_id, product)
        products.put(product)
        made.append(product)
        if max_delay > 0:
            time.sleep(rng.uniform(0, max_delay))
    log.info("producer %d done", producer_id)
    return made


def consume(
    consumer_id: int,
    products: queue.Queue,
    delay: tuple[float, float] = (0.2, 0.5),
) -> list[Product]:
    """Take products off the queue until a ``None`` marker arrives."""
    consumed = []
    low, high = delay
    while (product := products.get()) is not None:
        log.info(
            "consumer %d took id=%d name=%s price=%.2f",
            consumer_id,
            product.id,
            product.name,
            product.price,
        )
        consumed.append(product)
        if high > 0:
            time.sleep(random.uniform(low, high))
    log.info("consumer %d stopped", consumer_id)
    return consumed


def run(
    num_producers: int = 3,
    num_consumers: int = 2,
    buffer_size: int = 10,
    per_producer: int = 5,
    max_delay: float = 0.5,
) -> dict[int, list[Product]]:
    """Run producers and consumers to completion; return what each consumer took."""
    products: queue.Queue = queue.Queue(maxsize=buffer_size)
    consume_delay = (max_delay * 0.4, max_delay)
    with ThreadPoolExecutor(max_workers=num_producers + num_consumers) as pool:
        consumers = {
            cid: pool.submit(consume, cid, products, consume_delay)
            for cid in range(1, num_consumers + 1)
        }
        producers = [
            pool.submit(produce, pid, products, per_producer, max_delay)
            for pid in range(1, num_producers + 1)
        ]
        for future in producers:
            future.result()
        log.info("all producers done, closing queue")
        for _ in consumers:
            products.put(None)
        return {cid: future.result() for cid, future in consumers.items()}


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Producer/consumer demo ===")
    taken = run()
    for cid, items in taken.items():
        print(f"consumer {cid} took {len(items)} products")
    print("all consumers finished")