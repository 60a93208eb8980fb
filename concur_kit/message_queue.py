"""An in-memory publish/subscribe queue with retries and a dead-letter list."""

from __future__ import annotations

import dataclasses
import logging
import queue
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

log = logging.getLogger(__name__)


class ProcessingError(RuntimeError):
    """Raised by a consumer that failed to process a message."""


class NoConsumersError(LookupError):
    """Raised when a message is published to a topic nobody subscribes to."""


class SubscriptionError(LookupError):
    """Raised for duplicate subscriptions and unknown topics or consumers."""


@dataclass(frozen=True)
class QueueMessage:
    id: str
    topic: str
    payload: Any = None
    timestamp: datetime = field(default_factory=datetime.now)
    retries: int = 0
    priority: int = 0


class Consumer(Protocol):
    id: str

    def consume(self, message: QueueMessage) -> None: ...


class SimpleConsumer:
    """A consumer that takes a fixed time and succeeds with a given probability."""

    def __init__(
        self,
        consumer_id: str,
        process_time: float = 0.0,
        success_rate: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        self.id = consumer_id
        self.process_time = process_time
        self.success_rate = success_rate
        self._rng = rng or random.Random()
        self._count = 0
        self._lock = threading.Lock()

    @property
    def message_count(self) -> int:
        with self._lock:
            return self._count

    def consume(self, message: QueueMessage) -> None:
        with self._lock:
            self._count += 1
        time.sleep(self.process_time)
        if self._rng.random() < self.success_rate:
            log.info("consumer %s processed %s (topic %s)", self.id, message.id, message.topic)
            return
        log.info("consumer %s failed %s (topic %s)", self.id, message.id, message.topic)
        raise ProcessingError("processing failed")


class InMemoryMessageQueue:
    """Delivers each published message to every subscriber of its topic.

    A failed delivery is retried after ``retries * retry_delay`` seconds until
    ``max_retries`` is reached; then the message goes to the dead-letter list.
    """

    def __init__(
        self, max_retries: int, retry_delay: float = 1.0, retry_capacity: int = 1000
    ) -> None:
        if retry_capacity < 1:
            raise ValueError("retry_capacity must be at least 1")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._subscriptions: dict[str, list[Consumer]] = {}
        self._retry: queue.Queue[QueueMessage] = queue.Queue(maxsize=retry_capacity)
        self._dead: list[QueueMessage] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._published = 0
        self._consumed = 0
        self._failed = 0
        self._retried = 0
        self._worker = threading.Thread(target=self._retry_loop, daemon=True)
        self._worker.start()

    def __enter__(self) -> "InMemoryMessageQueue":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def publish(self, topic: str, message: QueueMessage) -> None:
        """Deliver to all subscribers concurrently and wait for them."""
        with self._lock:
            consumers = list(self._subscriptions.get(topic, ()))
        if not consumers:
            log.warning("topic %s has no consumers", topic)
            raise NoConsumersError(f"no consumers for topic: {topic}")
        with self._lock:
            self._published += 1
        with ThreadPoolExecutor(max_workers=len(consumers)) as pool:
            list(pool.map(lambda c: self._deliver(message, c), consumers))

    def _deliver(self, message: QueueMessage, consumer: Consumer) -> None:
        try:
            consumer.consume(message)
        except Exception:
            with self._lock:
                self._failed += 1
            if message.retries < self.max_retries:
                retry = dataclasses.replace(message, retries=message.retries + 1)
                try:
                    self._retry.put_nowait(retry)
                except queue.Full:
                    self._add_dead_letter(retry)
                else:
                    with self._lock:
                        self._retried += 1
                    log.info("message %s queued for retry (%d)", retry.id, retry.retries)
            else:
                self._add_dead_letter(message)
        else:
            with self._lock:
                self._consumed += 1

    def _add_dead_letter(self, message: QueueMessage) -> None:
        with self._lock:
            self._dead.append(message)
        log.info("message %s moved to dead letters", message.id)

    def _retry_loop(self) -> None:
        while not self._stop.is_set():
            try:
                message = self._retry.get(timeout=0.05)
            except queue.Empty:
                continue
            if self._stop.wait(message.retries * self.retry_delay):
                return
            log.info("retrying %s (attempt %d)", message.id, message.retries)
            try:
                self.publish(message.topic, message)
            except NoConsumersError:
                pass

    def subscribe(self, topic: str, consumer: Consumer) -> None:
        with self._lock:
            consumers = self._subscriptions.setdefault(topic, [])
            if any(c.id == consumer.id for c in consumers):
                raise SubscriptionError(
                    f"consumer {consumer.id} already subscribed to topic {topic}"
                )
            consumers.append(consumer)
        log.info("consumer %s subscribed to %s", consumer.id, topic)

    def unsubscribe(self, topic: str, consumer_id: str) -> None:
        with self._lock:
            consumers = self._subscriptions.get(topic)
            if consumers is None:
                raise SubscriptionError(f"topic {topic} not found")
            for i, consumer in enumerate(consumers):
                if consumer.id == consumer_id:
                    del consumers[i]
                    break
            else:
                raise SubscriptionError(f"consumer {consumer_id} not found in topic {topic}")
        log.info("consumer %s unsubscribed from %s", consumer_id, topic)

    def close(self) -> None:
        """Stop the retry processor and wait for it to exit."""
        self._stop.set()
        self._worker.join()

    def stats(self) -> tuple[int, int, int, int, int]:
        """Return (published, consumed, failed, retried, dead-letter count)."""
        with self._lock:
            return (
                self._published,
                self._consumed,
                self._failed,
                self._retried,
                len(self._dead),
            )

    def dead_letters(self) -> list[QueueMessage]:
        with self._lock:
            return list(self._dead)


class MessageProducer:
    """Builds messages with generated ids and publishes them."""

    def __init__(
        self,
        producer_id: str,
        queue: InMemoryMessageQueue,
        rng: random.Random | None = None,
    ) -> None:
        self.id = producer_id
        self._queue = queue
        self._rng = rng or random.Random()

    def send_message(self, topic: str, payload: Any = None, priority: int = 0) -> QueueMessage:
        message = QueueMessage(
            id=f"{self.id}-{self._rng.randrange(10000)}",
            topic=topic,
            payload=payload,
            priority=priority,
        )
        log.info("producer %s sends %s to %s", self.id, message.id, topic)
        self._queue.publish(topic, message)
        return message


def demo() -> None:
    """Publish orders and notifications to flaky consumers and report."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Message queue demo ===")
    with InMemoryMessageQueue(3) as mq:
        consumers = [
            SimpleConsumer("consumer-1", 0.1, 0.8),
            SimpleConsumer("consumer-2", 0.2, 0.6),
            SimpleConsumer("consumer-3", 0.15, 0.9),
        ]
        print("\n--- subscriptions ---")
        mq.subscribe("orders", consumers[0])
        mq.subscribe("orders", consumers[1])
        mq.subscribe("notifications", consumers[1])
        mq.subscribe("notifications", consumers[2])

        orders = MessageProducer("producer-1", mq)
        notices = MessageProducer("producer-2", mq)
        rng = random.Random()

        def send_order(order_id: int) -> None:
            payload = {
                "orderID": order_id,
                "amount": rng.random() * 1000,
                "userID": rng.randrange(1000),
                "timestamp": int(time.time()),
            }
            try:
                orders.send_message("orders", payload, rng.randrange(5))
            except NoConsumersError as exc:
                print(f"order send failed: {exc}")

        def send_notice(notice_id: int) -> None:
            payload = {
                "notificationID": notice_id,
                "message": f"notification {notice_id}",
                "userID": rng.randrange(1000),
                "type": "info",
            }
            try:
                notices.send_message("notifications", payload, rng.randrange(3))
            except NoConsumersError as exc:
                print(f"notification send failed: {exc}")

        with ThreadPoolExecutor(max_workers=18) as pool:
            for i in range(1, 11):
                pool.submit(send_order, i)
            for i in range(1, 9):
                pool.submit(send_notice, i)

        print("\n--- waiting for processing ---")
        time.sleep(5)
        published, consumed, failed, retried, dead = mq.stats()
        print("\n=== queue stats ===")
        print(f"published: {published}")
        print(f"consumed: {consumed}")
        print(f"failed: {failed}")
        print(f"retried: {retried}")
        print(f"dead letters: {dead}")
        print("\n=== consumer stats ===")
        for consumer in consumers:
            print(f"{consumer.id} handled {consumer.message_count} messages")
        for msg in mq.dead_letters():
            print(f"dead letter: {msg.id} (topic {msg.topic}, retries {msg.retries})")

        print("\n=== unsubscribe ===")
        mq.unsubscribe("orders", "consumer-1")
        orders.send_message("orders", {"test": "after unsubscribe"}, 1)
        time.sleep(1)
    print("\nmessage queue demo finished")