"""Topic-based publish/subscribe with a bounded inbox per subscriber."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    topic: str
    content: str
    time: datetime = field(default_factory=datetime.now)


class Subscriber:
    """Receives messages for the topics it subscribed to."""

    def __init__(self, sub_id: int, capacity: int = 10) -> None:
        self.id = sub_id
        self.capacity = capacity
        self._topics: set[str] = set()
        self._inbox: deque[Message] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def subscribe(self, topic: str) -> None:
        with self._cond:
            self._topics.add(topic)
        log.info("subscriber %d subscribed to %s", self.id, topic)

    def is_subscribed(self, topic: str) -> bool:
        with self._cond:
            return topic in self._topics

    def deliver(self, msg: Message) -> bool:
        """Queue a message without blocking; return False if the inbox is full."""
        with self._cond:
            if self._closed:
                raise RuntimeError(f"subscriber {self.id} is closed")
            if len(self._inbox) >= self.capacity:
                return False
            self._inbox.append(msg)
            self._cond.notify()
            return True

    def close(self) -> None:
        """End the stream; queued messages are still delivered to the listener."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def listen(self, handler: Callable[[Message], None] | None = None) -> list[Message]:
        """Handle messages until closed and drained; return all received."""
        received = []
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._inbox or self._closed)
                if not self._inbox:
                    break
                msg = self._inbox.popleft()
            received.append(msg)
            if handler is not None:
                handler(msg)
            else:
                log.info(
                    "subscriber %d got [%s]: %s (%s)",
                    self.id,
                    msg.topic,
                    msg.content,
                    msg.time.strftime("%H:%M:%S"),
                )
        log.info("subscriber %d stopped listening", self.id)
        return received


class Publisher:
    """Sends each message to every subscriber of its topic."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self._closed = False

    def add_subscriber(self, sub: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(sub)
        log.info("added subscriber %d", sub.id)

    def publish(self, topic: str, content: str) -> list[int]:
        """Publish and return the ids of subscribers that received the message."""
        msg = Message(topic, content)
        with self._lock:
            if self._closed:
                raise RuntimeError("publisher is closed")
            subscribers = list(self._subscribers)
        log.info("publishing to [%s]: %s", topic, content)
        reached = []
        for sub in subscribers:
            if not sub.is_subscribed(topic):
                continue
            if sub.deliver(msg):
                reached.append(sub.id)
            else:
                log.warning("subscriber %d inbox full, message skipped", sub.id)
        return reached

    def close(self) -> None:
        """Close every subscriber's stream."""
        with self._lock:
            self._closed = True
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub.close()


def demo() -> None:
    print("=== Publish/subscribe demo ===")
    publisher = Publisher()
    subs = [Subscriber(i) for i in (1, 2, 3)]
    for sub in subs:
        publisher.add_subscriber(sub)
    for sub, topics in zip(subs, (("tech", "news"), ("tech", "sports"), ("news", "sports"))):
        for topic in topics:
            sub.subscribe(topic)

    def show(sub_id: int) -> Callable[[Message], None]:
        def handle(msg: Message) -> None:
            print(
                f"subscriber {sub_id} got [{msg.topic}]: {msg.content} "
                f"({msg.time.strftime('%H:%M:%S')})"
            )
            time.sleep(0.1)

        return handle

    threads = [threading.Thread(target=sub.listen, args=(show(sub.id),)) for sub in subs]
    for thread in threads:
        thread.start()
    time.sleep(0.5)
    for topic, content in (
        ("tech", "new language release"),
        ("news", "today's headlines"),
        ("sports", "final match result"),
        ("tech", "new concurrency patterns"),
    ):
        print(f"publishing to [{topic}]: {content}")
        publisher.publish(topic, content)
        time.sleep(0.2)
    publisher.close()
    for thread in threads:
        thread.join()
    print("publish/subscribe demo finished")