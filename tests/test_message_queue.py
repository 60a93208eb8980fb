import random
import threading
import time

import pytest

from concur_kit.message_queue import (
    InMemoryMessageQueue,
    MessageProducer,
    NoConsumersError,
    ProcessingError,
    QueueMessage,
    SimpleConsumer,
    SubscriptionError,
)


class RecordingConsumer:
    def __init__(self, consumer_id):
        self.id = consumer_id
        self.messages = []
        self._lock = threading.Lock()

    def consume(self, message):
        with self._lock:
            self.messages.append(message)


def _wait_until(predicate, timeout=3.0):
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def mq():
    queue = InMemoryMessageQueue(max_retries=0, retry_delay=0.0)
    yield queue
    queue.close()


def test_publish_without_consumers_raises(mq):
    with pytest.raises(NoConsumersError):
        mq.publish("orders", QueueMessage("m-1", "orders"))
    assert mq.stats()[0] == 0


def test_duplicate_subscription_raises(mq):
    mq.subscribe("orders", RecordingConsumer("c1"))
    with pytest.raises(SubscriptionError):
        mq.subscribe("orders", RecordingConsumer("c1"))


def test_unsubscribe_errors(mq):
    with pytest.raises(SubscriptionError):
        mq.unsubscribe("missing", "c1")
    mq.subscribe("orders", RecordingConsumer("c1"))
    with pytest.raises(SubscriptionError):
        mq.unsubscribe("orders", "c2")


def test_unsubscribe_removes_consumer(mq):
    mq.subscribe("orders", RecordingConsumer("c1"))
    mq.unsubscribe("orders", "c1")
    with pytest.raises(NoConsumersError):
        mq.publish("orders", QueueMessage("m-1", "orders"))


def test_publish_reaches_every_subscriber(mq):
    a = SimpleConsumer("a", 0.0, 1.0, random.Random(0))
    b = SimpleConsumer("b", 0.0, 1.0, random.Random(1))
    mq.subscribe("orders", a)
    mq.subscribe("orders", b)
    mq.publish("orders", QueueMessage("m-1", "orders"))
    assert a.message_count == 1
    assert b.message_count == 1
    published, consumed, failed, retried, dead = mq.stats()
    assert (published, consumed, failed, retried, dead) == (1, 2, 0, 0, 0)


def test_simple_consumer_failure_raises():
    consumer = SimpleConsumer("c", 0.0, 0.0, random.Random(0))
    with pytest.raises(ProcessingError):
        consumer.consume(QueueMessage("m", "t"))
    assert consumer.message_count == 1


def test_failure_without_retries_goes_to_dead_letters(mq):
    mq.subscribe("orders", SimpleConsumer("bad", 0.0, 0.0, random.Random(0)))
    message = QueueMessage("m-1", "orders")
    mq.publish("orders", message)
    assert mq.dead_letters() == [message]
    _, consumed, failed, retried, dead = mq.stats()
    assert consumed == 0
    assert failed == dead == 1
    assert retried == 0


def test_retries_then_dead_letter():
    max_retries = 2
    with InMemoryMessageQueue(max_retries=max_retries, retry_delay=0.0) as mq:
        mq.subscribe("orders", SimpleConsumer("bad", 0.0, 0.0, random.Random(0)))
        mq.publish("orders", QueueMessage("m-1", "orders"))
        assert _wait_until(lambda: mq.stats()[4] == 1)
        published, consumed, failed, retried, dead = mq.stats()
        assert published == max_retries + 1
        assert failed == max_retries + 1
        assert retried == max_retries
        assert consumed == 0
        letters = mq.dead_letters()
        assert letters[0].id == "m-1"
        assert letters[0].retries == max_retries


def test_dead_letters_returns_copy(mq):
    mq.subscribe("orders", SimpleConsumer("bad", 0.0, 0.0, random.Random(0)))
    mq.publish("orders", QueueMessage("m-1", "orders"))
    letters = mq.dead_letters()
    letters.clear()
    assert len(mq.dead_letters()) == 1


def test_producer_sends_message(mq):
    consumer = RecordingConsumer("c1")
    mq.subscribe("notifications", consumer)
    producer = MessageProducer("producer-1", mq, random.Random(5))
    sent = producer.send_message("notifications", {"type": "info"}, 2)
    assert sent.id.startswith("producer-1-")
    assert sent.retries == 0
    assert consumer.messages == [sent]
    assert consumer.messages[0].priority == 2
    assert consumer.messages[0].payload == {"type": "info"}


def test_invalid_retry_capacity():
    with pytest.raises(ValueError):
        InMemoryMessageQueue(1, retry_capacity=0)