"""Actors with mailboxes, message handlers and a registry to find them."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, ClassVar

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartMessage:
    type: ClassVar[str] = "START"


@dataclass(frozen=True)
class StopMessage:
    type: ClassVar[str] = "STOP"


@dataclass(frozen=True)
class DataMessage:
    data: Any = None
    sender: str = ""
    type: ClassVar[str] = "DATA"


@dataclass(frozen=True)
class QueryMessage:
    query: str
    response: queue.Queue = field(default_factory=queue.Queue, compare=False)
    type: ClassVar[str] = "QUERY"


@dataclass(frozen=True)
class AddMessage:
    value: float
    type: ClassVar[str] = "ADD"


@dataclass(frozen=True)
class MultiplyMessage:
    value: float
    type: ClassVar[str] = "MULTIPLY"


@dataclass(frozen=True)
class LogMessage:
    level: str
    content: str
    type: ClassVar[str] = "LOG"


Handler = Callable[[Any], None]


class Actor:
    """Processes messages from a bounded mailbox one at a time on its own thread."""

    def __init__(self, address: str, mailbox_size: int = 100) -> None:
        self.address = address
        self._mailbox: queue.Queue = queue.Queue(maxsize=mailbox_size)
        self._handlers: dict[str, Handler] = {}
        self._lock = threading.Lock()
        self._running = False
        self._done = threading.Event()
        self._thread: threading.Thread | None = None
        self.starts_received = 0
        self.register_handler(StartMessage.type, self._handle_start)
        self.register_handler(StopMessage.type, self._handle_stop)

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def register_handler(self, msg_type: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[msg_type] = handler

    def start(self) -> None:
        """Start the message loop; does nothing if it is already running."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._done = threading.Event()
            self._thread = threading.Thread(target=self._loop, daemon=True)
        log.info("actor %s started", self.address)
        self._thread.start()

    def stop(self) -> None:
        """Ask a running actor to stop once its earlier messages are handled."""
        if not self.running:
            return
        self.send(StopMessage())

    def send(self, msg: Any) -> bool:
        """Queue a message; a full mailbox drops it and returns False."""
        try:
            self._mailbox.put_nowait(msg)
        except queue.Full:
            log.warning("actor %s mailbox full, dropped %s", self.address, msg.type)
            return False
        return True

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop to end; return True if it has."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return not self.running

    def _loop(self) -> None:
        done = self._done
        while not done.is_set():
            self._process(self._mailbox.get())

    def _process(self, msg: Any) -> None:
        with self._lock:
            handler = self._handlers.get(msg.type)
        if handler is None:
            log.warning("actor %s got unknown message type %s", self.address, msg.type)
            return
        handler(msg)

    def _handle_start(self, msg: StartMessage) -> None:
        with self._lock:
            self.starts_received += 1
        log.info("actor %s received start", self.address)

    def _handle_stop(self, msg: StopMessage) -> None:
        log.info("actor %s received stop, shutting down", self.address)
        with self._lock:
            self._running = False
        self._done.set()


class CalculatorActor(Actor):
    """Keeps a running total changed by ADD and MULTIPLY, answers the "result" query."""

    def __init__(self, address: str) -> None:
        super().__init__(address, 100)
        self._result = 0.0
        self.register_handler(AddMessage.type, self._handle_add)
        self.register_handler(MultiplyMessage.type, self._handle_multiply)
        self.register_handler(QueryMessage.type, self._handle_query)

    def _handle_add(self, msg: AddMessage) -> None:
        self._result += msg.value
        log.info("calculator %s: +%.2f = %.2f", self.address, msg.value, self._result)

    def _handle_multiply(self, msg: MultiplyMessage) -> None:
        self._result *= msg.value
        log.info("calculator %s: *%.2f = %.2f", self.address, msg.value, self._result)

    def _handle_query(self, msg: QueryMessage) -> None:
        if msg.query == "result":
            msg.response.put(self._result)
            log.info("calculator %s: result queried = %.2f", self.address, self._result)


class LoggerActor(Actor):
    """Records LOG messages; answers the "count" and "logs" queries."""

    def __init__(self, address: str) -> None:
        super().__init__(address, 1000)
        self._logs: list[str] = []
        self.register_handler(LogMessage.type, self._handle_log)
        self.register_handler(QueryMessage.type, self._handle_query)

    def _handle_log(self, msg: LogMessage) -> None:
        entry = f"[{time.strftime('%H:%M:%S')}] {msg.level}: {msg.content}"
        self._logs.append(entry)
        log.info("logger %s: %s", self.address, entry)

    def _handle_query(self, msg: QueryMessage) -> None:
        if msg.query == "count":
            msg.response.put(len(self._logs))
        elif msg.query == "logs":
            msg.response.put(list(self._logs))


class ActorSystem:
    """A registry of actors by address."""

    def __init__(self) -> None:
        self._actors: dict[str, Actor] = {}
        self._lock = threading.Lock()

    def register_actor(self, actor: Actor) -> None:
        with self._lock:
            self._actors[actor.address] = actor
        log.info("registered actor %s", actor.address)

    def get_actor(self, address: str) -> Actor | None:
        with self._lock:
            return self._actors.get(address)

    def start_all(self) -> None:
        with self._lock:
            actors = list(self._actors.values())
        for actor in actors:
            actor.start()

    def stop_all(self) -> None:
        with self._lock:
            actors = list(self._actors.values())
        for actor in actors:
            actor.stop()


def ask(actor: Actor, query: str, timeout: float | None = 1.0) -> Any:
    """Send a query and wait for its answer; raise TimeoutError if none comes."""
    msg = QueryMessage(query)
    actor.send(msg)
    try:
        return msg.response.get(timeout=timeout)
    except queue.Empty:
        raise TimeoutError(f"query {query!r} to {actor.address} timed out") from None


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Actor model demo ===")
    system = ActorSystem()
    calc1 = CalculatorActor("calculator-1")
    calc2 = CalculatorActor("calculator-2")
    logger = LoggerActor("logger")
    for actor in (calc1, calc2, logger):
        system.register_actor(actor)
    system.start_all()
    time.sleep(0.5)

    logger.send(LogMessage("INFO", "system started"))
    calc1.send(AddMessage(10))
    calc1.send(AddMessage(5))
    calc1.send(MultiplyMessage(2))
    calc2.send(AddMessage(20))
    calc2.send(MultiplyMessage(3))

    def client(client_id: int) -> None:
        address = "calculator-2" if client_id % 2 == 0 else "calculator-1"
        calc = system.get_actor(address)
        if calc is not None:
            calc.send(AddMessage(float(client_id)))
            time.sleep(0.1)
            calc.send(MultiplyMessage(1.5))
        logger.send(LogMessage("INFO", f"client {client_id} finished"))

    with ThreadPoolExecutor(max_workers=5) as pool:
        for client_id in range(1, 6):
            pool.submit(client, client_id)
    time.sleep(1)

    print("\n=== actor state ===")
    for address in ("calculator-1", "calculator-2"):
        calc = system.get_actor(address)
        if calc is None:
            continue
        try:
            print(f"{address} final result: {ask(calc, 'result'):.2f}")
        except TimeoutError:
            print(f"{address} query timed out")
    try:
        print(f"log entries: {ask(logger, 'count')}")
    except TimeoutError:
        print("log query timed out")

    print("\n=== stopping actors ===")
    system.stop_all()
    time.sleep(1)
    print("actor demo finished")