"""Cancellable contexts with deadlines, propagated from parents to children.

Deadlines are ``time.monotonic()`` timestamps.
"""

from __future__ import annotations

import logging
import threading
import time

log = logging.getLogger(__name__)


class Cancelled(Exception):
    """The context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(TimeoutError):
    """The context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """A signal that ends on cancel, on its deadline or when its parent ends."""

    def __init__(self, parent: Context | None = None, deadline: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._err: Exception | None = None
        self._children: set[Context] = set()
        self._timer: threading.Timer | None = None
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        if parent is not None:
            parent._attach(self)
        if deadline is not None and not self._event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._finish(DeadlineExceeded())
            else:
                timer = threading.Timer(remaining, self._finish, args=(DeadlineExceeded(),))
                timer.daemon = True
                with self._lock:
                    if self._err is None:
                        self._timer = timer
                        timer.start()

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()

    @property
    def err(self) -> Exception | None:
        """Why the context ended, or None while it is still live."""
        with self._lock:
            return self._err

    def _attach(self, child: Context) -> None:
        with self._lock:
            err = self._err
            if err is None:
                self._children.add(child)
        if err is not None:
            child._finish(err)

    def _detach(self, child: Context) -> None:
        with self._lock:
            self._children.discard(child)

    def _finish(self, err: Exception) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            children, self._children = self._children, set()
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self._event.set()
        for child in children:
            child._finish(err)
        if self._parent is not None:
            self._parent._detach(self)

    def cancel(self) -> None:
        """End the context and all its children; later calls do nothing."""
        self._finish(Cancelled())

    def done(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context ends; return False if ``timeout`` elapses first."""
        return self._event.wait(timeout)


def background() -> Context:
    """A root context that ends only if cancelled explicitly."""
    return Context()


def with_cancel(parent: Context) -> Context:
    return Context(parent)


def with_timeout(parent: Context, timeout: float) -> Context:
    return Context(parent, time.monotonic() + timeout)


def with_deadline(parent: Context, deadline: float) -> Context:
    return Context(parent, deadline)


def long_running_task(
    ctx: Context, task_id: int, steps: int = 10, step_delay: float = 0.5
) -> int:
    """Run steps until done or the context ends; return the steps completed."""
    for step in range(1, steps + 1):
        if ctx.done():
            log.info("task %d cancelled: %s", task_id, ctx.err)
            return step - 1
        log.info("task %d runs step %d", task_id, step)
        time.sleep(step_delay)
    log.info("task %d completed", task_id)
    return steps


def task_with_timeout(
    ctx: Context, task_id: int, timeout: float, work_duration: float = 2.0
) -> bool:
    """Return True if the work finished before the timeout ended the context."""
    with with_timeout(ctx, timeout) as child:
        log.info("task %d started, timeout %.3fs", task_id, timeout)
        if child.wait(work_duration):
            log.info("task %d timed out: %s", task_id, child.err)
            return False
        log.info("task %d finished its work", task_id)
        return True


def demo() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("=== Context cancellation demo ===")

    print("\n1. manual cancellation:")
    ctx = with_cancel(background())
    threads = [
        threading.Thread(target=long_running_task, args=(ctx, i)) for i in range(1, 4)
    ]
    for thread in threads:
        thread.start()
    time.sleep(2)
    print("cancelling all tasks...")
    ctx.cancel()
    for thread in threads:
        thread.join()

    print("\n2. timeout cancellation:")
    threads = [
        threading.Thread(target=task_with_timeout, args=(background(), 1, 1.0)),
        threading.Thread(target=task_with_timeout, args=(background(), 2, 3.0)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    print("\n3. deadline cancellation:")
    with with_deadline(background(), time.monotonic() + 1.5) as ctx3:
        long_running_task(ctx3, 99)
    print("context demo finished")