"""Ordered, retry-capable task queue.

All variable-latency work of the reporter (snapshot capture, source
retrieval, outbound emission) runs through one :class:`TaskQueue`. A single
worker coroutine executes tasks strictly in enqueue order, each to
completion before the next starts, so a remote listener observes the
effects in the order the host events happened.

Examples
--------
>>> queue = TaskQueue()
>>> queue.register_retry(lambda e: "context" in str(e), max_attempts=5)
>>> fut = queue.enqueue("take snapshot", driver_capture)   # inside a running loop
>>> await queue.drain()
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from .settings import ReporterSettings, current_settings

logger = logging.getLogger(__name__)

#: A unit of work: zero-argument callable returning a value or an awaitable.
Task = Callable[[], Any]


class QueueClosedError(RuntimeError):
    """The queue was closed or halted by a fatal error."""


@dataclass(frozen=True)
class RetryRule:
    """Re-run a failing task in place while ``predicate(error)`` holds.

    Parameters
    ----------
    predicate : callable
        Receives the raised exception; ``True`` marks it as transient.
    max_attempts : int
        Total number of attempts (first run included).
    """
    predicate: Callable[[BaseException], bool]
    max_attempts: int

    def allows(self, error: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and bool(self.predicate(error))


@dataclass
class _QueuedTask:
    label: str
    fn: Task
    future: asyncio.Future
    rules: Tuple[RetryRule, ...] = ()
    attempts: int = field(default=0)


def _consume_failure(fut: asyncio.Future) -> None:
    # failures are logged by the worker; nobody is required to await them
    if not fut.cancelled():
        fut.exception()


class TaskQueue:
    """Single-worker FIFO scheduler for asynchronous side effects.

    Parameters
    ----------
    settings : ReporterSettings, optional
        Source of :attr:`ReporterSettings.fatal_exceptions`. Defaults to
        :func:`current_settings` at construction time.

    Notes
    -----
    - The worker is started lazily by the first :meth:`enqueue`, which must
      therefore be called while an event loop is running.
    - A failed task never stops its successors. Only fatal exceptions
      (e.g. :class:`~realtime_reporter.core.PreconditionError`) halt the
      queue; :meth:`drain` then re-raises them.
    - Retry rules are snapshotted per task at enqueue time.
    """

    def __init__(self, settings: Optional[ReporterSettings] = None):
        self._settings = settings or current_settings()
        self._items: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._active: Optional[_QueuedTask] = None
        self._rules: List[RetryRule] = []
        self._fatal: Optional[BaseException] = None
        self._closed = False

    @property
    def rules(self) -> Tuple[RetryRule, ...]:
        return tuple(self._rules)

    @property
    def pending(self) -> int:
        """Number of tasks enqueued but not finished, the running one included."""
        waiting = self._items.qsize() if self._items is not None else 0
        return waiting + (1 if self._active is not None else 0)

    @property
    def halted(self) -> bool:
        return self._fatal is not None or self._closed

    def register_retry(self, predicate: Callable[[BaseException], bool], max_attempts: int) -> RetryRule:
        """Install a retry rule for every task enqueued from now on.

        Parameters
        ----------
        predicate : callable
            Error classifier.
        max_attempts : int
            Total attempts allowed for a matching failure (>= 1).

        Returns
        -------
        RetryRule
            The installed rule.
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        rule = RetryRule(predicate=predicate, max_attempts=max_attempts)
        self._rules.append(rule)
        return rule

    def clear_retries(self) -> None:
        """Drop every retry rule (already enqueued tasks keep theirs)."""
        self._rules.clear()

    def enqueue(self, label: str, task: Task) -> asyncio.Future:
        """Append a unit of work at the tail of the queue.

        Parameters
        ----------
        label : str
            Short description used in logs.
        task : callable
            Zero-argument callable; may return an awaitable. It is called
            again on every retry, so it must not be a coroutine object.

        Returns
        -------
        asyncio.Future
            Resolves with the task's result or its terminal exception.

        Raises
        ------
        QueueClosedError
            If the queue was closed or halted.
        """
        if self.halted:
            raise QueueClosedError(f"cannot enqueue {label!r}: queue is halted") from self._fatal
        loop = asyncio.get_running_loop()
        if self._items is None:
            self._items = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._work(), name="realtime-reporter-queue")
        fut = loop.create_future()
        fut.add_done_callback(_consume_failure)
        self._items.put_nowait(_QueuedTask(label=label, fn=task, future=fut, rules=tuple(self._rules)))
        return fut

    async def drain(self) -> None:
        """Wait until every enqueued task has finished.

        Raises
        ------
        BaseException
            The fatal error that halted the queue, if any.
        """
        if self._items is not None and self._worker is not None:
            await self._items.join()
        if self._fatal is not None:
            raise self._fatal

    async def aclose(self) -> None:
        """Finish pending work, then stop the worker."""
        if self._fatal is None:
            await self.drain()
        self._closed = True
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    async def _work(self) -> None:
        assert self._items is not None
        while True:
            item = await self._items.get()
            self._active = item
            try:
                await self._run(item)
            except BaseException as exc:
                if isinstance(exc, asyncio.CancelledError):
                    item.future.cancel()
                    raise
                self._fatal = exc
                self._halt(item, exc)
                return
            finally:
                self._active = None
                self._items.task_done()

    async def _run(self, item: _QueuedTask) -> None:
        while True:
            item.attempts += 1
            try:
                result = item.fn()
                if inspect.isawaitable(result):
                    result = await result
            except asyncio.CancelledError:
                raise
            except BaseException as exc:
                if self._settings.is_fatal(exc):
                    raise
                rule = next((r for r in item.rules if r.allows(exc, item.attempts)), None)
                if rule is not None:
                    logger.debug("retrying %r (attempt %d/%d): %s",
                                 item.label, item.attempts + 1, rule.max_attempts, exc)
                    continue
                logger.warning("task %r failed after %d attempt(s): %s", item.label, item.attempts, exc)
                if not item.future.done():
                    item.future.set_exception(exc)
                return
            if not item.future.done():
                item.future.set_result(result)
            return

    def _halt(self, item: _QueuedTask, exc: BaseException) -> None:
        logger.critical("task %r raised a fatal error, halting queue: %r", item.label, exc)
        if not item.future.done():
            item.future.set_exception(exc)
        assert self._items is not None
        while not self._items.empty():
            rest = self._items.get_nowait()
            rest.future.cancel()
            self._items.task_done()
