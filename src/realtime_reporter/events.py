"""Host lifecycle signals and a minimal synchronous dispatcher.

The host test engine (or an adapter around it) calls
:meth:`EventSource.emit` for every lifecycle signal, in program order.
Handlers run synchronously, to completion, in subscription order.
"""
from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, DefaultDict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class HostEvent(str, Enum):
    """Lifecycle signals consumed by the reporter."""
    SUITE_BEFORE = "suite.before"
    TEST_BEFORE = "test.before"
    TEST_AFTER = "test.after"
    TEST_PASSED = "test.passed"
    TEST_FAILED = "test.failed"
    HOOK_FAILED = "hook.failed"
    STEP_BEFORE = "step.before"
    STEP_AFTER = "step.after"
    STEP_PASSED = "step.passed"
    STEP_COMMENT = "step.comment"
    UNHANDLED_REJECTION = "unhandled.rejection"
    RUN_FINISHED = "run.finished"


class EventSource:
    """Synchronous signal dispatcher.

    Examples
    --------
    >>> source = EventSource()
    >>> seen = []
    >>> unsubscribe = source.subscribe(HostEvent.STEP_COMMENT, seen.append)
    >>> source.emit(HostEvent.STEP_COMMENT, "hello")
    >>> unsubscribe()
    >>> source.emit(HostEvent.STEP_COMMENT, "ignored")
    >>> seen
    ['hello']
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[HostEvent, List[Handler]] = defaultdict(list)

    def subscribe(self, event: HostEvent, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event``; returns an unsubscribe callable."""
        event = HostEvent(event)
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event: HostEvent, *args: Any) -> None:
        """Call every handler of ``event`` with ``args``; errors propagate."""
        for handler in list(self._handlers.get(HostEvent(event), ())):
            handler(*args)

    def handler_count(self, event: Optional[HostEvent] = None) -> int:
        if event is not None:
            return len(self._handlers.get(HostEvent(event), ()))
        return sum(len(h) for h in self._handlers.values())


def install_rejection_hook(
    source: EventSource,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Callable[[], None]:
    """Route the loop's unhandled exceptions to ``unhandled.rejection``.

    Contexts without an exception (plain messages) go to the previous
    handler. Returns a callable restoring the previous handler.
    """
    loop = loop or asyncio.get_running_loop()
    previous = loop.get_exception_handler()

    def handler(lp: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is None:
            if previous is not None:
                previous(lp, context)
            else:
                lp.default_exception_handler(context)
            return
        source.emit(HostEvent.UNHANDLED_REJECTION, exc)

    loop.set_exception_handler(handler)

    def restore() -> None:
        loop.set_exception_handler(previous)

    return restore
