"""Outbound boundary: named messages handed to a transport in queue order.

The transport itself (websocket, HTTP, IPC ...) is outside this package;
anything with a ``send(name, payload)`` method works, synchronous or async.
Two transports are provided: :class:`MemoryTransport` (collects messages,
handy for tests and embedding) and :class:`JsonLinesTransport` (one JSON
object per line on a text stream).
"""
from __future__ import annotations
import inspect
import json
import logging
import sys
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, TextIO, Tuple, Union

from pydantic import BaseModel

from .clocks import now_utc
from .core import Message
from .task_queue import TaskQueue

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Mapping[str, Any], None]


class Transport(Protocol):
    def send(self, name: str, payload: Dict[str, Any]) -> Optional[Awaitable[None]]:
        ...


def to_payload(record: Payload) -> Dict[str, Any]:
    """Wire representation of a record (camelCase, absent fields omitted)."""
    if record is None:
        return {}
    if isinstance(record, BaseModel):
        to_wire = getattr(record, "to_payload", None)
        if callable(to_wire):
            return to_wire()
        return record.model_dump(by_alias=True, exclude_none=True)
    return dict(record)


class OutboundChannel:
    """Sends protocol messages through the task queue.

    Parameters
    ----------
    transport : Transport
        Receives ``(message name, payload dict)``.
    queue : TaskQueue
        Orders every emission after previously enqueued work.
    """

    def __init__(self, transport: Transport, queue: TaskQueue):
        self.transport = transport
        self.queue = queue

    async def send(self, message: Message, record: Payload = None) -> None:
        """Send immediately (caller is already running inside a queued task)."""
        name = message.value if isinstance(message, Message) else str(message)
        result = self.transport.send(name, to_payload(record))
        if inspect.isawaitable(result):
            await result
        logger.debug("sent %s", name)

    def enqueue(self, message: Message, record: Payload = None, *, label: Optional[str] = None):
        """Queue ``message`` behind all pending work.

        Returns
        -------
        asyncio.Future
            Outcome of the emission task.
        """
        name = message.value if isinstance(message, Message) else str(message)
        return self.queue.enqueue(label or f"send {name}", lambda: self.send(message, record))


class MemoryTransport:
    """Collects ``(name, payload)`` pairs in arrival order."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    def send(self, name: str, payload: Dict[str, Any]) -> None:
        self.messages.append((name, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.messages]

    def payloads(self, name: str) -> List[Dict[str, Any]]:
        """Payloads of every message called ``name``."""
        return [payload for n, payload in self.messages if n == name]

    def clear(self) -> None:
        self.messages.clear()


class JsonLinesTransport:
    """Writes one JSON object per message to a text stream.

    Each line is ``{"event": name, "timestamp": <ISO UTC>, "payload": {...}}``.
    Values that are not JSON-native are written with ``str()``.

    Parameters
    ----------
    output : TextIO, optional
        Destination stream; defaults to ``sys.stdout``.
    """

    def __init__(self, output: Optional[TextIO] = None):
        self.output = output or sys.stdout

    def send(self, name: str, payload: Dict[str, Any]) -> None:
        line = {"event": name, "timestamp": now_utc().isoformat(), "payload": payload}
        self.output.write(json.dumps(line, ensure_ascii=False, default=str) + "\n")
        self.output.flush()
