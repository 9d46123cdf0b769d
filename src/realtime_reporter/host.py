"""Structural types for the host test engine's native objects.

The reporter never constructs these objects; it only reads the attributes
listed here. Any object with matching attributes works (duck typing), the
Protocols exist for static checking and documentation.
"""
from __future__ import annotations
from typing import Any, Awaitable, List, Optional, Protocol, Sequence, Union, runtime_checkable


@runtime_checkable
class Displayable(Protocol):
    """Value that renders itself as a display string.

    Wrapper types (secret values, element locators, ...) implement this so
    their internal fields are never exposed in step arguments.
    """

    def display(self) -> str:
        ...


class MetaStepFrame(Protocol):
    """One level of a metastep chain; ``metastep`` points to the parent."""
    actor: Optional[str]
    name: Optional[str]
    args: Sequence[Any]
    metastep: Optional["MetaStepFrame"]


class HostStep(Protocol):
    actor: Optional[str]
    name: Optional[str]
    args: Sequence[Any]
    status: Optional[str]
    #: Epoch milliseconds.
    start_time: Optional[float]
    metastep: Optional[MetaStepFrame]
    command: Optional[str]
    return_value: Any
    #: Formatted stack text or a sequence of ``traceback.FrameSummary``-like frames.
    stack: Union[str, Sequence[Any], None]

    def humanize(self) -> str:
        ...

    def humanize_args(self) -> str:
        ...


class HostTestContext(Protocol):
    current_test: Optional["HostTest"]


class HostTest(Protocol):
    id: Any
    title: str
    file: Optional[str]
    steps: List[HostStep]
    retries: int
    ctx: Optional[HostTestContext]


class HostSuite(Protocol):
    id: Any
    title: str


class SnapshotDriver(Protocol):
    """Capability the reporter needs from a UI automation driver.

    ``take_snapshot`` returns a :class:`~realtime_reporter.core.Snapshot` or
    a mapping accepted by it; ``screenshot`` asks for a full visual capture
    rather than a lightweight state snapshot.
    """

    def take_snapshot(self, index: int, screenshot: bool) -> Awaitable[Any]:
        ...

    def grab_source(self) -> Awaitable[str]:
        ...
