import asyncio
import traceback
from dataclasses import dataclass, field
from typing import Any, List, Optional

from realtime_reporter.clocks import now_ms


@dataclass
class FakeMetaStep:
    actor: str
    name: str
    args: List[Any] = field(default_factory=list)
    metastep: Optional["FakeMetaStep"] = None


@dataclass
class FakeStep:
    name: str
    args: List[Any] = field(default_factory=list)
    actor: str = "I"
    status: str = "success"
    start_time: Optional[int] = field(default_factory=now_ms)
    metastep: Optional[FakeMetaStep] = None
    command: Optional[str] = None
    return_value: Any = None
    stack: Any = None

    def humanize(self) -> str:
        return self.name

    def humanize_args(self) -> str:
        return ", ".join(str(a) for a in self.args)


@dataclass
class FakeContext:
    current_test: Any = None


@dataclass
class FakeTest:
    id: str
    title: str = "a test"
    file: Optional[str] = __file__
    steps: List[FakeStep] = field(default_factory=list)
    retries: int = 3
    ctx: Optional[FakeContext] = None


@dataclass
class FakeSuite:
    id: str = "suite-1"
    title: str = "a suite"


class FakeLocator:
    def __init__(self, css: str):
        self.css = css
        self.internal = {"type": "css", "value": css}

    def display(self) -> str:
        return f"{{css: {self.css}}}"


class FakeDriver:
    """Snapshot driver with configurable latency and scripted failures."""

    def __init__(self, *, delay: float = 0.0, source: str = "<html></html>",
                 snapshot_errors: Optional[List[BaseException]] = None,
                 source_errors: Optional[List[BaseException]] = None):
        self.delay = delay
        self.source = source
        self.snapshot_errors = list(snapshot_errors or [])
        self.source_errors = list(source_errors or [])
        self.snapshot_calls: List[tuple] = []
        self.source_calls = 0

    async def take_snapshot(self, index: int, screenshot: bool):
        self.snapshot_calls.append((index, screenshot))
        await asyncio.sleep(self.delay)
        if self.snapshot_errors:
            raise self.snapshot_errors.pop(0)
        return {"screenshot": "png-bytes" if screenshot else None, "state": {"index": index}}

    async def grab_source(self) -> str:
        self.source_calls += 1
        if self.source_errors:
            raise self.source_errors.pop(0)
        return self.source


def stack_in(file: str, line: int, function: str = "test_body") -> List[traceback.FrameSummary]:
    return [
        traceback.FrameSummary("/site-packages/engine/runner.py", 10, "run"),
        traceback.FrameSummary(file, line, function),
        traceback.FrameSummary("/site-packages/engine/step.py", 42, "execute"),
    ]


def names(transport) -> List[str]:
    return transport.names()
