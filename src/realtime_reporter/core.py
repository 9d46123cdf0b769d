"""Core record models and base definitions for realtime-reporter.

This module holds the outbound message names, status enums and the Pydantic
models used for every record sent to the live-monitoring client.

Records serialize with camelCase aliases (``testStartedAt``, ``metaStep``,
``humanizedArgs`` ...) and omit absent fields, which is the shape the remote
client consumes. Fields are declared snake_case so Python code reads
naturally; both spellings are accepted on construction.
"""
# std lib imports
from __future__ import annotations
from enum import Enum, auto
from typing import Any, Dict, List, Optional

# third party import
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PreconditionError(AssertionError):
    """Required mapping input is missing (integration misuse, never recovered)."""


class LowerStrEnum(str, Enum):
    def _generate_next_value_(name, start, count, last_values):
        return name.lower()


class ScenarioState(LowerStrEnum):
    """Terminal status written to the scenario-status store."""
    PASSED = auto()
    FAILED = auto()


class Message(str, Enum):
    """Names of outbound protocol messages."""
    SUITE_BEFORE = "suiteBefore"
    TEST_BEFORE = "testBefore"
    TEST_AFTER = "testAfter"
    TEST_PASSED = "testPassed"
    TEST_FAILED = "testFailed"
    STEP_BEFORE = "stepBefore"
    STEP_AFTER = "stepAfter"
    STEP_COMMENT = "stepComment"
    METASTEP_CHANGED = "metaStepChanged"
    EXIT = "exit"
    TEST_RUN_FINISHED = "testRunFinished"


class ProtocolModel(BaseModel):
    """Base for outbound records: camelCase aliases, absent fields omitted."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire representation of the record.

        Returns
        -------
        dict
            ``model_dump(by_alias=True, exclude_none=True)``.
        """
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorRecord(ProtocolModel):
    """Normalized failure shape shared by every failure origin.

    Parameters
    ----------
    message: str
        Human-readable error message.
    stack: str
        Formatted traceback/stack text, when one is available.
    kind: str
        Error type name (``"AssertionError"``, ``"str"``, ...).
    """
    message: str
    stack: Optional[str] = None
    kind: str = "Error"


class StackFrame(ProtocolModel):
    """One resolved frame of test source code."""
    file: str
    line: Optional[int] = None
    function: Optional[str] = None
    code: Optional[str] = None


class StackInfo(ProtocolModel):
    """Stack provenance of a step.

    Parameters
    ----------
    stack_frame_in_test: StackFrame
        Frame in the test's own source the step originated from (or the
        frame cached from an earlier step of the same test).
    frames: list[StackFrame]
        All frames of the step's stack that belong to the test file.
    """
    stack_frame_in_test: Optional[StackFrame] = None
    frames: Optional[List[StackFrame]] = None


class Snapshot(ProtocolModel):
    """State or visual capture taken after a step.

    Drivers may attach extra fields (url, title, ...); they are kept.
    ``source`` holds page markup and is never embedded in step records.
    """
    model_config = ConfigDict(extra="allow")

    index: int
    screenshot: Optional[str] = None
    state: Optional[Dict[str, Any]] = None
    source: Optional[str] = None

    def without_source(self) -> "Snapshot":
        """Return a copy with ``source`` removed."""
        return self.model_copy(update={"source": None})


class MetaStepRecord(ProtocolModel):
    """Mapped metastep chain, outermost (innermost action) first.

    ``section`` labels the parent chain; ``opens`` is only set on the
    outermost record of a ``metaStepChanged`` message and names the section
    that starts there.
    """
    actor: Optional[str] = None
    name: Optional[str] = None
    args: List[Any] = Field(default_factory=list)
    meta_step: Optional["MetaStepRecord"] = None
    section: Optional[str] = None
    opens: Optional[str] = None


class StepRecord(ProtocolModel):
    """Canonical outbound record of one step (``stepBefore``/``stepAfter``)."""
    id: int
    test_id: Any = None
    at: int
    duration: Optional[int] = None
    actor: str = "I"
    humanized: Optional[str] = None
    humanized_args: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = None
    args: List[Any] = Field(default_factory=list)
    snapshot: Optional[Snapshot] = None
    section: Optional[str] = None
    meta_step: Optional[MetaStepRecord] = None
    return_value: Any = None
    command: Optional[str] = None
    stack: StackInfo = Field(default_factory=StackInfo)


class StepCommentRecord(ProtocolModel):
    """A free-text comment rendered as an ``I say`` step."""
    id: int
    at: int
    actor: str = "I"
    name: str = "say"
    args: List[Any] = Field(default_factory=list)
    humanized: str = "I say"
    snapshot: Optional[Snapshot] = None
    stack: StackInfo = Field(default_factory=StackInfo)


class StepResultRecord(ProtocolModel):
    """Late return value of a value-returning step (partial ``stepAfter``)."""
    id: int
    test_id: Any = None
    return_value: Any = None


class SuiteTestRecord(ProtocolModel):
    """Payload of ``suiteBefore`` / ``testBefore`` / ``testAfter``."""
    started_at: Optional[int] = None
    id: Any = None
    suite: Optional[str] = None
    title: Optional[str] = None
    file: Optional[str] = None
    steps: List[Any] = Field(default_factory=list)

    @classmethod
    def build(cls, started_at: Optional[int], suite: Any = None, test: Any = None) -> "SuiteTestRecord":
        """Map the current suite/test pair. The test id wins over the suite id.

        Parameters
        ----------
        started_at : int or None
            Epoch-ms stamp of the suite or test start.
        suite, test : host objects or None
            Current suite and test (either may be absent).
        """
        return cls(
            started_at=started_at,
            id=getattr(test, "id", None) or getattr(suite, "id", None),
            suite=getattr(suite, "title", None),
            title=getattr(test, "title", None),
            file=getattr(test, "file", None),
        )


class TestPassedRecord(ProtocolModel):
    __test__ = False

    id: int
    test_started_at: Optional[int] = None
    test_id: Any = None
    duration: float


class TestFailedRecord(ProtocolModel):
    """Failure record shared by hook failures, rejections and test failures."""
    __test__ = False

    test_started_at: Optional[int] = None
    test_id: Any = None
    step_id: Optional[int] = None
    step: Optional[StepRecord] = None
    duration: float = 0
    error: ErrorRecord


class ExitRecord(ProtocolModel):
    code: int


class RunFinishedRecord(ProtocolModel):
    pass


class ScenarioStatus(ProtocolModel):
    """Value written to the scenario-status store."""
    status: ScenarioState
    started_at: Optional[int] = None
    duration: Optional[float] = None
