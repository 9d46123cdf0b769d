"""Per-test mutable tracking state owned by the reporter."""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .core import StackFrame
from .host import HostStep, HostSuite, HostTest, MetaStepFrame


@dataclass
class ReporterSession:
    """Tracking state of the reporter, reset exactly at test-begin.

    Attributes
    ----------
    suite : HostSuite or None
        Current suite (kept across tests).
    test : HostTest or None
        Current test.
    step : HostStep or None
        Last step seen by ``step.before``.
    metastep : MetaStepFrame or None
        Last tracked metastep chain (top frame).
    test_started_at : int or None
        Epoch-ms origin of every ``at``/``duration`` of the test.
    step_index : int
        Last id handed out to a step or comment.
    step_ids : dict[int, int]
        Step id per host step object (keyed by ``id(step)``).
    cached_frame : StackFrame or None
        Last stack frame resolved in test code, used as fallback.
    logged_sections : list[str]
        Section labels opened so far in this test, in order.
    section_openings : Counter
        Number of openings per section signature (root-first tuple).
    open_chain : tuple
        Signature of the chain opened last, root-first.
    terminated : bool
        Set once a fatal failure requested termination.
    """
    suite: Optional[HostSuite] = None
    test: Optional[HostTest] = None
    step: Optional[HostStep] = None
    metastep: Optional[MetaStepFrame] = None
    test_started_at: Optional[int] = None
    step_index: int = 0
    step_ids: Dict[int, int] = field(default_factory=dict)
    cached_frame: Optional[StackFrame] = None
    logged_sections: List[str] = field(default_factory=list)
    section_openings: Counter = field(default_factory=Counter)
    open_chain: Tuple[Tuple[str, str], ...] = ()
    terminated: bool = False

    def reset(self, test: Optional[HostTest], started_at: int, first_step_id: int = 1) -> None:
        """Start tracking a new test; the suite is kept."""
        self.test = test
        self.test_started_at = started_at
        self.step = None
        self.metastep = None
        self.step_index = first_step_id - 1
        self.step_ids = {}
        self.cached_frame = None
        self.logged_sections = []
        self.section_openings = Counter()
        self.open_chain = ()

    @property
    def test_active(self) -> bool:
        return self.test is not None

    @property
    def test_id(self) -> Any:
        return getattr(self.test, "id", None)

    def next_step_id(self, step: Optional[HostStep] = None) -> int:
        """Hand out the next id, remembering it for ``step`` when given."""
        self.step_index += 1
        if step is not None:
            self.step_ids[id(step)] = self.step_index
        return self.step_index

    def id_for(self, step: Optional[HostStep]) -> int:
        """Id given to ``step`` at ``step.before``, else the last id handed out."""
        if step is None:
            return self.step_index
        return self.step_ids.get(id(step), self.step_index)
