"""Step mapping: host step + session state → outbound :class:`StepRecord`."""
from __future__ import annotations
import inspect
import logging
import os
import re
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional, Union

from .clocks import now_ms
from .core import PreconditionError, Snapshot, StackFrame, StackInfo, StepRecord
from .host import Displayable, HostStep
from .session import ReporterSession

if TYPE_CHECKING:
    from .metasteps import MetaStepTracker

logger = logging.getLogger(__name__)

#: One frame of a formatted Python traceback.
_FRAME_RE = re.compile(r'File "(?P<file>[^"]+)", line (?P<line>\d+)(?:, in (?P<function>.+))?')


def map_arg(value: Any) -> Any:
    """Serialize one step argument for display.

    - functions and methods → their source text (``repr`` when the source
      cannot be retrieved, e.g. builtins or code typed in a REPL);
    - :class:`~realtime_reporter.host.Displayable` values → ``display()``;
    - anything else → unchanged.
    """
    if inspect.isroutine(value):
        try:
            return inspect.getsource(value)
        except (OSError, TypeError):
            return repr(value)
    if isinstance(value, Displayable):
        return value.display()
    return value


def map_args(args: Optional[Iterable[Any]]) -> List[Any]:
    return [map_arg(a) for a in (args or ())]


def _same_file(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))


def _parse_stack_text(text: str) -> List[StackFrame]:
    frames: List[StackFrame] = []
    lines = text.splitlines()
    for i, raw in enumerate(lines):
        m = _FRAME_RE.search(raw)
        if not m:
            continue
        code = None
        if i + 1 < len(lines) and not _FRAME_RE.search(lines[i + 1]):
            code = lines[i + 1].strip() or None
        frames.append(StackFrame(
            file=m.group("file"),
            line=int(m.group("line")),
            function=(m.group("function") or "").strip() or None,
            code=code,
        ))
    return frames


def _coerce_frame(frame: Any) -> Optional[StackFrame]:
    if isinstance(frame, StackFrame):
        return frame
    if isinstance(frame, Mapping):
        return StackFrame.model_validate(frame)
    if isinstance(frame, tuple) and len(frame) >= 2:
        filename, lineno, *rest = frame
        return StackFrame(file=str(filename), line=lineno,
                          function=rest[0] if rest else None,
                          code=rest[1] if len(rest) > 1 else None)
    filename = getattr(frame, "filename", None)
    if filename is None:
        return None
    return StackFrame(
        file=filename,
        line=getattr(frame, "lineno", None),
        function=getattr(frame, "name", None),
        code=getattr(frame, "line", None),
    )


def stack_frames(stack: Union[str, Iterable[Any], None]) -> List[StackFrame]:
    """Normalize a host stack (formatted text or frame objects) to frames.

    Frames are returned outermost first, as Python tracebacks list them.
    """
    if not stack:
        return []
    if isinstance(stack, str):
        return _parse_stack_text(stack)
    frames = (_coerce_frame(f) for f in stack)
    return [f for f in frames if f is not None]


def filter_stack(step: HostStep, test_file: Optional[str]) -> StackInfo:
    """Restrict the stack of ``step`` to frames of ``test_file``.

    Returns
    -------
    StackInfo
        ``stack_frame_in_test`` is the innermost frame in the test file, or
        ``None`` when no frame belongs to it.
    """
    frames = [f for f in stack_frames(getattr(step, "stack", None)) if _same_file(f.file, test_file)]
    return StackInfo(
        stack_frame_in_test=frames[-1] if frames else None,
        frames=frames or None,
    )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _strip_snapshot(snapshot: Union[Snapshot, Mapping[str, Any], None]) -> Optional[Snapshot]:
    if snapshot is None:
        return None
    if not isinstance(snapshot, Snapshot):
        snapshot = Snapshot.model_validate(snapshot)
    return snapshot.without_source()


def with_snapshot(
    record: StepRecord,
    snapshot: Union[Snapshot, Mapping[str, Any], None],
) -> StepRecord:
    """Copy of ``record`` embedding ``snapshot`` (its ``source`` removed).

    Used when the capture finishes after the record was built; every other
    field keeps the value it had when the step completed.
    """
    if snapshot is None:
        return record
    return record.model_copy(update={"snapshot": _strip_snapshot(snapshot)})


def _humanize(step: HostStep, attr: str) -> Optional[str]:
    fn = getattr(step, attr, None)
    if callable(fn):
        return fn()
    return None


class StepMapper:
    """Builds canonical step records.

    Parameters
    ----------
    session : ReporterSession
        Provides the current test id/file and the cached stack frame.
    tracker : MetaStepTracker
        Provides section labels and mapped metastep chains.
    """

    def __init__(self, session: ReporterSession, tracker: "MetaStepTracker"):
        self._session = session
        self._tracker = tracker

    def resolve_stack(self, step: HostStep) -> StackInfo:
        """Filtered stack of ``step``, falling back to the cached frame.

        Steps issued internally (retries, async continuations) often carry
        no frame of the test file; they inherit the last one resolved in the
        same test. The frame used is cached for later steps.
        """
        info = filter_stack(step, getattr(self._session.test, "file", None))
        if info.stack_frame_in_test is None:
            info.stack_frame_in_test = self._session.cached_frame
        self._session.cached_frame = info.stack_frame_in_test
        return info

    def map_step(
        self,
        test_started_at: Optional[int],
        id: Optional[int],
        step: Optional[HostStep],
        snapshot: Union[Snapshot, Mapping[str, Any], None] = None,
    ) -> StepRecord:
        """Map a host step to a :class:`StepRecord`.

        Parameters
        ----------
        test_started_at : int
            Epoch-ms start of the current test (origin of ``at``).
        id : int
            Step id within the test.
        step : HostStep
            The host step.
        snapshot : Snapshot or mapping, optional
            Capture to embed; its ``source`` is removed.

        Raises
        ------
        PreconditionError
            If ``test_started_at``, ``id`` or ``step`` is missing.
        """
        if test_started_at is None:
            raise PreconditionError("test_started_at is required")
        if id is None:
            raise PreconditionError("id is required")
        if step is None:
            raise PreconditionError("step is required")

        stack = self.resolve_stack(step)
        now = now_ms()
        start_time = getattr(step, "start_time", None)
        metastep = getattr(step, "metastep", None)
        return StepRecord(
            id=id,
            test_id=self._session.test_id,
            at=now - int(test_started_at),
            duration=None if start_time is None else now - int(start_time),
            humanized=_humanize(step, "humanize"),
            humanized_args=_humanize(step, "humanize_args"),
            status=_text(getattr(step, "status", None)),
            name=_text(getattr(step, "name", None)),
            args=map_args(getattr(step, "args", None)),
            snapshot=_strip_snapshot(snapshot),
            section=self._tracker.section_label(metastep),
            meta_step=self._tracker.map_chain(metastep),
            return_value=getattr(step, "return_value", None),
            command=_text(getattr(step, "command", None)),
            stack=stack,
        )
