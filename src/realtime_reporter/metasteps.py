"""Metastep hierarchy tracking and section labelling.

A metastep is a named higher-level action (a page-object method, a custom
step, a ``within`` block ...) wrapping one or more steps. The host attaches
to every step the innermost metastep frame; frames point to their parent
through ``metastep``, forming a linear chain.

The tracker detects when the chain of the current step differs from the
one seen before, emits a mapped chain for the UI when a new section opens,
and builds deduplicated section labels such as ``loginPage-login0_I-fillField0_``
(root first) that stay stable for every step of the same section.
"""
from __future__ import annotations
import logging
from typing import Iterator, List, Optional, Tuple

from .core import MetaStepRecord
from .host import HostStep, MetaStepFrame
from .mapper import map_args
from .session import ReporterSession
from .utilities import _join_args, _sanitize

logger = logging.getLogger(__name__)


def iter_chain(frame: Optional[MetaStepFrame]) -> Iterator[MetaStepFrame]:
    """Yield ``frame`` and its ancestors, innermost first."""
    while frame is not None:
        yield frame
        frame = getattr(frame, "metastep", None)


def frames_equal(a: Optional[MetaStepFrame], b: Optional[MetaStepFrame]) -> bool:
    """Compare two chains by their top frame only.

    Both absent → equal; one absent → different; otherwise actor, name and
    the comma-joined args must match. Ancestors are not compared, so two
    chains nested differently under the same top frame are equal.
    """
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return (
        a.actor == b.actor
        and a.name == b.name
        and _join_args(a.args) == _join_args(b.args)
    )


def _base(frame: MetaStepFrame) -> str:
    return f"{_sanitize(frame.actor)}-{_sanitize(frame.name)}"


class MetaStepTracker:
    """Detects metastep transitions and labels sections.

    Parameters
    ----------
    session : ReporterSession
        Owner of the tracked chain (:attr:`ReporterSession.metastep`) and of
        the per-test section bookkeeping, all reset at test-begin.

    Notes
    -----
    Every level of a label carries an occurrence counter: the number of
    times a chain with the same (actor, name) signatures from the root down
    to that level was opened before in the current test. A level counts as
    newly opened when the opened chain diverges from the previously opened
    one at or above that level (args included), so a loop body repeated
    with other arguments gets a fresh counter while the steps inside one
    occurrence share the same label.
    """

    def __init__(self, session: ReporterSession):
        self._session = session

    @property
    def logged_sections(self) -> List[str]:
        return self._session.logged_sections

    def on_step_before(self, step: HostStep) -> Optional[MetaStepRecord]:
        """Track the chain of ``step``.

        Returns
        -------
        MetaStepRecord or None
            The mapped chain (with ``opens``) when the step enters a new,
            non-absent chain; ``None`` otherwise.
        """
        current = getattr(step, "metastep", None)
        if frames_equal(current, self._session.metastep):
            return None
        record = None
        if current is not None:
            record = self.map_chain(current, is_new_section=True)
        else:
            self._session.open_chain = ()
        self._session.metastep = current
        return record

    def section_label(self, frame: Optional[MetaStepFrame], append: bool = False) -> Optional[str]:
        """Build the section label of the chain ending in ``frame``.

        Parameters
        ----------
        frame : MetaStepFrame or None
            Innermost frame of the chain.
        append : bool, default False
            Record the label as newly opened (bumps occurrence counters and
            appends to :attr:`logged_sections`). Read-only otherwise, in
            which case the label of the latest occurrence is returned.

        Returns
        -------
        str or None
            ``None`` for an absent chain.
        """
        if frame is None:
            return None
        chain = list(iter_chain(frame))
        chain.reverse()
        if append:
            self._open(chain)
        line = "".join(self._parts(chain))
        if append:
            self._session.logged_sections.append(line)
        return line

    def map_chain(self, frame: Optional[MetaStepFrame], is_new_section: bool = False) -> Optional[MetaStepRecord]:
        """Map a chain to nested :class:`MetaStepRecord` objects.

        Each level carries its parent as ``meta_step`` and the parent's
        section label as ``section``. The outermost record also gets
        ``opens`` when ``is_new_section`` is set.
        """
        if frame is None:
            return None
        opens = self.section_label(frame, append=True) if is_new_section else None

        chain = list(iter_chain(frame))
        chain.reverse()
        parts = self._parts(chain)
        record: Optional[MetaStepRecord] = None
        for depth, level in enumerate(chain):
            record = MetaStepRecord(
                actor=level.actor,
                name=level.name,
                args=map_args(level.args),
                meta_step=record,
                section="".join(parts[:depth]) if depth else None,
            )
        assert record is not None
        record.opens = opens
        return record

    def _signatures(self, chain: List[MetaStepFrame]) -> List[Tuple[str, ...]]:
        bases = [_base(f) for f in chain]
        return [tuple(bases[:i + 1]) for i in range(len(bases))]

    def _parts(self, chain: List[MetaStepFrame]) -> List[str]:
        openings = self._session.section_openings
        return [
            f"{_base(level)}{max(openings[sig] - 1, 0)}_"
            for level, sig in zip(chain, self._signatures(chain))
        ]

    def _open(self, chain: List[MetaStepFrame]) -> None:
        full = tuple((_base(f), _join_args(f.args)) for f in chain)
        previous = self._session.open_chain
        for depth, sig in enumerate(self._signatures(chain)):
            if previous[:depth + 1] != full[:depth + 1]:
                self._session.section_openings[sig] += 1
        self._session.open_chain = full
        logger.debug("opened section %s", "/".join(sig for sig, _ in full))
