"""Snapshot capture pipeline and automation-driver resolution.

Every completed step is reported through three queued tasks:

1. capture a state snapshot (or a full screenshot for screenshot-worthy
   steps);
2. grab the page source, attach it and hand the composed snapshot to the
   snapshot store. Source retrieval is slow and flaky, so it runs as its own
   task and can be retried without re-capturing (1);
3. emit ``stepAfter``: the step record, mapped when the step completed,
   with the snapshot embedded without source.

A failed capture does not stop the report: the step is emitted without a
snapshot and the failure is logged.
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Mapping, Optional, Tuple

from .core import Message, Snapshot
from .host import HostStep, SnapshotDriver
from .mapper import StepMapper, with_snapshot
from .outbound import OutboundChannel
from .session import ReporterSession
from .settings import ReporterSettings, current_settings
from .stores import SnapshotStore

logger = logging.getLogger(__name__)


def resolve_driver(
    drivers: Optional[Mapping[str, Any]],
    candidates: Tuple[str, ...],
) -> Optional[Tuple[str, Any]]:
    """Pick the active automation driver.

    Parameters
    ----------
    drivers : mapping of str to driver, or None
        Drivers enabled in the host, by name.
    candidates : tuple of str
        Names in priority order; the first present (and not ``None``) wins.

    Returns
    -------
    (name, driver) or None
        ``None`` disables snapshot capture.
    """
    if not drivers:
        return None
    for name in candidates:
        driver = drivers.get(name)
        if driver is not None:
            return name, driver
    return None


def _outcome(fut: Optional[asyncio.Future]) -> Any:
    """Result of a finished task future, ``None`` when it failed."""
    if fut is None or not fut.done() or fut.cancelled() or fut.exception() is not None:
        return None
    return fut.result()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SnapshotPipeline:
    """Queues the capture and report of completed steps.

    Parameters
    ----------
    session : ReporterSession
        Current test state (step ids, test start).
    mapper : StepMapper
        Builds the final step record.
    channel : OutboundChannel
        Emits ``stepAfter`` and owns the task queue.
    snapshot_store : SnapshotStore, optional
        Receives composed snapshots (markup included).
    driver : SnapshotDriver, optional
        Capture capability; ``None`` disables captures.
    settings : ReporterSettings, optional
    """

    def __init__(
        self,
        session: ReporterSession,
        mapper: StepMapper,
        channel: OutboundChannel,
        snapshot_store: Optional[SnapshotStore] = None,
        driver: Optional[SnapshotDriver] = None,
        settings: Optional[ReporterSettings] = None,
    ):
        self._session = session
        self._mapper = mapper
        self._channel = channel
        self._store = snapshot_store
        self.driver = driver
        self._settings = settings or current_settings()

    def report_step(self, step: Optional[HostStep]) -> Optional[asyncio.Future]:
        """Queue the capture and emission of ``step``.

        The step is mapped right away, against the session state of the
        test it belongs to; the queued tasks only add the snapshot.

        Returns
        -------
        asyncio.Future or None
            Future of the final emission task; ``None`` when ``step`` is
            absent or no test has started.
        """
        if step is None:
            return None
        started_at = self._session.test_started_at
        if started_at is None:
            logger.debug("step %r before any test, not reported", getattr(step, "name", None))
            return None
        queue = self._channel.queue
        index = self._session.id_for(step)
        record = self._mapper.map_step(started_at, index, step)
        screenshot = self._settings.is_screenshot_step(getattr(step, "name", None))

        captured = queue.enqueue("take snapshot", lambda: self._capture(index, screenshot))
        composed = queue.enqueue("take source", lambda: self._attach_source(index, captured))

        async def emit() -> None:
            snapshot = _outcome(composed) or _outcome(captured)
            await self._channel.send(Message.STEP_AFTER, with_snapshot(record, snapshot))

        return queue.enqueue("send step after", emit)

    async def _capture(self, index: int, screenshot: bool) -> Optional[Snapshot]:
        if self.driver is None:
            return None
        raw = await _maybe_await(self.driver.take_snapshot(index, screenshot))
        if raw is None:
            return None
        if isinstance(raw, Snapshot):
            return raw
        return Snapshot.model_validate({"index": index, **raw})

    async def _attach_source(self, index: int, captured: asyncio.Future) -> Optional[Snapshot]:
        snapshot = _outcome(captured)
        if self.driver is None or snapshot is None:
            if captured.done() and not captured.cancelled() and captured.exception() is not None:
                logger.warning("no snapshot for step %s: %s", index, captured.exception())
            return None
        source = await _maybe_await(self.driver.grab_source())
        snapshot = snapshot.model_copy(update={"source": source})
        if self._store is not None:
            self._store.add(index, snapshot)
        return snapshot
