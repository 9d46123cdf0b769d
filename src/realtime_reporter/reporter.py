"""Event subscriber: host lifecycle signals → ordered outbound messages.

:class:`RealtimeReporter` owns the :class:`~realtime_reporter.session.ReporterSession`
and wires the task queue, metastep tracker, step mapper, snapshot pipeline
and failure bridge together. Handlers are synchronous: they update the
session and enqueue work, never awaiting anything themselves.

Examples
--------
::

    source = EventSource()
    reporter = RealtimeReporter(MemoryTransport(), drivers={"Playwright": driver})
    detach = reporter.attach(source)
    ...                      # host emits signals on `source`
    await reporter.flush()   # wait until every message went out
    detach()
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .clocks import elapsed_ms, elapsed_seconds, now_ms
from .core import (
    Message, RunFinishedRecord, ScenarioState, ScenarioStatus,
    StepCommentRecord, StepResultRecord, SuiteTestRecord, TestPassedRecord,
)
from .events import EventSource, Handler, HostEvent
from .failures import FailureBridge
from .host import HostStep, HostSuite, HostTest
from .mapper import StepMapper
from .metasteps import MetaStepTracker
from .outbound import OutboundChannel, Transport
from .session import ReporterSession
from .settings import ReporterSettings, current_settings
from .snapshots import SnapshotPipeline, resolve_driver
from .stores import ScenarioStatusStore, SnapshotStore
from .task_queue import TaskQueue
from .utilities import _norm_text

logger = logging.getLogger(__name__)


def _disable_retries(test: HostTest) -> None:
    retries = getattr(test, "retries", None)
    if callable(retries):
        retries(0)
    else:
        test.retries = 0


class RealtimeReporter:
    """Translates host lifecycle signals into the live-monitoring protocol.

    Parameters
    ----------
    transport : Transport
        Receives every outbound message, in event order.
    drivers : mapping of str to driver, optional
        Automation drivers enabled in the host, by name. The first match
        from :attr:`ReporterSettings.driver_candidates` is used for
        snapshots; without one, steps are reported without snapshots.
    snapshot_store : SnapshotStore, optional
        Receives composed snapshots (markup included) per step index.
    status_store : ScenarioStatusStore, optional
        Receives the status of passed scenarios.
    settings : ReporterSettings, optional
        Defaults to :func:`current_settings`.

    Attributes
    ----------
    session : ReporterSession
        Per-test tracking state.
    queue : TaskQueue
        Orders all side effects.
    driver_name : str or None
        Name of the resolved automation driver.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        drivers: Optional[Mapping[str, Any]] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        status_store: Optional[ScenarioStatusStore] = None,
        settings: Optional[ReporterSettings] = None,
    ):
        self.settings = settings or current_settings()
        self.session = ReporterSession(step_index=self.settings.first_step_id - 1)
        self.queue = TaskQueue(self.settings)
        self.channel = OutboundChannel(transport, self.queue)
        self.tracker = MetaStepTracker(self.session)
        self.mapper = StepMapper(self.session, self.tracker)

        resolved = resolve_driver(drivers, self.settings.driver_candidates)
        self.driver_name, driver = resolved if resolved else (None, None)
        if driver is None:
            logger.info("no automation driver found, snapshots disabled")

        self.snapshots = SnapshotPipeline(
            self.session, self.mapper, self.channel,
            snapshot_store=snapshot_store, driver=driver, settings=self.settings,
        )
        self.failures = FailureBridge(
            self.session, self.mapper, self.channel, self.snapshots, settings=self.settings,
        )
        self.status_store = status_store

    # ------------------------------------------------------------------
    # wiring
    # ------------------------------------------------------------------

    def handlers(self) -> Dict[HostEvent, Handler]:
        return {
            HostEvent.SUITE_BEFORE: self.suite_before,
            HostEvent.TEST_BEFORE: self.test_before,
            HostEvent.TEST_AFTER: self.test_after,
            HostEvent.TEST_PASSED: self.test_passed,
            HostEvent.TEST_FAILED: self.test_failed,
            HostEvent.HOOK_FAILED: self.hook_failed,
            HostEvent.STEP_BEFORE: self.step_before,
            HostEvent.STEP_AFTER: self.step_after,
            HostEvent.STEP_PASSED: self.step_passed,
            HostEvent.STEP_COMMENT: self.step_comment,
            HostEvent.UNHANDLED_REJECTION: self.unhandled_rejection,
            HostEvent.RUN_FINISHED: self.run_finished,
        }

    def attach(self, source: EventSource) -> Callable[[], None]:
        """Subscribe every handler to ``source``.

        Returns
        -------
        callable
            Detach handle removing exactly these subscriptions.
        """
        unsubscribers = [source.subscribe(event, handler) for event, handler in self.handlers().items()]

        def detach() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return detach

    async def flush(self) -> None:
        """Wait until every queued capture and message is done."""
        await self.queue.drain()

    async def aclose(self) -> None:
        await self.queue.aclose()

    # ------------------------------------------------------------------
    # suite / test signals
    # ------------------------------------------------------------------

    def suite_before(self, suite: HostSuite) -> None:
        self.session.suite = suite
        record = SuiteTestRecord.build(now_ms(), suite, self.session.test)
        self.channel.enqueue(Message.SUITE_BEFORE, record)

    def test_before(self, test: HostTest) -> None:
        _disable_retries(test)
        self.session.reset(test, now_ms(), self.settings.first_step_id)

        self.queue.clear_retries()
        if self.driver_name in self.settings.context_retry_drivers:
            self.queue.register_retry(self.settings.is_stale_context, self.settings.context_retry_attempts)

        record = SuiteTestRecord.build(self.session.test_started_at, self.session.suite, test)
        self.channel.enqueue(Message.TEST_BEFORE, record)

    def test_after(self, test: Optional[HostTest] = None) -> None:
        session = self.session
        record = SuiteTestRecord.build(session.test_started_at, session.suite, session.test or test)
        self.channel.enqueue(Message.TEST_AFTER, record)
        session.test = None

    def test_passed(self, test: Optional[HostTest] = None) -> None:
        session = self.session
        test_id = session.test_id if session.test_active else getattr(test, "id", None)
        started_at = session.test_started_at
        duration = elapsed_seconds(started_at) if started_at is not None else 0
        self.channel.enqueue(Message.TEST_PASSED, TestPassedRecord(
            id=session.step_index,
            test_started_at=started_at,
            test_id=test_id,
            duration=duration,
        ))
        if self.status_store is not None:
            status = ScenarioStatus(status=ScenarioState.PASSED, started_at=started_at, duration=duration)
            self.queue.enqueue("store scenario status", lambda: self.status_store.set_status(test_id, status))

    def test_failed(self, test: HostTest, err: Any) -> None:
        self.failures.test_failed(test, err)

    def hook_failed(self, suite: Optional[HostSuite], err: Any) -> None:
        self.failures.hook_failed(suite, err)

    def unhandled_rejection(self, err: Any) -> None:
        self.failures.unhandled_rejection(err)

    def run_finished(self, *args: Any) -> None:
        self.channel.enqueue(Message.TEST_RUN_FINISHED, RunFinishedRecord())

    # ------------------------------------------------------------------
    # step signals
    # ------------------------------------------------------------------

    def step_before(self, step: HostStep) -> None:
        session = self.session
        if not session.test_active:
            logger.debug("step %r outside of a test, not reported", getattr(step, "name", None))
            return
        step_id = session.next_step_id(step)
        session.step = step
        changed = self.tracker.on_step_before(step)
        if changed is not None:
            self.channel.enqueue(Message.METASTEP_CHANGED, changed)
        record = self.mapper.map_step(session.test_started_at, step_id, step)
        self.channel.enqueue(Message.STEP_BEFORE, record)

    def step_after(self, step: HostStep) -> None:
        if not self.session.test_active:
            return
        self.snapshots.report_step(step)

    def step_passed(self, step: HostStep, return_value: Any = None) -> None:
        """Report the resolved return value of value-returning steps."""
        session = self.session
        if return_value is None or not session.test_active:
            return
        if not self.settings.is_retval_step(getattr(step, "name", None)):
            return
        step_id = session.id_for(step)
        test_id = session.test_id
        if inspect.isawaitable(return_value):
            # a future can be awaited again if the task is retried
            return_value = asyncio.ensure_future(return_value)

        async def emit() -> None:
            value = await return_value if inspect.isawaitable(return_value) else return_value
            await self.channel.send(Message.STEP_AFTER, StepResultRecord(
                id=step_id, test_id=test_id, return_value=value,
            ))

        self.queue.enqueue("send step result", emit)

    def step_comment(self, message: Any) -> None:
        session = self.session
        metastep = session.metastep
        text = _norm_text(message)
        # a metastep announces itself as a comment; it is already reported
        if metastep is not None and f"{metastep.actor} {metastep.name}" == text:
            return
        started_at = session.test_started_at
        self.channel.enqueue(Message.STEP_COMMENT, StepCommentRecord(
            id=session.next_step_id(),
            at=elapsed_ms(started_at) if started_at is not None else 0,
            args=[message],
        ))
