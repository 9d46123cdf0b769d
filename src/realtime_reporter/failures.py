"""Failure bridge: three failure origins, one outbound shape.

- hook failures (``hook.failed``) are test-independent and always fatal;
- unhandled asynchronous errors are reported only while a test runs, and
  are then fatal;
- declared test failures are reported after the full report of the last
  step, and leave continuation to the host.

Every raw error (exception, string, arbitrary object) goes through
:func:`to_error` first.
"""
from __future__ import annotations
import logging
import traceback
from typing import Any, Optional

from .clocks import elapsed_seconds, now_ms
from .core import ErrorRecord, ExitRecord, Message, TestFailedRecord
from .host import HostStep, HostSuite, HostTest
from .mapper import StepMapper
from .outbound import OutboundChannel
from .session import ReporterSession
from .settings import ReporterSettings, current_settings
from .snapshots import SnapshotPipeline

logger = logging.getLogger(__name__)


def to_error(err: Any) -> ErrorRecord:
    """Normalize a raw error to :class:`ErrorRecord`.

    Examples
    --------
    >>> to_error("boom").message
    'boom'
    >>> to_error(ValueError("bad")).kind
    'ValueError'
    """
    if isinstance(err, ErrorRecord):
        return err
    if isinstance(err, BaseException):
        stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
        return ErrorRecord(message=str(err), stack=stack, kind=type(err).__name__)
    if isinstance(err, str):
        return ErrorRecord(message=err, kind="str")
    if err is None:
        return ErrorRecord(message="Unknown error", kind="NoneType")
    # error-like objects from foreign runtimes (message/stack attributes)
    message = getattr(err, "message", None)
    stack = getattr(err, "stack", None)
    return ErrorRecord(
        message=str(message) if message is not None else repr(err),
        stack=str(stack) if stack is not None else None,
        kind=type(err).__name__,
    )


def unwrap_test(test: HostTest) -> HostTest:
    """Return the test that actually failed when ``test`` wraps retries."""
    ctx = getattr(test, "ctx", None)
    current = getattr(ctx, "current_test", None) if ctx is not None else None
    return current or test


class FailureBridge:
    """Reports failures and raises the termination signal.

    Parameters
    ----------
    session : ReporterSession
    mapper : StepMapper
    channel : OutboundChannel
    snapshots : SnapshotPipeline
    settings : ReporterSettings, optional
    """

    def __init__(
        self,
        session: ReporterSession,
        mapper: StepMapper,
        channel: OutboundChannel,
        snapshots: SnapshotPipeline,
        settings: Optional[ReporterSettings] = None,
    ):
        self._session = session
        self._mapper = mapper
        self._channel = channel
        self._snapshots = snapshots
        self._settings = settings or current_settings()

    def hook_failed(self, suite: Optional[HostSuite], err: Any) -> None:
        error = to_error(err)
        logger.error("hook failed in suite %r: %s", getattr(suite, "title", None), error.message)
        self._channel.enqueue(Message.TEST_FAILED, TestFailedRecord(duration=0, error=error))
        self.terminate()

    def unhandled_rejection(self, err: Any) -> None:
        error = to_error(err)
        logger.error("unhandled rejection: %s", error.message)
        session = self._session
        if not session.test_active:
            return
        test = session.test
        record = TestFailedRecord(
            test_started_at=session.test_started_at,
            test_id=session.test_id,
            step_id=len(getattr(test, "steps", None) or ()),
            step=self._last_step_record(session.step),
            duration=elapsed_seconds(session.test_started_at or now_ms()),
            error=error,
        )
        self._channel.enqueue(Message.TEST_FAILED, record)
        self.terminate()

    def test_failed(self, test: HostTest, err: Any) -> None:
        test = unwrap_test(test)
        session = self._session
        started_at = session.test_started_at or now_ms()
        steps = getattr(test, "steps", None) or []
        step = steps[-1] if steps else None
        error = to_error(err)
        logger.info("test %r failed: %s", getattr(test, "title", None), error.message)

        # full detail of the failing step reaches the client first
        self._snapshots.report_step(step)

        async def emit() -> None:
            await self._channel.send(Message.TEST_FAILED, TestFailedRecord(
                test_started_at=started_at,
                test_id=getattr(test, "id", None),
                duration=elapsed_seconds(started_at),
                error=error,
            ))

        self._channel.queue.enqueue("send test failed", emit)

    def terminate(self, code: Optional[int] = None) -> None:
        """Queue the ``exit`` signal; in-flight tasks are not cancelled."""
        if code is None:
            code = self._settings.exit_code_on_failure
        self._session.terminated = True
        self._channel.enqueue(Message.EXIT, ExitRecord(code=code))

    def _last_step_record(self, step: Optional[HostStep]):
        if step is None or self._session.test_started_at is None:
            return None
        return self._mapper.map_step(self._session.test_started_at, self._session.id_for(step), step)
