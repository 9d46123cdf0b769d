import logging
import pytest

from realtime_reporter.core import ErrorRecord
from realtime_reporter.failures import to_error, unwrap_test
from realtime_reporter.outbound import MemoryTransport
from realtime_reporter.reporter import RealtimeReporter

from .helpers import FakeContext, FakeDriver, FakeStep, FakeSuite, FakeTest


class ForeignError:
    message = "Protocol error"
    stack = "at Page.click (page.js:10)"


#####################
#  to_error         #
#####################

def test_exception_keeps_type_and_traceback():
    try:
        raise ValueError("bad value")
    except ValueError as exc:
        error = to_error(exc)
    assert error.message == "bad value"
    assert error.kind == "ValueError"
    assert "Traceback" in error.stack
    assert "raise ValueError" in error.stack


def test_string_and_none_errors():
    assert to_error("plain failure") == ErrorRecord(message="plain failure", kind="str")
    assert to_error(None).message == "Unknown error"


def test_error_like_objects():
    error = to_error(ForeignError())
    assert error.message == "Protocol error"
    assert error.stack == "at Page.click (page.js:10)"
    assert error.kind == "ForeignError"

    other = to_error(42)
    assert other.message == "42"
    assert other.stack is None


def test_error_record_passes_through():
    record = ErrorRecord(message="x")
    assert to_error(record) is record


def test_unwrap_test_prefers_current_test():
    inner = FakeTest(id="inner")
    assert unwrap_test(FakeTest(id="outer", ctx=FakeContext(current_test=inner))) is inner
    outer = FakeTest(id="outer")
    assert unwrap_test(outer) is outer


#####################
#  bridge           #
#####################

@pytest.mark.asyncio
async def test_hook_failure_reports_and_terminates():
    transport = MemoryTransport()
    reporter = RealtimeReporter(transport)

    reporter.hook_failed(FakeSuite(), RuntimeError("before hook failed"))
    await reporter.flush()

    assert transport.names() == ["testFailed", "exit"]
    failed = transport.payloads("testFailed")[0]
    assert failed["duration"] == 0
    assert failed["error"]["message"] == "before hook failed"
    assert transport.payloads("exit") == [{"code": 1}]
    assert reporter.session.terminated


@pytest.mark.asyncio
async def test_rejection_outside_a_test_is_only_logged(caplog):
    transport = MemoryTransport()
    reporter = RealtimeReporter(transport)

    with caplog.at_level(logging.ERROR, logger="realtime_reporter.failures"):
        reporter.unhandled_rejection(RuntimeError("stray"))
    await reporter.flush()

    assert transport.names() == []
    assert not reporter.session.terminated
    assert "stray" in caplog.text


@pytest.mark.asyncio
async def test_rejection_during_a_test_reports_last_step_and_terminates():
    transport = MemoryTransport()
    reporter = RealtimeReporter(transport)
    test = FakeTest(id="t1", file=__file__)
    step = FakeStep("click", args=["#btn"])

    reporter.test_before(test)
    reporter.step_before(step)
    test.steps.append(step)
    reporter.unhandled_rejection(RuntimeError("navigation failed"))
    await reporter.flush()

    assert transport.names() == ["testBefore", "stepBefore", "testFailed", "exit"]
    failed = transport.payloads("testFailed")[0]
    assert failed["testId"] == "t1"
    assert failed["stepId"] == 1
    assert failed["step"]["id"] == 1
    assert failed["step"]["name"] == "click"
    assert failed["error"]["message"] == "navigation failed"
    assert failed["duration"] >= 0


@pytest.mark.asyncio
async def test_test_failure_follows_full_report_of_last_step():
    transport = MemoryTransport()
    driver = FakeDriver(delay=0.03)
    reporter = RealtimeReporter(transport, drivers={"WebDriver": driver})
    test = FakeTest(id="t1", file=__file__)
    step = FakeStep("see", args=["Welcome"])

    reporter.test_before(test)
    reporter.step_before(step)
    test.steps.append(step)
    reporter.test_failed(test, AssertionError("expected Welcome"))
    await reporter.flush()

    assert transport.names() == ["testBefore", "stepBefore", "stepAfter", "testFailed"]
    assert transport.payloads("stepAfter")[0]["snapshot"]["index"] == 1
    failed = transport.payloads("testFailed")[0]
    assert failed["testId"] == "t1"
    assert failed["error"]["kind"] == "AssertionError"
    assert not reporter.session.terminated


@pytest.mark.asyncio
async def test_test_failure_uses_wrapped_test_and_tolerates_no_steps():
    transport = MemoryTransport()
    reporter = RealtimeReporter(transport)
    inner = FakeTest(id="retry-2")
    outer = FakeTest(id="t1", ctx=FakeContext(current_test=inner))

    reporter.test_before(outer)
    reporter.test_failed(outer, "timeout")
    await reporter.flush()

    assert transport.names() == ["testBefore", "testFailed"]
    failed = transport.payloads("testFailed")[0]
    assert failed["testId"] == "retry-2"
    assert failed["error"] == {"message": "timeout", "kind": "str"}


@pytest.mark.asyncio
async def test_terminate_with_explicit_code():
    transport = MemoryTransport()
    reporter = RealtimeReporter(transport)
    reporter.failures.terminate(3)
    await reporter.flush()
    assert transport.payloads("exit") == [{"code": 3}]
