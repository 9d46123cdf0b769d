import asyncio
import pytest

from realtime_reporter.core import PreconditionError
from realtime_reporter.task_queue import QueueClosedError, TaskQueue


@pytest.mark.asyncio
async def test_tasks_complete_in_enqueue_order_despite_latency():
    queue = TaskQueue()
    effects = []

    async def slow():
        await asyncio.sleep(0.05)
        effects.append("T1")

    async def fast():
        effects.append("T2")

    queue.enqueue("slow", slow)
    queue.enqueue("fast", fast)
    await queue.drain()
    assert effects == ["T1", "T2"]


@pytest.mark.asyncio
async def test_sync_and_async_tasks_share_the_order():
    queue = TaskQueue()
    effects = []

    async def a():
        await asyncio.sleep(0.01)
        effects.append(1)

    queue.enqueue("a", a)
    queue.enqueue("b", lambda: effects.append(2))
    queue.enqueue("c", a)
    await queue.drain()
    assert effects == [1, 2, 1]


@pytest.mark.asyncio
async def test_enqueue_returns_future_with_result():
    queue = TaskQueue()
    fut = queue.enqueue("answer", lambda: 42)
    assert await fut == 42


@pytest.mark.asyncio
async def test_retry_runs_in_place_until_success():
    queue = TaskQueue()
    queue.register_retry(lambda e: "context" in str(e), max_attempts=5)
    attempts = {"n": 0}
    emitted = []

    async def flaky():
        attempts["n"] += 1
        if attempts["n"] < 5:
            raise RuntimeError("Execution context was destroyed")
        emitted.append("message")

    queue.enqueue("flaky", flaky)
    queue.enqueue("after", lambda: emitted.append("after"))
    await queue.drain()
    assert attempts["n"] == 5
    assert emitted == ["message", "after"]


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts():
    queue = TaskQueue()
    queue.register_retry(lambda e: "context" in str(e), max_attempts=3)
    attempts = {"n": 0}

    def always_fails():
        attempts["n"] += 1
        raise RuntimeError("context lost")

    fut = queue.enqueue("fails", always_fails)
    await queue.drain()
    assert attempts["n"] == 3
    with pytest.raises(RuntimeError, match="context lost"):
        fut.result()


@pytest.mark.asyncio
async def test_non_matching_error_is_not_retried():
    queue = TaskQueue()
    queue.register_retry(lambda e: "context" in str(e), max_attempts=5)
    attempts = {"n": 0}

    def fails():
        attempts["n"] += 1
        raise ValueError("element not found")

    fut = queue.enqueue("fails", fails)
    await queue.drain()
    assert attempts["n"] == 1
    assert isinstance(fut.exception(), ValueError)


@pytest.mark.asyncio
async def test_failure_does_not_abort_successors():
    queue = TaskQueue()
    effects = []

    def boom():
        raise RuntimeError("boom")

    queue.enqueue("boom", boom)
    queue.enqueue("next", lambda: effects.append("next"))
    await queue.drain()
    assert effects == ["next"]


@pytest.mark.asyncio
async def test_rules_apply_only_to_tasks_enqueued_after_registration():
    queue = TaskQueue()
    attempts = {"n": 0}

    def fails():
        attempts["n"] += 1
        raise RuntimeError("context")

    queue.enqueue("before rule", fails)
    queue.register_retry(lambda e: True, max_attempts=4)
    await queue.drain()
    assert attempts["n"] == 1

    queue.clear_retries()
    assert queue.rules == ()


def test_register_retry_rejects_zero_attempts():
    with pytest.raises(ValueError):
        TaskQueue().register_retry(lambda e: True, max_attempts=0)


@pytest.mark.asyncio
async def test_precondition_error_halts_queue():
    queue = TaskQueue()
    effects = []

    def misuse():
        raise PreconditionError("step is required")

    queue.enqueue("misuse", misuse)
    later = queue.enqueue("later", lambda: effects.append("later"))
    with pytest.raises(PreconditionError):
        await queue.drain()
    assert effects == []
    assert later.cancelled()
    assert queue.halted
    with pytest.raises(QueueClosedError):
        queue.enqueue("too late", lambda: None)


@pytest.mark.asyncio
async def test_aclose_finishes_pending_work():
    queue = TaskQueue()
    effects = []
    queue.enqueue("work", lambda: effects.append(1))
    await queue.aclose()
    assert effects == [1]
    assert queue.halted


@pytest.mark.asyncio
async def test_pending_counts_the_running_task():
    queue = TaskQueue()
    gate = asyncio.Event()
    queue.enqueue("blocked", gate.wait)
    queue.enqueue("next", lambda: None)
    await asyncio.sleep(0)
    assert queue.pending == 2

    gate.set()
    await queue.drain()
    assert queue.pending == 0
