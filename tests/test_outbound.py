import io
import json
import pytest

from realtime_reporter.core import ExitRecord, Message, StepResultRecord
from realtime_reporter.outbound import JsonLinesTransport, MemoryTransport, OutboundChannel, to_payload
from realtime_reporter.task_queue import TaskQueue


class AsyncTransport:
    def __init__(self):
        self.messages = []

    async def send(self, name, payload):
        self.messages.append((name, payload))


def test_to_payload_shapes():
    assert to_payload(None) == {}
    assert to_payload({"a": 1}) == {"a": 1}
    assert to_payload(StepResultRecord(id=3, test_id="t1", return_value=None)) == {"id": 3, "testId": "t1"}


@pytest.mark.asyncio
async def test_channel_sends_through_queue_in_order():
    transport = MemoryTransport()
    channel = OutboundChannel(transport, TaskQueue())
    channel.enqueue(Message.TEST_BEFORE, {"id": "t1"})
    fut = channel.enqueue(Message.EXIT, ExitRecord(code=1))
    await fut
    assert transport.names() == ["testBefore", "exit"]
    assert transport.payloads("exit") == [{"code": 1}]


@pytest.mark.asyncio
async def test_channel_awaits_async_transport():
    transport = AsyncTransport()
    channel = OutboundChannel(transport, TaskQueue())
    await channel.send(Message.TEST_RUN_FINISHED)
    assert transport.messages == [("testRunFinished", {})]


def test_memory_transport_clear():
    transport = MemoryTransport()
    transport.send("exit", {"code": 1})
    transport.clear()
    assert transport.names() == []


def test_json_lines_transport_writes_one_object_per_line():
    out = io.StringIO()
    transport = JsonLinesTransport(out)
    transport.send("stepAfter", {"id": 1, "returnValue": object})
    transport.send("exit", {"code": 1})

    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["event"] == "stepAfter"
    assert first["payload"]["id"] == 1
    assert first["payload"]["returnValue"] == str(object)
    assert first["timestamp"].endswith("+00:00")
    assert json.loads(lines[1])["payload"] == {"code": 1}
