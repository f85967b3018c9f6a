"""事件广播测试：扇出、故障隔离、慢订阅者不阻塞与有界队列丢弃。"""

from __future__ import annotations

import asyncio

import pytest

from verifyhub.domain.enums import EventType
from verifyhub.domain.models import LifecycleEvent
from verifyhub.infra.broadcast.broadcaster import EventBroadcaster

from helpers import RecordingTransport


def _event(job_id: str = "job_1", status: str = "running") -> LifecycleEvent:
    return LifecycleEvent(type=EventType.job_update, job_id=job_id, tool_name="toolA", status=status)


class GatedTransport(RecordingTransport):
    """发送前阻塞，模拟网络缓慢的客户端。"""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def send_text(self, data: str) -> None:
        await self.gate.wait()
        await super().send_text(data)


@pytest.mark.asyncio
async def test_publish_reaches_each_open_subscriber_once() -> None:
    broadcaster = EventBroadcaster()
    transports = [RecordingTransport() for _ in range(4)]
    subscribers = [broadcaster.subscribe(item) for item in transports]
    subscribers[3].close()

    delivered = broadcaster.publish(_event())
    await broadcaster.flush()

    assert delivered == 3
    assert broadcaster.connection_count == 3
    for transport in transports[:3]:
        assert transport.types() == ["job_update"]
        assert transport.messages[0]["jobId"] == "job_1"
        assert transport.messages[0]["status"] == "running"
        assert "timestamp" in transport.messages[0]
    assert transports[3].messages == []
    await broadcaster.close()


@pytest.mark.asyncio
async def test_failing_transport_is_closed_without_affecting_others() -> None:
    """发送失败的订阅者被永久关闭，其余订阅者继续接收。"""
    broadcaster = EventBroadcaster()
    healthy = RecordingTransport()
    broken = RecordingTransport(fail=True)
    broadcaster.subscribe(healthy)
    broken_subscriber = broadcaster.subscribe(broken)

    broadcaster.publish(_event(status="pending"))
    await broadcaster.flush()

    assert broken_subscriber.closed
    assert broadcaster.connection_count == 1

    assert broadcaster.publish(_event(status="running")) == 1
    await broadcaster.flush()
    assert [item["status"] for item in healthy.messages] == ["pending", "running"]
    await broadcaster.close()


@pytest.mark.asyncio
async def test_slow_subscriber_does_not_block_others() -> None:
    broadcaster = EventBroadcaster()
    slow = GatedTransport()
    fast = RecordingTransport()
    broadcaster.subscribe(slow)
    broadcaster.subscribe(fast)

    assert broadcaster.publish(_event()) == 2
    await asyncio.wait_for(fast.received.wait(), timeout=2)

    assert fast.types() == ["job_update"]
    assert slow.messages == []

    slow.gate.set()
    await broadcaster.flush()
    assert slow.types() == ["job_update"]
    await broadcaster.close()


@pytest.mark.asyncio
async def test_full_queue_drops_messages() -> None:
    """队列满时丢弃新消息并计数，publish 本身不阻塞。"""
    broadcaster = EventBroadcaster(queue_size=1)
    transport = RecordingTransport()
    subscriber = broadcaster.subscribe(transport)

    results = [broadcaster.publish(_event(status=status)) for status in ("pending", "running", "completed")]
    await broadcaster.flush()

    assert results == [1, 0, 0]
    assert subscriber.dropped == 2
    assert [item["status"] for item in transport.messages] == ["pending"]
    assert broadcaster.snapshot()[0]["dropped"] == 2
    await broadcaster.close()


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay() -> None:
    broadcaster = EventBroadcaster()
    early = RecordingTransport()
    broadcaster.subscribe(early)
    broadcaster.publish(_event(status="pending"))

    late = RecordingTransport()
    broadcaster.subscribe(late)
    broadcaster.publish(_event(status="running"))
    await broadcaster.flush()

    assert [item["status"] for item in early.messages] == ["pending", "running"]
    assert [item["status"] for item in late.messages] == ["running"]
    await broadcaster.close()


@pytest.mark.asyncio
async def test_publish_threadsafe_from_worker_thread() -> None:
    broadcaster = EventBroadcaster()
    transport = RecordingTransport()
    broadcaster.subscribe(transport)

    await asyncio.to_thread(broadcaster.publish_threadsafe, _event(status="completed"))
    await asyncio.wait_for(transport.received.wait(), timeout=2)

    assert transport.messages[0]["status"] == "completed"
    await broadcaster.close()


@pytest.mark.asyncio
async def test_unsubscribe_and_close_stop_delivery() -> None:
    broadcaster = EventBroadcaster()
    first = RecordingTransport()
    second = RecordingTransport()
    subscriber = broadcaster.subscribe(first)
    broadcaster.subscribe(second)

    broadcaster.unsubscribe(subscriber)
    assert broadcaster.publish(_event()) == 1
    await broadcaster.flush()
    await broadcaster.close()

    assert first.messages == []
    assert second.types() == ["job_update"]
    assert broadcaster.connection_count == 0
    assert broadcaster.publish(_event()) == 0


def test_wire_format_is_camel_case_without_empty_fields() -> None:
    event = LifecycleEvent(
        type=EventType.execution_completed,
        job_id="job_9",
        tool_name="toolA",
        extra={"contractStateAfter": {"registryVersion": "1"}},
    )

    wire = event.to_wire()

    assert wire["type"] == "execution_completed"
    assert wire["jobId"] == "job_9"
    assert wire["toolName"] == "toolA"
    assert wire["contractStateAfter"] == {"registryVersion": "1"}
    assert "error" not in wire
    assert "progress" not in wire
    assert wire["timestamp"].endswith("Z")
