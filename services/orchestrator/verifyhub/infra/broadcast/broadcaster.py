"""事件广播器：向所有在线订阅者扇出生命周期事件，单个订阅者异常互不影响。"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Protocol
from uuid import uuid4

from verifyhub.domain.models import LifecycleEvent
from verifyhub.infra.logging.context import bind_log_context

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send_text(self, data: str) -> None: ...


def serialize_event(event: LifecycleEvent) -> str:
    return json.dumps(event.to_wire(), ensure_ascii=False, default=str)


class Subscriber:
    """订阅者句柄：独立的有界队列与发送协程；发送失败后永久关闭。"""

    def __init__(self, transport: Transport, *, queue_size: int) -> None:
        self.id = uuid4().hex[:12]
        self.transport = transport
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.closed = False
        self.dropped = 0
        self._pump: asyncio.Task[None] | None = None

    def offer(self, message: str) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def start(self) -> None:
        self._pump = asyncio.get_running_loop().create_task(self._run(), name=f"subscriber-{self.id}")

    def close(self) -> None:
        self.closed = True
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()

    async def wait_closed(self) -> None:
        if self._pump is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._pump

    async def _run(self) -> None:
        with bind_log_context(subscriber_id=self.id):
            while True:
                message = await self.queue.get()
                try:
                    await self.transport.send_text(message)
                except Exception as exc:
                    self.closed = True
                    logger.info(
                        "subscriber send failed, closing",
                        extra={
                            "event": "broadcast.subscriber.send_failed",
                            "error_type": type(exc).__name__,
                            "error": str(exc),
                        },
                    )
                    self._drain()
                    return
                finally:
                    if not self.closed:
                        self.queue.task_done()

    def _drain(self) -> None:
        # 关闭后队列不再消费，清空并结算 task_done，避免 flush 挂起。
        self.queue.task_done()
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.queue.task_done()


class EventBroadcaster:
    """尽力而为的实时广播：不缓存历史，新订阅者只收到订阅之后的事件。"""

    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, Subscriber] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def connection_count(self) -> int:
        return sum(1 for item in self._subscribers.values() if not item.closed)

    def subscribe(self, transport: Transport) -> Subscriber:
        """注册传输通道并启动其发送协程；必须在事件循环内调用。"""
        self._loop = asyncio.get_running_loop()
        subscriber = Subscriber(transport, queue_size=self._queue_size)
        self._subscribers[subscriber.id] = subscriber
        subscriber.start()
        logger.info(
            "subscriber connected",
            extra={"event": "broadcast.subscriber.connected", "subscriber_id": subscriber.id},
        )
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        logger.info(
            "subscriber disconnected",
            extra={"event": "broadcast.subscriber.disconnected", "subscriber_id": subscriber.id},
        )

    def send_to(self, subscriber: Subscriber, event: LifecycleEvent) -> bool:
        """只发给单个订阅者（如连接握手消息）。"""
        return subscriber.offer(serialize_event(event))

    def publish(self, event: LifecycleEvent) -> int:
        """序列化一次后投递到每个在线订阅者队列，返回成功入队数；从不抛出。"""
        try:
            message = serialize_event(event)
        except (TypeError, ValueError) as exc:
            logger.error(
                "event serialization failed",
                extra={
                    "event": "broadcast.serialize.failed",
                    "op": event.type.value,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return 0
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if subscriber.closed:
                continue
            if subscriber.offer(message):
                delivered += 1
            else:
                logger.warning(
                    "subscriber queue full, event dropped",
                    extra={
                        "event": "broadcast.subscriber.dropped",
                        "subscriber_id": subscriber.id,
                        "op": event.type.value,
                    },
                )
        return delivered

    def publish_threadsafe(self, event: LifecycleEvent) -> None:
        """供工作线程调用，把发布动作调度回事件循环。"""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("no event loop bound, event skipped", extra={"event": "broadcast.skipped"})
            return
        loop.call_soon_threadsafe(self.publish, event)

    async def flush(self) -> None:
        """等待所有在线订阅者把已入队消息发送完毕。"""
        for subscriber in list(self._subscribers.values()):
            if not subscriber.closed:
                await subscriber.queue.join()

    async def close(self) -> None:
        subscribers = list(self._subscribers.values())
        self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
        for subscriber in subscribers:
            await subscriber.wait_closed()

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {"id": item.id, "closed": item.closed, "pending": item.queue.qsize(), "dropped": item.dropped}
            for item in self._subscribers.values()
        ]
