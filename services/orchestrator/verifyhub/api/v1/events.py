"""WebSocket 订阅通道：连接即注册为广播订阅者，断开即注销。"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from verifyhub.application.container import get_broadcaster
from verifyhub.config import get_settings
from verifyhub.domain.enums import EventType
from verifyhub.domain.models import LifecycleEvent

router = APIRouter()
logger = logging.getLogger(__name__)


def _connection_event() -> LifecycleEvent:
    settings = get_settings()
    return LifecycleEvent(
        type=EventType.connection,
        status="connected",
        extra={
            "server": settings.app_name,
            "features": {
                "progressiveStateMonitoring": True,
                "asyncJobs": settings.enable_async_jobs,
                "realTimeUpdates": True,
            },
        },
    )


@router.websocket("/ws", name="events_ws")
async def events_ws(websocket: WebSocket) -> None:
    """推送生命周期事件；客户端可发送 subscribe_state_monitoring 请求确认。"""
    broadcaster = get_broadcaster()
    await websocket.accept()
    subscriber = broadcaster.subscribe(websocket)
    broadcaster.send_to(subscriber, _connection_event())
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("ignoring non-JSON client message", extra={"event": "ws.message.invalid"})
                continue
            if isinstance(message, dict) and message.get("type") == "subscribe_state_monitoring":
                broadcaster.send_to(
                    subscriber,
                    LifecycleEvent(
                        type=EventType.state_monitoring_subscribed,
                        status="subscribed",
                        message="Progressive state monitoring enabled",
                    ),
                )
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(subscriber)
