"""系统接口：健康检查与服务运行状态汇总。"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from verifyhub.api.v1.schemas import HealthResponse, StatusResponse
from verifyhub.application.container import get_broadcaster, get_health_probe, get_job_manager, get_tool_catalog
from verifyhub.application.job_manager import JobManager
from verifyhub.config import get_settings
from verifyhub.infra.broadcast.broadcaster import EventBroadcaster
from verifyhub.infra.health.probe import HealthProbe

router = APIRouter()


def _service() -> JobManager:
    return get_job_manager()


def _probe() -> HealthProbe:
    return get_health_probe()


def _broadcaster() -> EventBroadcaster:
    return get_broadcaster()


@router.get("/health", response_model=HealthResponse)
async def health(
    manager: JobManager = Depends(_service),
    probe: HealthProbe = Depends(_probe),
    broadcaster: EventBroadcaster = Depends(_broadcaster),
) -> HealthResponse:
    """产物齐备时为 healthy，否则为 degraded；探测本身不修改任何状态。"""
    report = await asyncio.to_thread(probe.check)
    summary = manager.status_summary()
    return HealthResponse(
        status="healthy" if report.connected else "degraded",
        timestamp=datetime.now(timezone.utc),
        services={
            "toolExecutor": report.connected,
            "asyncJobManager": manager.async_enabled,
            "websocketServer": True,
        },
        active_jobs=summary["activeJobs"],
        websocket_connections=broadcaster.connection_count,
        executor_status=report.to_dict(),
    )


@router.get("/status", response_model=StatusResponse)
def server_status(
    manager: JobManager = Depends(_service),
    broadcaster: EventBroadcaster = Depends(_broadcaster),
) -> StatusResponse:
    settings = get_settings()
    return StatusResponse(
        server=settings.app_name,
        environment=settings.environment,
        async_jobs_enabled=manager.async_enabled,
        execution_timeout_seconds=settings.execution_timeout_seconds,
        jobs=manager.status_summary(),
        websocket_connections=broadcaster.connection_count,
        tools_available=len(get_tool_catalog()),
        timestamp=datetime.now(timezone.utc),
    )
