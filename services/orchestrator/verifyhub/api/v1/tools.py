"""工具接口：列出工具目录、同步执行、提交异步作业与快捷验证入口。"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from verifyhub.api.v1.schemas import (
    AsyncToolExecuteRequest,
    ExecutionResponse,
    JobAcceptedResponse,
    ToolExecuteRequest,
    ToolListResponse,
    ToolResponse,
)
from verifyhub.application.container import get_job_manager, get_tool_catalog, get_tool_router
from verifyhub.application.job_manager import JobManager
from verifyhub.domain.errors import AsyncExecutionDisabledError, DuplicateJobError, UnknownToolError
from verifyhub.domain.tools.registry import ToolCatalog
from verifyhub.domain.tools.router import ToolRouter

router = APIRouter()
logger = logging.getLogger(__name__)

SHORTCUT_ALIASES = ("gleif", "corporate", "exim")


def _service() -> JobManager:
    return get_job_manager()


def _catalog() -> ToolCatalog:
    return get_tool_catalog()


def _router() -> ToolRouter:
    return get_tool_router()


def _websocket_url(request: Request) -> str:
    url = request.url_for("events_ws")
    return str(url.replace(scheme="wss" if url.scheme == "https" else "ws"))


async def _execute(manager: JobManager, tool_name: str, parameters: dict[str, Any]) -> ExecutionResponse:
    try:
        outcome = await manager.execute_sync(tool_name, parameters)
    except UnknownToolError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info(
        "sync execution finished: tool=%s success=%s duration_ms=%s",
        tool_name,
        outcome.success,
        outcome.execution_time_ms,
    )
    return ExecutionResponse.from_outcome(tool_name, outcome)


@router.get("/tools", response_model=ToolListResponse)
def list_tools(
    catalog: ToolCatalog = Depends(_catalog),
    manager: JobManager = Depends(_service),
) -> ToolListResponse:
    tools = [ToolResponse(**item) for item in catalog.list_descriptors()]
    return ToolListResponse(
        tools=tools,
        count=len(tools),
        features={
            "asyncJobs": manager.async_enabled,
            "realTimeUpdates": True,
            "progressiveStateMonitoring": True,
        },
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/tools/{tool_name}", response_model=ToolResponse)
def get_tool(tool_name: str, catalog: ToolCatalog = Depends(_catalog)) -> ToolResponse:
    try:
        return ToolResponse(**catalog.get(tool_name).metadata())
    except UnknownToolError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/tools/execute", response_model=ExecutionResponse)
async def execute_tool(
    payload: ToolExecuteRequest,
    manager: JobManager = Depends(_service),
) -> ExecutionResponse:
    """同步执行工具，执行期间的阶段事件仍会实时广播。"""
    if not payload.tool_name:
        raise HTTPException(status_code=400, detail="toolName is required")
    return await _execute(manager, payload.tool_name, payload.parameters)


@router.post("/tools/execute-async", response_model=JobAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def execute_tool_async(
    request: Request,
    payload: AsyncToolExecuteRequest,
    manager: JobManager = Depends(_service),
) -> JobAcceptedResponse:
    """提交异步作业并立即返回作业 ID，进度通过 WebSocket 推送。"""
    if not manager.async_enabled:
        raise HTTPException(status_code=400, detail="Async jobs are disabled on this server")
    if not payload.tool_name:
        raise HTTPException(status_code=400, detail="toolName is required")
    logger.info("execute_async requested: tool=%s", payload.tool_name)
    try:
        job = manager.start_job(payload.tool_name, payload.parameters, job_id=payload.job_id)
    except UnknownToolError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DuplicateJobError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except AsyncExecutionDisabledError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JobAcceptedResponse(
        job_id=job.id,
        status=job.status.value,
        tool_name=job.tool_name,
        websocket_url=_websocket_url(request),
        message="Job started. Subscribe to the websocket for real-time updates.",
    )


@router.post("/tools/risk", response_model=ExecutionResponse)
async def execute_risk(
    body: dict[str, Any] | None = Body(default=None),
    manager: JobManager = Depends(_service),
    tool_router: ToolRouter = Depends(_router),
) -> ExecutionResponse:
    """按 riskType（advanced / basel3 / stablecoin）选择风险验证工具。"""
    parameters = dict(body or {})
    descriptor = tool_router.select_risk_tool(parameters.pop("riskType", None))
    return await _execute(manager, descriptor.name, parameters)


@router.post("/tools/{alias}", response_model=ExecutionResponse)
async def execute_shortcut(
    alias: str,
    body: dict[str, Any] | None = Body(default=None),
    manager: JobManager = Depends(_service),
    tool_router: ToolRouter = Depends(_router),
) -> ExecutionResponse:
    """快捷验证入口，例如 /tools/gleif；请求体即工具参数。"""
    if alias not in SHORTCUT_ALIASES:
        raise HTTPException(status_code=404, detail=f"unknown shortcut: {alias}")
    try:
        descriptor = tool_router.select(alias=alias)
    except UnknownToolError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return await _execute(manager, descriptor.name, dict(body or {}))
