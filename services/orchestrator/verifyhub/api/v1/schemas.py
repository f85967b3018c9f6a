"""API 请求与响应数据模型定义，对外统一使用 camelCase 字段名。"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from verifyhub.domain.models import ExecutionOutcome, Job


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolExecuteRequest(CamelModel):
    """工具执行请求模型。"""
    tool_name: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class AsyncToolExecuteRequest(ToolExecuteRequest):
    """异步执行请求模型，可选指定作业 ID。"""
    job_id: str | None = None


class ToolResponse(CamelModel):
    """工具元数据响应模型。"""
    name: str
    artifact: str
    category: str
    description: str
    aliases: list[str]


class ToolListResponse(CamelModel):
    success: bool = True
    tools: list[ToolResponse]
    count: int
    features: dict[str, bool]
    timestamp: datetime


class ExecutionResponse(CamelModel):
    """同步执行响应模型。"""
    success: bool
    tool_name: str
    result: dict[str, Any]
    execution_time_ms: float
    mode: str = "sync"
    progressive_state_monitoring: dict[str, Any] | None = None

    @classmethod
    def from_outcome(cls, tool_name: str, outcome: ExecutionOutcome) -> ExecutionResponse:
        monitoring = None
        if outcome.success:
            monitoring = {
                "contractStateBefore": outcome.result.get("contractStateBefore"),
                "contractStateAfter": outcome.result.get("contractStateAfter"),
                "stateChanges": outcome.result.get("stateChanges"),
            }
        return cls(
            success=outcome.success,
            tool_name=tool_name,
            result=outcome.result,
            execution_time_ms=outcome.execution_time_ms,
            progressive_state_monitoring=monitoring,
        )


class JobAcceptedResponse(CamelModel):
    """异步作业受理响应模型。"""
    success: bool = True
    job_id: str
    status: str
    tool_name: str
    websocket_url: str
    message: str


class JobResponse(CamelModel):
    """作业详情响应模型。"""
    id: str
    tool_name: str
    parameters: dict[str, Any]
    status: str
    start_time: datetime
    end_time: datetime | None
    result: Any
    error: str | None
    progress: int | None
    phase: str | None
    contract_state_before: dict[str, str] | None
    contract_state_after: dict[str, str] | None

    @classmethod
    def from_job(cls, job: Job) -> JobResponse:
        return cls(
            id=job.id,
            tool_name=job.tool_name,
            parameters=dict(job.parameters),
            status=job.status.value,
            start_time=job.start_time,
            end_time=job.end_time,
            result=job.result,
            error=job.error,
            progress=job.progress,
            phase=job.phase,
            contract_state_before=dict(job.contract_state_before) if job.contract_state_before else None,
            contract_state_after=dict(job.contract_state_after) if job.contract_state_after else None,
        )


class JobListResponse(CamelModel):
    jobs: list[JobResponse]
    total: int
    active: int


class ClearJobsResponse(CamelModel):
    success: bool = True
    cleared: int
    message: str


class HealthResponse(CamelModel):
    """健康检查响应模型。"""
    status: str
    timestamp: datetime
    services: dict[str, Any]
    active_jobs: int
    websocket_connections: int
    executor_status: dict[str, Any]


class StatusResponse(CamelModel):
    server: str
    environment: str
    async_jobs_enabled: bool
    execution_timeout_seconds: float
    jobs: dict[str, int]
    websocket_connections: int
    tools_available: int
    timestamp: datetime
