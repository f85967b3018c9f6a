"""领域数据结构定义：作业记录、生命周期事件、工具描述与执行结果等值对象。"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from verifyhub.domain.enums import EventType, JobStatus

if TYPE_CHECKING:
    from verifyhub.domain.tools.base import Capability


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class Job:
    """作业记录；不可变，每次状态变化整体替换，读者总能看到完整快照。"""
    id: str
    tool_name: str
    parameters: Mapping[str, Any]
    status: JobStatus
    start_time: datetime
    end_time: datetime | None = None
    result: Any = None
    error: str | None = None
    progress: int | None = None
    phase: str | None = None
    contract_state_before: Mapping[str, str] | None = None
    contract_state_after: Mapping[str, str] | None = None

    @classmethod
    def create(cls, *, job_id: str, tool_name: str, parameters: Mapping[str, Any]) -> Job:
        return cls(
            id=job_id,
            tool_name=tool_name,
            parameters=MappingProxyType(dict(parameters)),
            status=JobStatus.pending,
            start_time=utc_now(),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """转换为对外 JSON 结构（camelCase）。"""
        return {
            "id": self.id,
            "toolName": self.tool_name,
            "parameters": dict(self.parameters),
            "status": self.status.value,
            "startTime": isoformat(self.start_time),
            "endTime": isoformat(self.end_time),
            "result": self.result,
            "error": self.error,
            "progress": self.progress,
            "phase": self.phase,
            "contractStateBefore": dict(self.contract_state_before) if self.contract_state_before else None,
            "contractStateAfter": dict(self.contract_state_after) if self.contract_state_after else None,
        }


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """广播给订阅者的生命周期事件。"""
    type: EventType
    job_id: str | None = None
    tool_name: str | None = None
    status: str | None = None
    progress: int | None = None
    phase: str | None = None
    message: str | None = None
    data: Any = None
    result: Any = None
    error: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_wire(self) -> dict[str, Any]:
        """序列化为线上格式，省略空字段。"""
        payload: dict[str, Any] = {"type": self.type.value}
        optional = {
            "jobId": self.job_id,
            "toolName": self.tool_name,
            "status": self.status,
            "progress": self.progress,
            "phase": self.phase,
            "message": self.message,
            "data": self.data,
            "result": self.result,
            "error": self.error,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        payload.update(self.extra)
        payload["timestamp"] = isoformat(self.timestamp)
        return payload


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """工具目录条目：名称、编译产物、绑定的能力与参数归一化规则。"""
    name: str
    artifact: str
    category: str
    description: str
    aliases: tuple[str, ...]
    capability: Capability
    normalize: Callable[[Mapping[str, Any]], dict[str, Any]]

    def metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "artifact": self.artifact,
            "category": self.category,
            "description": self.description,
            "aliases": list(self.aliases),
        }


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """单次工具调用的统一结果结构。"""
    success: bool
    result: dict[str, Any]
    execution_time_ms: float

    @property
    def error(self) -> str | None:
        if self.success:
            return None
        return self.result.get("error")

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "executionTimeMs": self.execution_time_ms,
        }


@dataclass(frozen=True, slots=True)
class HealthReport:
    """编译产物健康探测结果。"""
    connected: bool
    status: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"connected": self.connected, "status": self.status}
