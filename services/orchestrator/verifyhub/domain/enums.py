"""领域枚举定义：统一作业状态、执行阶段与生命周期事件类型取值。"""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    """作业生命周期状态枚举。"""
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


# 状态只允许单向推进：pending -> running -> {completed | failed}。
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.pending: frozenset({JobStatus.running, JobStatus.failed}),
    JobStatus.running: frozenset({JobStatus.completed, JobStatus.failed}),
    JobStatus.completed: frozenset(),
    JobStatus.failed: frozenset(),
}


class ExecutionPhase(str, Enum):
    """工具输出解析阶段枚举。"""
    idle = "idle"
    before_state_capturing = "before_state_capturing"
    verification_process = "verification_process"
    after_state_capturing = "after_state_capturing"
    execution_completing = "execution_completing"


# 阶段对应的参考进度，仅用于展示。
PHASE_PROGRESS: dict[ExecutionPhase, int] = {
    ExecutionPhase.idle: 0,
    ExecutionPhase.before_state_capturing: 20,
    ExecutionPhase.verification_process: 45,
    ExecutionPhase.after_state_capturing: 75,
    ExecutionPhase.execution_completing: 90,
}


class EventType(str, Enum):
    """广播事件类型枚举。"""
    connection = "connection"
    job_update = "job_update"
    execution_started = "execution_started"
    phase_update = "phase_update"
    before_state_captured = "before_state_captured"
    after_state_captured = "after_state_captured"
    execution_completed = "execution_completed"
    execution_failed = "execution_failed"
    sync_execution_started = "sync_execution_started"
    sync_execution_completed = "sync_execution_completed"
    sync_execution_failed = "sync_execution_failed"
    state_monitoring_subscribed = "state_monitoring_subscribed"
