"""作业管理门面：创建异步作业、驱动执行、记录状态并通过广播器推送生命周期事件。"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import Any
from uuid import uuid4

from verifyhub.application.dispatcher import ToolDispatcher
from verifyhub.config import Settings
from verifyhub.domain.enums import ALLOWED_TRANSITIONS, EventType, JobStatus
from verifyhub.domain.errors import AsyncExecutionDisabledError, DuplicateJobError
from verifyhub.domain.models import ExecutionOutcome, Job, LifecycleEvent, isoformat, utc_now
from verifyhub.infra.broadcast.broadcaster import EventBroadcaster
from verifyhub.infra.logging.context import bind_log_context

logger = logging.getLogger(__name__)

ASYNC_RESULT_MODE = "async"


def generate_job_id() -> str:
    """生成形如 job_<毫秒时间戳>_<随机串> 的作业 ID。"""
    return f"job_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


class JobManager:
    """作业注册表与执行驱动。

    - 注册表只在事件循环线程中修改，记录整体替换，读者不会看到半更新状态；
    - 每次状态变化恰好发布一次 job_update；
    - 终态记录不再变化，只能通过 clear_completed_jobs 移除。
    """

    def __init__(
        self,
        *,
        settings: Settings,
        dispatcher: ToolDispatcher,
        broadcaster: EventBroadcaster,
        id_factory: Callable[[], str] = generate_job_id,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._broadcaster = broadcaster
        self._id_factory = id_factory
        self._jobs: dict[str, Job] = {}
        self._issued_ids: set[str] = set()
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def async_enabled(self) -> bool:
        return self._settings.enable_async_jobs

    def start_job(
        self,
        tool_name: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        job_id: str | None = None,
    ) -> Job:
        """创建 pending 作业并立即返回，执行在独立任务中进行。

        未知工具由调度器在创建作业前拒绝（UnknownToolError），不会留下作业记录。
        """
        if not self._settings.enable_async_jobs:
            raise AsyncExecutionDisabledError("Async job execution is disabled")
        self._dispatcher.resolve(tool_name)
        loop = asyncio.get_running_loop()

        job = Job.create(job_id=self._claim_id(job_id), tool_name=tool_name, parameters=parameters or {})
        self._jobs[job.id] = job
        self._publish_job(job)

        task = loop.create_task(self._drive(job.id), name=f"job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t: self._on_task_done(job.id, t))
        logger.info(
            "job accepted",
            extra={"event": "job.accepted", "job_id": job.id, "tool_name": tool_name},
        )
        return job

    async def execute_sync(self, tool_name: str, parameters: Mapping[str, Any] | None = None) -> ExecutionOutcome:
        """同步执行工具并广播 sync_execution_* 事件；不创建作业记录。"""
        self._dispatcher.resolve(tool_name)
        params = dict(parameters or {})
        self._broadcaster.publish(
            LifecycleEvent(
                type=EventType.sync_execution_started,
                tool_name=tool_name,
                data={"parameters": params},
                message=f"Synchronous execution of {tool_name} started",
            )
        )
        try:
            outcome = await self._dispatcher.execute_tool(tool_name, params, listener=self._broadcaster.publish)
        except Exception as exc:
            self._broadcaster.publish(
                LifecycleEvent(type=EventType.sync_execution_failed, tool_name=tool_name, error=str(exc))
            )
            raise
        if outcome.success:
            self._broadcaster.publish(
                LifecycleEvent(
                    type=EventType.sync_execution_completed,
                    tool_name=tool_name,
                    result=outcome.to_dict(),
                    extra={
                        "contractStateBefore": outcome.result.get("contractStateBefore"),
                        "contractStateAfter": outcome.result.get("contractStateAfter"),
                    },
                )
            )
        else:
            self._broadcaster.publish(
                LifecycleEvent(type=EventType.sync_execution_failed, tool_name=tool_name, error=outcome.error)
            )
        return outcome

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def get_all_jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def get_active_jobs(self) -> list[Job]:
        return [job for job in self._jobs.values() if not job.is_terminal]

    def clear_completed_jobs(self) -> int:
        """移除全部终态作业（completed 与 failed），返回移除数量。"""
        terminal = [job_id for job_id, job in self._jobs.items() if job.is_terminal]
        for job_id in terminal:
            del self._jobs[job_id]
        logger.info("terminal jobs cleared", extra={"event": "job.cleared", "payload_preview": {"count": len(terminal)}})
        return len(terminal)

    def status_summary(self) -> dict[str, int]:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return {
            "totalJobs": len(self._jobs),
            "activeJobs": counts[JobStatus.pending] + counts[JobStatus.running],
            "completedJobs": counts[JobStatus.completed],
            "failedJobs": counts[JobStatus.failed],
        }

    async def wait_for(self, job_id: str, timeout: float | None = None) -> Job | None:
        """等待作业驱动任务结束并返回最终记录。"""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self._jobs.get(job_id)

    async def _drive(self, job_id: str) -> None:
        job = self._jobs[job_id]
        with bind_log_context(job_id=job_id, tool_name=job.tool_name):
            started = time.perf_counter()
            try:
                self._transition(job_id, status=JobStatus.running, progress=0)
                outcome = await self._dispatcher.execute_tool(
                    job.tool_name,
                    job.parameters,
                    job_id=job_id,
                    listener=self._relay,
                )
                if outcome.success:
                    self._complete(job_id, outcome)
                else:
                    self._fail(job_id, outcome.error or "tool execution failed")
            except asyncio.CancelledError:
                self._fail(job_id, "job task cancelled")
                raise
            except Exception as exc:
                logger.exception(
                    "job task crashed",
                    extra={
                        "event": "job.crashed",
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "error_type": type(exc).__name__,
                    },
                )
                self._fail(job_id, str(exc) or type(exc).__name__)

    def _complete(self, job_id: str, outcome: ExecutionOutcome) -> None:
        completed_at = utc_now()
        result = {
            **outcome.to_dict(),
            "jobId": job_id,
            "completedAt": isoformat(completed_at),
            "mode": ASYNC_RESULT_MODE,
        }
        before = outcome.result.get("contractStateBefore")
        after = outcome.result.get("contractStateAfter")
        current = self._jobs[job_id]
        job = self._transition(
            job_id,
            status=JobStatus.completed,
            result=result,
            progress=100,
            end_time=completed_at,
            contract_state_before=MappingProxyType(dict(before)) if before else current.contract_state_before,
            contract_state_after=MappingProxyType(dict(after)) if after else current.contract_state_after,
        )
        if job is not None:
            logger.info(
                "job completed",
                extra={"event": "job.completed", "duration_ms": outcome.execution_time_ms},
            )

    def _fail(self, job_id: str, message: str) -> None:
        job = self._transition(job_id, status=JobStatus.failed, error=message, end_time=utc_now())
        if job is not None:
            logger.warning("job failed", extra={"event": "job.failed", "error": message})

    def _transition(self, job_id: str, **changes: Any) -> Job | None:
        """整体替换作业记录；非法状态迁移与终态修改被拒绝并返回 None。"""
        current = self._jobs.get(job_id)
        if current is None:
            return None
        new_status: JobStatus = changes.get("status", current.status)
        status_changed = new_status is not current.status
        if status_changed and new_status not in ALLOWED_TRANSITIONS[current.status]:
            logger.warning(
                "illegal job status transition ignored",
                extra={"event": "job.transition.rejected", "op": f"{current.status.value}->{new_status.value}"},
            )
            return None
        if not status_changed and current.is_terminal:
            return None
        updated = replace(current, **changes)
        self._jobs[job_id] = updated
        if status_changed:
            self._publish_job(updated)
        return updated

    def _relay(self, event: LifecycleEvent) -> None:
        """转发调度器事件，并用阶段与状态快照标注作业。"""
        try:
            job_id = event.job_id
            job = self._jobs.get(job_id) if job_id else None
            if job is not None and not job.is_terminal:
                if event.type is EventType.phase_update:
                    progress = max(job.progress or 0, event.progress or 0)
                    self._transition(job.id, phase=event.phase, progress=progress)
                elif event.type is EventType.before_state_captured and event.data:
                    self._transition(job.id, contract_state_before=MappingProxyType(dict(event.data)))
                elif event.type is EventType.after_state_captured and event.data:
                    self._transition(job.id, contract_state_after=MappingProxyType(dict(event.data)))
            self._broadcaster.publish(event)
        except Exception as exc:
            logger.error(
                "event relay failed",
                extra={
                    "event": "job.relay.failed",
                    "job_id": event.job_id,
                    "op": event.type.value,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def _publish_job(self, job: Job) -> None:
        self._broadcaster.publish(
            LifecycleEvent(
                type=EventType.job_update,
                job_id=job.id,
                tool_name=job.tool_name,
                status=job.status.value,
                progress=job.progress,
                phase=job.phase,
                result=job.result,
                error=job.error,
            )
        )

    def _claim_id(self, requested: str | None) -> str:
        if requested is not None:
            if requested in self._issued_ids:
                raise DuplicateJobError(f"job id already used: {requested}")
            self._issued_ids.add(requested)
            return requested
        job_id = self._id_factory()
        while job_id in self._issued_ids:
            job_id = self._id_factory()
        self._issued_ids.add(job_id)
        return job_id

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "job task ended with unhandled error",
                extra={"event": "job.task.failed", "job_id": job_id, "error_type": type(exc).__name__, "error": str(exc)},
            )
