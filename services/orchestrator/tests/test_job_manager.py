"""作业管理回归测试：覆盖即时返回、状态单调、ID 唯一、失败收敛与终态清理。"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from verifyhub.application.job_manager import JobManager, generate_job_id
from verifyhub.config import Settings
from verifyhub.domain.enums import JobStatus
from verifyhub.domain.errors import AsyncExecutionDisabledError, DuplicateJobError, UnknownToolError
from verifyhub.domain.stream import DiagnosticStream
from verifyhub.infra.broadcast.broadcaster import EventBroadcaster

from helpers import RecordingTransport, compliant_run, make_dispatcher, make_settings


def _manager(settings: Settings, func=compliant_run, **kwargs: Any) -> tuple[JobManager, EventBroadcaster]:
    broadcaster = EventBroadcaster()
    manager = JobManager(
        settings=settings,
        dispatcher=make_dispatcher(settings, func),
        broadcaster=broadcaster,
        **kwargs,
    )
    return manager, broadcaster


@pytest.mark.asyncio
async def test_start_job_returns_pending_then_completes(settings: Settings) -> None:
    """提交后立即返回 pending，执行完成后记录结果、耗时与结束时间。"""
    manager, _ = _manager(settings)

    job = manager.start_job("toolA", {"subject": "acme"})

    assert job.status is JobStatus.pending
    assert job.end_time is None
    assert manager.get_job(job.id) is job

    final = await manager.wait_for(job.id, timeout=5)

    assert final is not None
    assert final.status is JobStatus.completed
    assert final.end_time is not None
    assert final.error is None
    assert final.progress == 100
    assert final.result["executionTimeMs"] > 0
    assert final.result["jobId"] == job.id
    assert final.result["mode"] == "async"
    assert final.result["result"]["result"] == {"subject": "acme"}
    assert final.contract_state_before["totalCompaniesTracked"] == "7"
    assert final.contract_state_after["totalCompaniesTracked"] == "8"
    assert final.phase == "execution_completing"
    assert dict(final.parameters) == {"subject": "acme"}


@pytest.mark.asyncio
async def test_status_updates_are_monotonic_and_published_once(settings: Settings) -> None:
    manager, broadcaster = _manager(settings)
    transport = RecordingTransport()
    broadcaster.subscribe(transport)

    job = manager.start_job("toolA", {})
    await manager.wait_for(job.id, timeout=5)
    await broadcaster.flush()

    updates = [item["status"] for item in transport.messages if item["type"] == "job_update"]
    assert updates == ["pending", "running", "completed"]
    assert all(item.get("jobId") == job.id for item in transport.messages)

    types = transport.types()
    assert types.index("execution_started") < types.index("before_state_captured")
    assert types.index("after_state_captured") < types.index("execution_completed")
    assert types[-1] == "job_update"

    progress = [item["progress"] for item in transport.messages if item["type"] == "phase_update"]
    assert progress == sorted(progress)


@pytest.mark.asyncio
async def test_unknown_tool_creates_no_job(settings: Settings) -> None:
    manager, broadcaster = _manager(settings)
    transport = RecordingTransport()
    broadcaster.subscribe(transport)

    with pytest.raises(UnknownToolError):
        manager.start_job("does-not-exist", {})
    await broadcaster.flush()

    assert manager.get_all_jobs() == []
    assert transport.messages == []


@pytest.mark.asyncio
async def test_capability_failure_marks_job_failed(settings: Settings) -> None:
    def broken_run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        raise RuntimeError("prover crashed")

    manager, _ = _manager(settings, broken_run)

    job = manager.start_job("toolA", {})
    final = await manager.wait_for(job.id, timeout=5)

    assert final.status is JobStatus.failed
    assert final.error == "prover crashed"
    assert final.result is None
    assert final.end_time is not None


@pytest.mark.asyncio
async def test_unexpected_error_in_task_still_terminates(settings: Settings) -> None:
    """任务内部出现非预期异常时作业收敛为 failed，不会卡在 running。"""

    class ExplodingDispatcher:
        def resolve(self, tool_name: str) -> None:
            return None

        async def execute_tool(self, *args: Any, **kwargs: Any) -> None:
            raise KeyError("extractor bug")

    manager = JobManager(settings=settings, dispatcher=ExplodingDispatcher(), broadcaster=EventBroadcaster())

    job = manager.start_job("toolA", {})
    final = await manager.wait_for(job.id, timeout=5)

    assert final.status is JobStatus.failed
    assert "extractor bug" in final.error
    assert manager.get_active_jobs() == []


@pytest.mark.asyncio
async def test_job_ids_are_unique(settings: Settings) -> None:
    manager, _ = _manager(settings)

    jobs = [manager.start_job("toolA", {}) for _ in range(50)]
    await asyncio.gather(*(manager.wait_for(job.id, timeout=5) for job in jobs))

    ids = [job.id for job in jobs]
    assert len(set(ids)) == 50
    assert all(item.startswith("job_") for item in ids)
    assert [job.id for job in manager.get_all_jobs()] == ids


@pytest.mark.asyncio
async def test_id_factory_collisions_are_retried(settings: Settings) -> None:
    generated = iter(["job_1", "job_1", "job_2"])
    manager, _ = _manager(settings, id_factory=lambda: next(generated))

    first = manager.start_job("toolA", {})
    second = manager.start_job("toolA", {})

    assert (first.id, second.id) == ("job_1", "job_2")
    await asyncio.gather(manager.wait_for(first.id, timeout=5), manager.wait_for(second.id, timeout=5))


@pytest.mark.asyncio
async def test_explicit_job_id_cannot_be_reused(settings: Settings) -> None:
    """已签发的 ID（包括已清理的）不能再次使用。"""
    manager, _ = _manager(settings)

    job = manager.start_job("toolA", {}, job_id="job_custom")
    await manager.wait_for(job.id, timeout=5)
    manager.clear_completed_jobs()

    with pytest.raises(DuplicateJobError):
        manager.start_job("toolA", {}, job_id="job_custom")


@pytest.mark.asyncio
async def test_clear_completed_keeps_active_jobs(settings: Settings) -> None:
    release = asyncio.Event()

    async def gated_run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        if parameters.get("wait"):
            await release.wait()
        return {"success": True, "result": None}

    manager, _ = _manager(settings, gated_run)
    done = manager.start_job("toolA", {})
    blocked = manager.start_job("toolA", {"wait": True})
    await manager.wait_for(done.id, timeout=5)

    cleared = manager.clear_completed_jobs()

    assert cleared == 1
    assert manager.get_job(done.id) is None
    assert [job.id for job in manager.get_active_jobs()] == [blocked.id]

    release.set()
    final = await manager.wait_for(blocked.id, timeout=5)
    assert final.status is JobStatus.completed
    assert manager.clear_completed_jobs() == 1
    assert manager.get_all_jobs() == []


@pytest.mark.asyncio
async def test_async_disabled_rejects_submission(tmp_path) -> None:
    manager, _ = _manager(make_settings(tmp_path, enable_async_jobs=False))

    with pytest.raises(AsyncExecutionDisabledError):
        manager.start_job("toolA", {})
    assert manager.get_all_jobs() == []


@pytest.mark.asyncio
async def test_execute_sync_publishes_sync_events(settings: Settings) -> None:
    manager, broadcaster = _manager(settings)
    transport = RecordingTransport()
    broadcaster.subscribe(transport)

    outcome = await manager.execute_sync("toolA", {"subject": "acme"})
    await broadcaster.flush()

    assert outcome.success is True
    types = transport.types()
    assert types[0] == "sync_execution_started"
    assert types[-1] == "sync_execution_completed"
    assert transport.messages[-1]["contractStateAfter"]["globalComplianceScore"] == "85"
    assert manager.get_all_jobs() == []


def test_generate_job_id_format() -> None:
    prefix, millis, suffix = generate_job_id().split("_")
    assert prefix == "job"
    assert millis.isdigit()
    assert len(suffix) == 9
