"""工具调度测试：覆盖未知工具、产物缺失、软超时、能力异常与成功结果结构。"""

from __future__ import annotations

import asyncio
import threading
from typing import Any

import pytest

from verifyhub.config import Settings
from verifyhub.domain.enums import EventType
from verifyhub.domain.errors import UnknownToolError
from verifyhub.domain.models import LifecycleEvent
from verifyhub.domain.stream import DiagnosticStream

from helpers import compliant_run, make_dispatcher, make_settings


@pytest.mark.asyncio
async def test_unknown_tool_lists_catalog(settings: Settings) -> None:
    dispatcher = make_dispatcher(settings)
    events: list[LifecycleEvent] = []

    with pytest.raises(UnknownToolError) as exc_info:
        await dispatcher.execute_tool("does-not-exist", {}, listener=events.append)

    assert "toolA" in str(exc_info.value)
    assert exc_info.value.available == ["toolA"]
    assert events == []


@pytest.mark.asyncio
async def test_missing_artifact_returns_uniform_failure(settings: Settings) -> None:
    """产物缺失时返回统一失败结构，并提示先执行构建。"""
    dispatcher = make_dispatcher(settings, artifact_present=False)
    events: list[LifecycleEvent] = []

    outcome = await dispatcher.execute_tool("toolA", {}, listener=events.append)

    assert outcome.success is False
    assert outcome.result["status"] == "failed"
    assert outcome.result["errorType"] == "artifact_not_found"
    assert "ToolA.js" in outcome.result["error"]
    assert "build" in outcome.result["error"]
    assert outcome.result["timestamp"]
    assert [event.type for event in events] == [EventType.execution_started, EventType.execution_failed]


@pytest.mark.asyncio
async def test_timeout_is_soft_deadline(tmp_path) -> None:
    """超时后调度立即返回失败，但底层调用继续执行直到自然结束。"""
    finished = asyncio.Event()

    async def slow_run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        await asyncio.sleep(0.2)
        finished.set()
        return {"success": True, "result": None}

    dispatcher = make_dispatcher(make_settings(tmp_path, execution_timeout_seconds=0.05), slow_run)

    outcome = await dispatcher.execute_tool("toolA", {})

    assert outcome.success is False
    assert outcome.result["errorType"] == "timeout"
    assert "timeout" in outcome.result["error"].lower()
    assert not finished.is_set()
    await asyncio.wait_for(finished.wait(), timeout=2)


@pytest.mark.asyncio
async def test_capability_error_keeps_message(settings: Settings) -> None:
    def broken_run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        stream.log("contacting registry")
        raise ValueError("registry unreachable")

    dispatcher = make_dispatcher(settings, broken_run)

    outcome = await dispatcher.execute_tool("toolA", {})

    assert outcome.success is False
    assert outcome.error == "registry unreachable"
    assert outcome.result["errorType"] == "capability_error"


@pytest.mark.asyncio
async def test_success_wraps_result_with_state_monitoring(settings: Settings) -> None:
    """成功结果包含归一化参数、前后快照、差值与耗时。"""
    received: dict[str, Any] = {}

    def run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        received.update(parameters)
        return compliant_run(parameters, stream)

    dispatcher = make_dispatcher(settings, run)
    events: list[LifecycleEvent] = []

    outcome = await dispatcher.execute_tool("toolA", {"extra": 1}, job_id="job_x", listener=events.append)

    assert outcome.success is True
    assert outcome.execution_time_ms > 0
    assert received == {"extra": 1, "subject": "anonymous"}
    result = outcome.result
    assert result["status"] == "completed"
    assert result["result"] == {"subject": "anonymous"}
    assert result["verificationResult"]["success"] is True
    assert result["contractStateBefore"]["totalCompaniesTracked"] == "7"
    assert result["contractStateAfter"]["companiesRootHash"] == "updated-hash"
    assert result["stateChanges"] == {
        "totalCompaniesChanged": 1,
        "compliantCompaniesChanged": 1,
        "globalScoreChanged": 5,
    }
    assert "Verification successful" in result["output"]
    assert result["extractionWarnings"] == []

    types = [event.type for event in events]
    assert types[0] is EventType.execution_started
    assert types[-1] is EventType.execution_completed
    assert EventType.before_state_captured in types
    assert EventType.after_state_captured in types
    assert all(event.job_id == "job_x" for event in events)
    assert events[-1].extra["contractStateBefore"]["globalComplianceScore"] == "80"


@pytest.mark.asyncio
async def test_events_from_worker_thread_reach_listener_on_loop(settings: Settings) -> None:
    """同步能力在线程中运行，事件仍在事件循环线程中按顺序交付。"""
    dispatcher = make_dispatcher(settings)
    loop_thread = threading.get_ident()
    calls: list[tuple[int, EventType]] = []

    await dispatcher.execute_tool("toolA", {}, listener=lambda event: calls.append((threading.get_ident(), event.type)))

    assert {ident for ident, _ in calls} == {loop_thread}
    types = [event_type for _, event_type in calls]
    assert types.index(EventType.before_state_captured) < types.index(EventType.after_state_captured)
    assert types[-1] is EventType.execution_completed


@pytest.mark.asyncio
async def test_missing_snapshot_is_reported_not_failed(settings: Settings) -> None:
    def quiet_run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        stream.log("Verification successful")
        return {"success": True, "result": "ok"}

    dispatcher = make_dispatcher(settings, quiet_run)

    outcome = await dispatcher.execute_tool("toolA", {})

    assert outcome.success is True
    assert outcome.result["contractStateBefore"] is None
    assert outcome.result["contractStateAfter"] is None
    assert len(outcome.result["extractionWarnings"]) == 2
    assert outcome.result["stateChanges"]["globalScoreChanged"] is None


@pytest.mark.asyncio
async def test_concurrent_invocations_do_not_share_streams(settings: Settings) -> None:
    async def run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        for index in range(3):
            stream.log(f"{parameters['subject']} step {index}")
            await asyncio.sleep(0)
        return {"success": True, "result": None}

    dispatcher = make_dispatcher(settings, run)

    first, second = await asyncio.gather(
        dispatcher.execute_tool("toolA", {"subject": "alpha"}),
        dispatcher.execute_tool("toolA", {"subject": "beta"}),
    )

    assert "beta" not in first.result["output"]
    assert "alpha" not in second.result["output"]
