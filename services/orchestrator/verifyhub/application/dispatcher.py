from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from verifyhub.application.extractor import COMPLIANCE_REGISTRY_PROFILE, OutputStateExtractor, StateCaptureProfile
from verifyhub.domain.enums import EventType, ExecutionPhase
from verifyhub.domain.errors import CapabilityError, ToolExecutionError, ToolTimeoutError, utc_now_iso
from verifyhub.domain.models import ExecutionOutcome, LifecycleEvent, ToolDescriptor
from verifyhub.domain.stream import DiagnosticStream
from verifyhub.domain.tools.registry import ToolCatalog
from verifyhub.infra.health.probe import HealthProbe
from verifyhub.infra.logging.context import bind_log_context

logger = logging.getLogger(__name__)

EventListener = Callable[[LifecycleEvent], None]


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class ToolDispatcher:
    def __init__(
        self,
        *,
        catalog: ToolCatalog,
        health_probe: HealthProbe,
        timeout_seconds: float,
        execution_mode: str = "direct",
        profile: StateCaptureProfile = COMPLIANCE_REGISTRY_PROFILE,
    ) -> None:
        self._catalog = catalog
        self._health_probe = health_probe
        self._timeout_seconds = timeout_seconds
        self._execution_mode = execution_mode
        self._profile = profile

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def get_available_tools(self) -> list[str]:
        return self._catalog.names()

    def resolve(self, tool_name: str) -> ToolDescriptor:
        return self._catalog.get(tool_name)

    async def execute_tool(
        self,
        tool_name: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        job_id: str | None = None,
        listener: EventListener | None = None,
    ) -> ExecutionOutcome:
        descriptor = self.resolve(tool_name)
        loop = asyncio.get_running_loop()
        started = time.perf_counter()

        def emit(event: LifecycleEvent) -> None:
            if listener is None:
                return
            try:
                current = asyncio.get_running_loop()
            except RuntimeError:
                current = None
            if current is loop:
                listener(event)
            else:
                loop.call_soon_threadsafe(listener, event)

        extractor = OutputStateExtractor(profile=self._profile, job_id=job_id, tool_name=tool_name)

        def observe(line: str) -> None:
            for event in extractor.feed(line):
                emit(event)

        stream = DiagnosticStream(observer=observe, label=tool_name)
        with bind_log_context(tool_name=tool_name):
            emit(
                LifecycleEvent(
                    type=EventType.execution_started,
                    job_id=job_id,
                    tool_name=tool_name,
                    phase=ExecutionPhase.idle.value,
                    message=f"Starting execution of {tool_name}",
                )
            )
            logger.info("tool execution started", extra={"event": "dispatch.started", "op": tool_name})
            try:
                normalized = descriptor.normalize(dict(parameters or {}))
                self._health_probe.require(descriptor)
                raw = await self._run_capability(descriptor, normalized, stream)
            except ToolExecutionError as exc:
                stream.close()
                outcome = ExecutionOutcome(
                    success=False,
                    result=exc.to_failure_result(),
                    execution_time_ms=_elapsed_ms(started),
                )
                logger.warning(
                    "tool execution failed",
                    extra={
                        "event": "dispatch.failed",
                        "op": tool_name,
                        "duration_ms": outcome.execution_time_ms,
                        "error_type": exc.error_type,
                        "error": str(exc),
                    },
                )
                emit(
                    LifecycleEvent(
                        type=EventType.execution_failed,
                        job_id=job_id,
                        tool_name=tool_name,
                        error=str(exc),
                        phase=extractor.phase.value,
                    )
                )
                return outcome

            stream.close()
            warnings = extractor.finish()
            elapsed_ms = _elapsed_ms(started)
            before, after = extractor.before_state, extractor.after_state
            result = self._build_result(raw, stream, extractor, elapsed_ms, [str(item) for item in warnings])
            logger.info(
                "tool execution completed",
                extra={"event": "dispatch.succeeded", "op": tool_name, "duration_ms": elapsed_ms},
            )
            emit(
                LifecycleEvent(
                    type=EventType.execution_completed,
                    job_id=job_id,
                    tool_name=tool_name,
                    phase=extractor.phase.value,
                    extra={"contractStateBefore": before, "contractStateAfter": after},
                )
            )
            return ExecutionOutcome(success=True, result=result, execution_time_ms=elapsed_ms)

    async def _run_capability(
        self,
        descriptor: ToolDescriptor,
        normalized: dict[str, Any],
        stream: DiagnosticStream,
    ) -> Mapping[str, Any]:
        task = asyncio.ensure_future(descriptor.capability.execute(normalized, stream))
        done, _pending = await asyncio.wait({task}, timeout=self._timeout_seconds)
        if task not in done:
            # 软超时：不取消底层调用，只记录其最终结果。
            task.add_done_callback(self._log_late_completion(descriptor.name))
            raise ToolTimeoutError(descriptor.name, self._timeout_seconds)
        try:
            return task.result()
        except ToolExecutionError:
            raise
        except Exception as exc:
            raise CapabilityError(str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _log_late_completion(tool_name: str) -> Callable[[asyncio.Future[Any]], None]:
        def _callback(task: asyncio.Future[Any]) -> None:
            if task.cancelled():
                outcome, error = "cancelled", None
            elif task.exception() is not None:
                outcome, error = "failed", str(task.exception())
            else:
                outcome, error = "succeeded", None
            logger.warning(
                "capability finished after timeout: %s",
                outcome,
                extra={"event": "dispatch.late_completion", "op": tool_name, "error": error},
            )

        return _callback

    def _build_result(
        self,
        raw: Mapping[str, Any],
        stream: DiagnosticStream,
        extractor: OutputStateExtractor,
        elapsed_ms: float,
        warnings: list[str],
    ) -> dict[str, Any]:
        timestamp = utc_now_iso()
        raw_result = raw.get("result")
        success = bool(raw.get("success"))
        verification = None
        if isinstance(raw_result, Mapping):
            verification = raw_result.get("verificationResult")
        if not isinstance(verification, Mapping):
            verification = {
                "success": success,
                "zkProofGenerated": success,
                "status": "verification_passed" if success else "verification_failed",
                "reason": "Verification completed successfully" if success else "Verification did not pass",
            }
        return {
            "systemExecution": {
                "status": "success",
                "executionCompleted": True,
                "scriptExecuted": True,
                "executionTime": timestamp,
                "mode": self._execution_mode,
            },
            "verificationResult": dict(verification),
            "contractStateBefore": extractor.before_state,
            "contractStateAfter": extractor.after_state,
            "stateChanges": extractor.state_changes(),
            "result": raw_result,
            "status": "completed",
            "timestamp": timestamp,
            "output": stream.stdout,
            "stderr": stream.stderr,
            "executionMode": self._execution_mode,
            "executionTime": f"{elapsed_ms}ms",
            "extractionWarnings": warnings,
        }
