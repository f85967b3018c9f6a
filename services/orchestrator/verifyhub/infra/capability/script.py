"""编译脚本能力适配器：以子进程运行编译产物，并把输出逐行写入诊断流。"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from verifyhub.domain.stream import DiagnosticStream
from verifyhub.domain.tools.base import BaseTool

logger = logging.getLogger(__name__)

_STREAM_LIMIT_BYTES = 1024 * 1024

_FAILURE_MARKERS = ("Verification failed", "Risk threshold not met", "Compliance check failed")
_SUCCESS_MARKERS = ("Verification successful", "Proof verified", "Compliance check passed")
_PROOF_JSON_RE = re.compile(r"\{[^}]*\"proof\"[^}]*\}")
_TIMING_RE = re.compile(r"\b(\d+)\s*ms\b")
_SIZE_RE = re.compile(r"\b\d+\s*(?:bytes|kb|mb)\b", re.IGNORECASE)


def analyze_verification(stdout: str, stderr: str) -> dict[str, Any]:
    """根据输出中的约定文本判断业务验证是否通过。"""
    failed = any(marker in stdout for marker in _FAILURE_MARKERS) or "verification failed" in stderr
    passed = any(marker in stdout for marker in _SUCCESS_MARKERS)
    return {
        "success": passed and not failed,
        "zkProofGenerated": True,
        "status": "verification_passed" if passed else "verification_failed",
        "reason": (
            "Business logic verification failed"
            if failed
            else "Verification completed successfully"
        ),
    }


def extract_proof_data(stdout: str) -> dict[str, Any] | None:
    """取输出中最后一个包含 "proof" 的 JSON 对象。"""
    matches = _PROOF_JSON_RE.findall(stdout)
    if not matches:
        return None
    try:
        data = json.loads(matches[-1])
    except json.JSONDecodeError:
        logger.debug("proof data is not valid JSON", extra={"event": "capability.proof.unparseable"})
        return None
    return data if isinstance(data, dict) else None


def extract_execution_metrics(output: str) -> dict[str, Any]:
    metrics: dict[str, Any] = {}
    timings = _TIMING_RE.findall(output)
    if timings:
        metrics["timings"] = timings
    if "Proof generated successfully" in output:
        metrics["proofGenerated"] = True
    if "Circuit compiled" in output:
        metrics["circuitCompiled"] = True
    if "Verification successful" in output:
        metrics["verificationSuccessful"] = True
    if "GLEIF data fetched" in output:
        metrics["gleifDataFetched"] = True
    sizes = _SIZE_RE.findall(output)
    if sizes:
        metrics["sizeMetrics"] = sizes
    return metrics


async def _pump_lines(reader: asyncio.StreamReader | None, sink: Callable[[str], None]) -> None:
    if reader is None:
        return
    async for raw in reader:
        sink(raw.decode("utf-8", errors="replace").rstrip("\n"))


class ScriptCapability:
    """运行 ``<runtime> <flags> <script> <args...>``；退出码非 0 视为能力失败。

    超时由调度器负责；这里不主动终止子进程。
    """

    def __init__(
        self,
        *,
        tool: BaseTool,
        script_path: Path,
        working_dir: Path,
        command: Sequence[str] = ("node",),
        env: Mapping[str, str] | None = None,
        process_factory: Callable[..., Awaitable[asyncio.subprocess.Process]] | None = None,
    ) -> None:
        self._tool = tool
        self._script_path = script_path
        self._working_dir = working_dir
        self._command = tuple(command)
        self._env = dict(env or {})
        self._process_factory = process_factory or asyncio.create_subprocess_exec

    @property
    def script_path(self) -> Path:
        return self._script_path

    def build_command(self, parameters: Mapping[str, Any]) -> list[str]:
        return [*self._command, str(self._script_path), *self._tool.build_arguments(parameters)]

    async def execute(self, parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        argv = self.build_command(parameters)
        started = time.perf_counter()
        logger.info(
            "spawning tool script",
            extra={"event": "capability.script.spawned", "op": self._tool.name, "payload_preview": argv},
        )
        process = await self._process_factory(
            *argv,
            cwd=str(self._working_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env={**os.environ, "NODE_ENV": "production", **self._env},
            limit=_STREAM_LIMIT_BYTES,
        )
        await asyncio.gather(
            _pump_lines(process.stdout, stream.write_line),
            _pump_lines(process.stderr, stream.error_line),
        )
        exit_code = await process.wait()
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        stdout, stderr = stream.stdout, stream.stderr
        if exit_code != 0:
            logger.warning(
                "tool script exited with failure",
                extra={
                    "event": "capability.script.failed",
                    "op": self._tool.name,
                    "duration_ms": duration_ms,
                    "status_code": exit_code,
                },
            )
            raise RuntimeError(f"Script failed with exit code {exit_code}: {stderr or stdout or 'No output'}")

        logger.info(
            "tool script finished",
            extra={"event": "capability.script.succeeded", "op": self._tool.name, "duration_ms": duration_ms},
        )
        verification = analyze_verification(stdout, stderr)
        result: dict[str, Any] = {
            "verificationResult": verification,
            "executionStrategy": "Direct execution of compiled verification programs",
            "completedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "executionMetrics": extract_execution_metrics(stdout),
        }
        proof_data = extract_proof_data(stdout)
        if proof_data is not None:
            result["proofData"] = proof_data
            if "proof" in proof_data:
                result["zkProof"] = proof_data["proof"]
        return {"success": verification["success"], "result": result}
