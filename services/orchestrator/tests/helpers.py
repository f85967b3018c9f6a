"""测试辅助：桩工具、记录型传输通道、工具输出样例与调度器构造。"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from verifyhub.application.dispatcher import ToolDispatcher
from verifyhub.config import Settings
from verifyhub.domain.stream import DiagnosticStream
from verifyhub.domain.tools.base import BaseTool, first_present
from verifyhub.domain.tools.registry import ToolCatalog
from verifyhub.infra.capability.inprocess import CallableCapability, CapabilityFunc
from verifyhub.infra.health.probe import HealthProbe

BEFORE_MARKER = "📊 Smart Contract State BEFORE Verification:"
AFTER_MARKER = "📊 Smart Contract State AFTER Verification:"


class EchoTool(BaseTool):
    """测试用工具：只有一个带默认值的 subject 参数。"""
    name = "toolA"
    artifact = "ToolA.js"
    aliases = ("tool-a",)
    description = "Echo tool used in tests."
    category = "test"

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(raw, subject=first_present(raw, "subject", default="anonymous"))

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("subject"))


class RecordingTransport:
    """记录收到的消息；fail=True 时模拟已断开的客户端。"""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[dict[str, Any]] = []
        self.received = asyncio.Event()

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("client went away")
        self.messages.append(json.loads(data))
        self.received.set()

    def types(self) -> list[str]:
        return [item["type"] for item in self.messages]


def emit_registry_report(stream: DiagnosticStream, *, before: tuple[int, int, int], after: tuple[int, int, int]) -> None:
    """按真实工具的输出格式打印合约前后状态。"""
    stream.log("Initializing compliance registry...")
    stream.log(BEFORE_MARKER)
    stream.log(f"  Total Companies: {before[0]}")
    stream.log(f"  Compliant Companies: {before[1]}")
    stream.log(f"  Global Compliance Score: {before[2]}")
    stream.log("Generating proof...")
    stream.log(AFTER_MARKER)
    stream.log(f"  Total Companies: {after[0]}")
    stream.log(f"  Compliant Companies: {after[1]}")
    stream.log(f"  Global Compliance Score: {after[2]}")
    stream.log("Verification successful")


def compliant_run(parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
    emit_registry_report(stream, before=(7, 5, 80), after=(8, 6, 85))
    return {"success": True, "result": {"subject": parameters["subject"]}}


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "tool_artifact_root": tmp_path,
        "tool_build_path": "build",
        "log_dir": tmp_path / "logs",
        "execution_timeout_seconds": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


def make_dispatcher(
    settings: Settings,
    func: CapabilityFunc = compliant_run,
    *,
    artifact_present: bool = True,
) -> ToolDispatcher:
    catalog = ToolCatalog()
    catalog.register(EchoTool(), CallableCapability(func))
    build_dir = settings.tool_build_dir()
    build_dir.mkdir(parents=True, exist_ok=True)
    if artifact_present:
        (build_dir / EchoTool.artifact).write_text("// compiled\n", encoding="utf-8")
    probe = HealthProbe(
        root=settings.tool_artifact_root,
        build_path=settings.tool_build_path,
        artifacts=catalog.artifacts(),
    )
    return ToolDispatcher(catalog=catalog, health_probe=probe, timeout_seconds=settings.execution_timeout_seconds)
