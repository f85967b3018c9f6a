"""编译产物健康探测：检查工具根目录与各编译产物是否就绪。"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from pathlib import Path

from verifyhub.domain.errors import ArtifactNotFoundError
from verifyhub.domain.models import HealthReport, ToolDescriptor

logger = logging.getLogger(__name__)


class HealthProbe:
    """健康探测器；只读文件系统，不修改任何产物。"""
    def __init__(self, *, root: Path, build_path: str, artifacts: Iterable[str], mode: str = "direct") -> None:
        self._root = root
        self._build_dir = root / build_path
        self._build_path = build_path
        self._artifacts = list(dict.fromkeys(artifacts))
        self._mode = mode
        self._last_report: HealthReport | None = None

    @property
    def build_dir(self) -> Path:
        return self._build_dir

    @property
    def last_report(self) -> HealthReport | None:
        return self._last_report

    def artifact_path(self, artifact: str) -> Path:
        return self._build_dir / artifact

    def require(self, descriptor: ToolDescriptor) -> Path:
        """返回工具产物路径；不存在时抛出 ArtifactNotFoundError。"""
        path = self.artifact_path(descriptor.artifact)
        if not path.is_file():
            raise ArtifactNotFoundError(str(path))
        return path

    def check(self) -> HealthReport:
        """统计已存在的产物数量；根目录不存在或一个产物都没有时视为未连接。"""
        status = {
            "mode": self._mode,
            "path": str(self._root),
            "buildPath": str(self._build_dir),
            "compiledFilesFound": 0,
            "totalCompiledFiles": len(self._artifacts),
            "missing": list(self._artifacts),
        }
        if not self._root.is_dir():
            report = HealthReport(connected=False, status=status)
            self._last_report = report
            return report

        found = [name for name in self._artifacts if self.artifact_path(name).is_file()]
        status["compiledFilesFound"] = len(found)
        status["missing"] = [name for name in self._artifacts if name not in found]
        report = HealthReport(connected=len(found) > 0, status=status)
        self._last_report = report
        return report

    async def initialize(self, timeout_seconds: float) -> HealthReport | None:
        """启动时执行一次探测；超时或异常只记录日志，不阻止服务启动。"""
        started = time.perf_counter()
        try:
            report = await asyncio.wait_for(asyncio.to_thread(self.check), timeout=timeout_seconds)
        except (asyncio.TimeoutError, OSError) as exc:
            logger.warning(
                "artifact health check did not complete",
                extra={
                    "event": "health.initialize.failed",
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return None
        logger.info(
            "artifact health check finished",
            extra={
                "event": "health.initialize.succeeded",
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "payload_preview": report.status,
            },
        )
        return report
