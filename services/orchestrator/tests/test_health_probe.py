"""产物健康探测测试。"""

from __future__ import annotations

from pathlib import Path

import pytest

from verifyhub.domain.errors import ArtifactNotFoundError
from verifyhub.infra.capability.inprocess import CallableCapability
from verifyhub.infra.health.probe import HealthProbe

from helpers import EchoTool, compliant_run

ARTIFACTS = ["A.js", "B.js", "C.js", "A.js"]


def _probe(root: Path) -> HealthProbe:
    return HealthProbe(root=root, build_path="build", artifacts=ARTIFACTS)


def test_missing_root_is_disconnected(tmp_path: Path) -> None:
    report = _probe(tmp_path / "absent").check()

    assert report.connected is False
    assert report.status["compiledFilesFound"] == 0
    assert report.status["totalCompiledFiles"] == 3
    assert report.status["missing"] == ["A.js", "B.js", "C.js"]


def test_partial_artifacts_count_as_connected(tmp_path: Path) -> None:
    """只要存在至少一个产物即视为已连接，并列出缺失项。"""
    build = tmp_path / "build"
    build.mkdir()
    (build / "B.js").write_text("", encoding="utf-8")
    probe = _probe(tmp_path)

    report = probe.check()

    assert report.connected is True
    assert report.status["compiledFilesFound"] == 1
    assert report.status["missing"] == ["A.js", "C.js"]
    assert report.status["mode"] == "direct"
    assert probe.last_report is report


def test_empty_build_dir_is_disconnected(tmp_path: Path) -> None:
    (tmp_path / "build").mkdir()

    assert _probe(tmp_path).check().connected is False


def test_require_raises_for_missing_artifact(tmp_path: Path) -> None:
    probe = HealthProbe(root=tmp_path, build_path="build", artifacts=[EchoTool.artifact])
    descriptor = EchoTool().descriptor(CallableCapability(compliant_run))

    with pytest.raises(ArtifactNotFoundError) as exc_info:
        probe.require(descriptor)
    assert "npm run build" in str(exc_info.value)

    (tmp_path / "build").mkdir()
    (tmp_path / "build" / EchoTool.artifact).write_text("", encoding="utf-8")
    assert probe.require(descriptor) == tmp_path / "build" / EchoTool.artifact


@pytest.mark.asyncio
async def test_initialize_reports_without_raising(tmp_path: Path) -> None:
    report = await _probe(tmp_path / "absent").initialize(timeout_seconds=5)

    assert report is not None
    assert report.connected is False
