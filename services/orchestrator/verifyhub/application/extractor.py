"""输出状态提取器：从工具的非结构化输出中解析合约执行前后的状态快照。"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from verifyhub.domain.enums import PHASE_PROGRESS, EventType, ExecutionPhase
from verifyhub.domain.errors import ExtractionWarning
from verifyhub.domain.models import LifecycleEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotField:
    """快照字段：匹配正则、写入的键名与前后差值键名。"""
    key: str
    pattern: re.Pattern[str]
    change_key: str


@dataclass(frozen=True, slots=True)
class StateCaptureProfile:
    """一组解析规则：前后标记、有序字段列表与补全默认值。

    字段顺序有语义：第一个字段负责创建快照，最后一个字段负责完成快照。
    """
    before_marker: str
    after_marker: str
    fields: tuple[SnapshotField, ...]
    before_defaults: dict[str, str] = field(default_factory=dict)
    after_defaults: dict[str, str] = field(default_factory=dict)


COMPLIANCE_REGISTRY_PROFILE = StateCaptureProfile(
    before_marker="📊 Smart Contract State BEFORE Verification:",
    after_marker="📊 Smart Contract State AFTER Verification:",
    fields=(
        SnapshotField("totalCompaniesTracked", re.compile(r"Total Companies: (\d+)"), "totalCompaniesChanged"),
        SnapshotField("compliantCompaniesCount", re.compile(r"Compliant Companies: (\d+)"), "compliantCompaniesChanged"),
        SnapshotField("globalComplianceScore", re.compile(r"Global Compliance Score: (\d+)"), "globalScoreChanged"),
    ),
    before_defaults={
        "totalVerificationsGlobal": "0",
        "registryVersion": "1",
        "companiesRootHash": "initial-hash",
    },
    after_defaults={
        "totalVerificationsGlobal": "1",
        "registryVersion": "1",
        "companiesRootHash": "updated-hash",
    },
)


class OutputStateExtractor:
    """逐行状态机；每次工具调用创建一个实例。

    阶段：idle -> before_state_capturing -> verification_process
    -> after_state_capturing -> execution_completing。
    每行依次执行：BEFORE 标记检测、BEFORE 字段解析、AFTER 标记检测、AFTER 字段解析。
    """

    def __init__(
        self,
        *,
        profile: StateCaptureProfile = COMPLIANCE_REGISTRY_PROFILE,
        job_id: str | None = None,
        tool_name: str | None = None,
    ) -> None:
        if not profile.fields:
            raise ValueError("state capture profile requires at least one field")
        self._profile = profile
        self._job_id = job_id
        self._tool_name = tool_name
        self._phase = ExecutionPhase.idle
        self._before: dict[str, str] | None = None
        self._after: dict[str, str] | None = None

    @property
    def phase(self) -> ExecutionPhase:
        return self._phase

    @property
    def before_state(self) -> dict[str, str] | None:
        return dict(self._before) if self._before is not None else None

    @property
    def after_state(self) -> dict[str, str] | None:
        return dict(self._after) if self._after is not None else None

    def feed(self, line: str) -> list[LifecycleEvent]:
        """处理一行输出，返回本行触发的事件（按发生顺序）。"""
        events: list[LifecycleEvent] = []
        profile = self._profile

        if profile.before_marker in line:
            self._enter(ExecutionPhase.before_state_capturing, events)
        if self._phase is ExecutionPhase.before_state_capturing:
            self._before = self._parse_fields(line, self._before)
            if self._is_complete_line(line, self._before):
                self._before.update(profile.before_defaults)
                events.append(self._event(EventType.before_state_captured, data=dict(self._before)))
                self._enter(ExecutionPhase.verification_process, events)

        if profile.after_marker in line:
            self._enter(ExecutionPhase.after_state_capturing, events)
        if self._phase is ExecutionPhase.after_state_capturing:
            self._after = self._parse_fields(line, self._after)
            if self._is_complete_line(line, self._after):
                self._after.update(profile.after_defaults)
                events.append(self._event(EventType.after_state_captured, data=dict(self._after)))
                self._enter(ExecutionPhase.execution_completing, events)
        return events

    def finish(self) -> list[ExtractionWarning]:
        """调用结束时检查快照是否缺失；缺失只产生告警。"""
        warnings: list[ExtractionWarning] = []
        if self._before is None:
            warnings.append(ExtractionWarning("contract state before verification was not captured"))
        if self._after is None:
            warnings.append(ExtractionWarning("contract state after verification was not captured"))
        for warning in warnings:
            logger.warning(
                str(warning),
                extra={"event": "extraction.snapshot.missing", "job_id": self._job_id, "phase": self._phase.value},
            )
        return warnings

    def state_changes(self) -> dict[str, int | None]:
        """前后快照都存在时计算各字段整数差值，否则为 None。"""
        changes: dict[str, int | None] = {}
        for item in self._profile.fields:
            changes[item.change_key] = None
            if self._before is None or self._after is None:
                continue
            try:
                changes[item.change_key] = int(self._after[item.key]) - int(self._before[item.key])
            except (KeyError, ValueError):
                changes[item.change_key] = None
        return changes

    def _parse_fields(self, line: str, snapshot: dict[str, str] | None) -> dict[str, str] | None:
        first, *rest = self._profile.fields
        match = first.pattern.search(line)
        if match and snapshot is None:
            snapshot = {first.key: match.group(1)}
        for item in rest:
            match = item.pattern.search(line)
            if match and snapshot is not None:
                snapshot[item.key] = match.group(1)
        return snapshot

    def _is_complete_line(self, line: str, snapshot: dict[str, str] | None) -> bool:
        last = self._profile.fields[-1]
        return snapshot is not None and last.pattern.search(line) is not None

    def _enter(self, phase: ExecutionPhase, events: list[LifecycleEvent]) -> None:
        self._phase = phase
        events.append(
            self._event(
                EventType.phase_update,
                phase=phase.value,
                progress=PHASE_PROGRESS[phase],
            )
        )

    def _event(self, event_type: EventType, **kwargs: Any) -> LifecycleEvent:
        return LifecycleEvent(type=event_type, job_id=self._job_id, tool_name=self._tool_name, **kwargs)
