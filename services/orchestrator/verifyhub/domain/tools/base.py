"""工具抽象基类与能力协议，约束参数归一化、命令行参数与目录描述接口。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from verifyhub.domain.models import ToolDescriptor
from verifyhub.domain.stream import DiagnosticStream

DEFAULT_NETWORK = "TESTNET"


@runtime_checkable
class Capability(Protocol):
    """外部验证能力协议：执行一次调用，诊断输出写入给定的流。"""

    async def execute(self, parameters: dict[str, Any], stream: DiagnosticStream) -> Mapping[str, Any]:
        """返回 {success: bool, result: Any}。"""
        ...


def first_present(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """按顺序取第一个非空参数；None 与空字符串视为缺失。"""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return default


class BaseTool(ABC):
    """工具抽象基类，定义各验证工具必须实现的统一接口。"""
    name: str
    artifact: str
    aliases: tuple[str, ...] = ()
    description: str = ""
    category: str = "general"

    @abstractmethod
    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """将调用方参数补全为工具可直接使用的参数；必须是纯函数。"""

    @abstractmethod
    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        """将归一化后的参数转换为编译产物的命令行参数。"""

    def descriptor(self, capability: Capability) -> ToolDescriptor:
        """绑定能力并返回目录条目。"""
        return ToolDescriptor(
            name=self.name,
            artifact=self.artifact,
            category=self.category,
            description=self.description,
            aliases=self.aliases,
            capability=capability,
            normalize=self.normalize_parameters,
        )

    @staticmethod
    def _merge(raw: Mapping[str, Any], **resolved: Any) -> dict[str, Any]:
        """保留调用方原始参数，并覆盖为归一化后的取值。"""
        merged = dict(raw)
        merged.update(resolved)
        return merged

    @staticmethod
    def _args(*values: Any) -> list[str]:
        """丢弃缺失值后转换为字符串参数列表。"""
        return [str(item) for item in values if item is not None and item != ""]
