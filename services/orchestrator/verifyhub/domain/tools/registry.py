"""工具目录：管理工具名到能力绑定的静态注册表，提供查询与描述信息汇总。"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from verifyhub.domain.errors import UnknownToolError
from verifyhub.domain.models import ToolDescriptor
from verifyhub.domain.tools.base import BaseTool, Capability
from verifyhub.domain.tools.business import BusinessProcessIntegrityTool, BusinessStandardIntegrityTool
from verifyhub.domain.tools.composed import composed_tools
from verifyhub.domain.tools.identity import CorporateRegistrationTool, EximVerificationTool, GleifVerificationTool
from verifyhub.domain.tools.risk import AdvancedRiskTool, Basel3RiskTool, StablecoinReservesTool, actus_verifier_tools

CapabilityFactory = Callable[[BaseTool], Capability]


def default_tools(*, actus_url: str) -> list[BaseTool]:
    """返回内置的全部验证工具实例（顺序即对外展示顺序）。"""
    tools: list[BaseTool] = [
        GleifVerificationTool(),
        CorporateRegistrationTool(),
        EximVerificationTool(),
        BusinessStandardIntegrityTool(),
        BusinessProcessIntegrityTool(),
    ]
    tools.extend(actus_verifier_tools(actus_url))
    tools.extend(
        [
            Basel3RiskTool(actus_url=actus_url),
            AdvancedRiskTool(actus_url=actus_url),
            StablecoinReservesTool(actus_url=actus_url),
        ]
    )
    tools.extend(composed_tools())
    return tools


class ToolCatalog:
    """工具目录，构建完成后只读；名称大小写敏感。"""
    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._aliases: dict[str, str] = {}

    @classmethod
    def from_tools(cls, tools: Iterable[BaseTool], capability_factory: CapabilityFactory) -> ToolCatalog:
        """批量注册工具，每个工具通过工厂绑定能力。"""
        catalog = cls()
        for tool in tools:
            catalog.register(tool, capability_factory(tool))
        return catalog

    def register(self, tool: BaseTool, capability: Capability | None) -> ToolDescriptor:
        """注册工具并绑定能力；缺少能力或名称重复时立即失败。"""
        if capability is None:
            raise ValueError(f"tool has no capability binding: {tool.name}")
        if tool.name in self._tools:
            raise ValueError(f"duplicate tool name: {tool.name}")
        for alias in tool.aliases:
            if alias in self._aliases:
                raise ValueError(f"duplicate tool alias: {alias}")
        descriptor = tool.descriptor(capability)
        self._tools[tool.name] = descriptor
        for alias in tool.aliases:
            self._aliases[alias] = tool.name
        return descriptor

    def ensure_complete(self, required: Iterable[str]) -> None:
        missing = [name for name in required if name not in self._tools]
        if missing:
            raise ValueError(f"tool catalog is missing bindings for: {', '.join(missing)}")

    def get(self, name: str) -> ToolDescriptor:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name, self.names()) from None

    def resolve_alias(self, alias: str) -> ToolDescriptor:
        name = self._aliases.get(alias)
        if name is None:
            raise UnknownToolError(alias, self.names())
        return self._tools[name]

    def names(self) -> list[str]:
        return list(self._tools)

    def all(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def artifacts(self) -> list[str]:
        """去重后的编译产物列表，保持注册顺序。"""
        return list(dict.fromkeys(item.artifact for item in self._tools.values()))

    def list_descriptors(self) -> list[dict[str, object]]:
        return [item.metadata() for item in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
