"""工具路由器：把快捷入口别名与风险类型映射到目录中的具体工具。"""

from __future__ import annotations

from verifyhub.domain.models import ToolDescriptor
from verifyhub.domain.tools.registry import ToolCatalog
from verifyhub.domain.tools.risk import AdvancedRiskTool, Basel3RiskTool, StablecoinReservesTool

RISK_TYPE_TOOLS: dict[str, str] = {
    "advanced": AdvancedRiskTool.name,
    "basel3": Basel3RiskTool.name,
    "stablecoin": StablecoinReservesTool.name,
}
DEFAULT_RISK_TYPE = "advanced"


class ToolRouter:
    """工具路由器，优先使用显式工具名，其次别名，最后按风险类型选择。"""
    def __init__(self, catalog: ToolCatalog) -> None:
        self._catalog = catalog

    def select(
        self,
        *,
        tool_name: str | None = None,
        alias: str | None = None,
        risk_type: str | None = None,
    ) -> ToolDescriptor:
        if tool_name:
            return self._catalog.get(tool_name)
        if alias:
            return self._catalog.resolve_alias(alias)
        return self.select_risk_tool(risk_type)

    def select_risk_tool(self, risk_type: str | None) -> ToolDescriptor:
        """未知或缺省的风险类型回退到 advanced。"""
        key = (risk_type or DEFAULT_RISK_TYPE).strip().lower()
        return self._catalog.get(RISK_TYPE_TOOLS.get(key, RISK_TYPE_TOOLS[DEFAULT_RISK_TYPE]))
