"""组合证明工具：三级递归组合合规验证及其预设变体。"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from verifyhub.domain.tools.base import DEFAULT_NETWORK, BaseTool, first_present

COMPOSED_ARTIFACT = "ComposedRecursiveOptim3LevelVerificationTestWithSign.js"

COMPOSED_VARIANTS: tuple[tuple[str, str], ...] = (
    ("get-Composed-Compliance-verification-with-sign", "Composed compliance verification across registries."),
    ("execute-composed-proof-full-kyc", "Composed proof: GLEIF + corporate registration + EXIM."),
    ("execute-composed-proof-financial-risk", "Composed proof: identity checks plus liquidity risk."),
    ("execute-composed-proof-business-integrity", "Composed proof: identity checks plus business data integrity."),
    ("execute-composed-proof-comprehensive", "Composed proof over every available verification."),
)


class ComposedProofTool(BaseTool):
    artifact = COMPOSED_ARTIFACT
    category = "composed"

    def __init__(self, *, name: str, description: str) -> None:
        self.name = name
        self.description = description

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            companyName=first_present(raw, "legalName", "entityName", "companyName"),
            network=first_present(raw, "network", default=DEFAULT_NETWORK),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("companyName"), normalized.get("network"))


def composed_tools() -> list[ComposedProofTool]:
    return [ComposedProofTool(name=name, description=description) for name, description in COMPOSED_VARIANTS]
