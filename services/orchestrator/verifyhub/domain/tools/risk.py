"""流动性风险验证工具：ACTUS 高级风险、Basel III 与稳定币储备证明。

ACTUS 服务地址始终取自服务端配置，调用方传入的 actusUrl 会被覆盖。
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from verifyhub.domain.tools.base import BaseTool, first_present

ADVANCED_RISK_ARTIFACT = "RiskLiquidityAdvancedOptimMerkleVerificationTestWithSign.js"
BASEL3_RISK_ARTIFACT = "RiskLiquidityBasel3OptimMerkleVerificationTestWithSign.js"
STABLECOIN_RISK_ARTIFACT = "RiskLiquidityStableCoinOptimMerkleVerificationTestWithSign.js"


class _RiskTool(BaseTool):
    category = "risk"

    def __init__(self, *, actus_url: str) -> None:
        self._actus_url = actus_url


class AdvancedRiskTool(_RiskTool):
    name = "get-RiskLiquidityAdvancedOptimMerkle-verification-with-sign"
    artifact = ADVANCED_RISK_ARTIFACT
    aliases = ("risk-advanced",)
    description = "Advanced liquidity risk verification over ACTUS cash-flow projections."

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            liquidityThreshold=first_present(raw, "liquidityThreshold", default=95),
            actusUrl=self._actus_url,
            configFilePath=first_present(raw, "configFilePath", default="Advanced-VALID-1.json"),
            executionMode=first_present(raw, "executionMode", default="ultra_strict"),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(
            normalized.get("liquidityThreshold"),
            normalized.get("actusUrl"),
            normalized.get("configFilePath"),
            normalized.get("executionMode"),
        )


class Basel3RiskTool(_RiskTool):
    name = "get-RiskLiquidityBasel3Optim-Merkle-verification-with-sign"
    artifact = BASEL3_RISK_ARTIFACT
    aliases = ("risk-basel3",)
    description = "Basel III LCR/NSFR liquidity verification."

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            lcrThreshold=first_present(raw, "lcrThreshold", "liquidityThreshold", default=100),
            nsfrThreshold=first_present(raw, "nsfrThreshold", default=100),
            actusUrl=self._actus_url,
            configFilePath=first_present(raw, "configFilePath", default="basel3-VALID-1.json"),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(
            normalized.get("lcrThreshold"),
            normalized.get("nsfrThreshold"),
            normalized.get("actusUrl"),
            normalized.get("configFilePath"),
        )


class StablecoinReservesTool(_RiskTool):
    name = "get-StablecoinProofOfReservesRisk-verification-with-sign"
    artifact = STABLECOIN_RISK_ARTIFACT
    aliases = ("risk-stablecoin",)
    description = "Stablecoin proof-of-reserves liquidity verification."

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            liquidityThreshold=first_present(raw, "liquidityThreshold", "threshold", default=100),
            actusUrl=self._actus_url,
            configFilePath=first_present(
                raw,
                "configFilePath",
                default="src/data/RISK/StableCoin/CONFIG/US/StableCoin-VALID-1.json",
            ),
            executionMode=first_present(raw, "executionMode", default="ultra_strict"),
            jurisdiction=first_present(raw, "jurisdiction", default="US"),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(
            normalized.get("liquidityThreshold"),
            normalized.get("actusUrl"),
            normalized.get("configFilePath"),
            normalized.get("executionMode"),
            normalized.get("jurisdiction"),
        )


class ActusVerifierTool(_RiskTool):
    """旧版 ACTUS 验证入口，只接受阈值与 ACTUS 地址。"""

    def __init__(self, *, name: str, artifact: str, actus_url: str, description: str = "") -> None:
        super().__init__(actus_url=actus_url)
        self.name = name
        self.artifact = artifact
        self.description = description or "ACTUS liquidity verifier."

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            threshold=first_present(raw, "threshold", "liquidityThreshold", default=95),
            actusUrl=self._actus_url,
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("threshold"), normalized.get("actusUrl"))


def actus_verifier_tools(actus_url: str) -> list[ActusVerifierTool]:
    return [
        ActusVerifierTool(
            name="get-RiskLiquidityACTUS-Verifier-Test_adv_zk",
            artifact=ADVANCED_RISK_ARTIFACT,
            actus_url=actus_url,
            description="ACTUS advanced liquidity verifier.",
        ),
        ActusVerifierTool(
            name="get-RiskLiquidityACTUS-Verifier-Test_Basel3_Withsign",
            artifact=BASEL3_RISK_ARTIFACT,
            actus_url=actus_url,
            description="ACTUS Basel III liquidity verifier.",
        ),
    ]
