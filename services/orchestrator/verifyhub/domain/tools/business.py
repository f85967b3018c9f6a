"""业务数据完整性验证工具：单证标准完整性（BSDI）与业务流程完整性（BPI）。"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from verifyhub.domain.tools.base import BaseTool, first_present


class BusinessStandardIntegrityTool(BaseTool):
    name = "get-BSDI-compliance-verification"
    artifact = "BusinessStdIntegrityOptimMerkleVerificationTestWithSign.js"
    aliases = ("bsdi",)
    description = "Verify a trade document (e.g. bill of lading) against the business data standard."
    category = "business"

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(raw, filePath=first_present(raw, "filePath", default="BOL-VALID-1.json"))

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("filePath"))


class BusinessProcessIntegrityTool(BaseTool):
    name = "get-BPI-compliance-verification"
    artifact = "BusinessProcessIntegrityOptimMerkleVerificationFileTestWithSign.js"
    aliases = ("bpi",)
    description = "Compare an actual BPMN process against the expected process definition."
    category = "business"

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            processType=first_present(raw, "processType", default="SCF"),
            expectedProcessFile=first_present(raw, "expectedProcessFile", default="SCF-Expected.bpmn"),
            actualProcessFile=first_present(raw, "actualProcessFile", default="SCF-Accepted1.bpmn"),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(
            normalized.get("processType"),
            normalized.get("expectedProcessFile"),
            normalized.get("actualProcessFile"),
        )
