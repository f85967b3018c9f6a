"""企业身份类验证工具：GLEIF、公司注册信息与进出口资质。"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from verifyhub.domain.tools.base import DEFAULT_NETWORK, BaseTool, first_present

DEFAULT_GLEIF_COMPANY = "SREE PALANI ANDAVAR AGROS PRIVATE LIMITED"


class GleifVerificationTool(BaseTool):
    name = "get-GLEIF-verification-with-sign"
    artifact = "GLEIFOptimMultiCompanyVerificationTestWithSign.js"
    aliases = ("gleif",)
    description = "Verify a legal entity against the GLEIF registry and record it in the compliance contract."
    category = "identity"

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            companyName=first_present(raw, "companyName", "legalName", "entityName", default=DEFAULT_GLEIF_COMPANY),
            network=first_present(raw, "network", default=DEFAULT_NETWORK),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("companyName"), normalized.get("network"))


class CorporateRegistrationTool(BaseTool):
    name = "get-Corporate-Registration-verification-with-sign"
    artifact = "CorporateRegistrationOptimMultiCompanyVerificationTestWithSign.js"
    aliases = ("corporate",)
    description = "Verify corporate registration status by CIN."
    category = "identity"

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            cin=first_present(raw, "cin"),
            network=first_present(raw, "network", default=DEFAULT_NETWORK),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("cin"), normalized.get("network"))


class EximVerificationTool(BaseTool):
    name = "get-EXIM-verification-with-sign"
    artifact = "EXIMOptimMultiCompanyVerificationTestWithSign.js"
    aliases = ("exim",)
    description = "Verify export/import licence data for a company."
    category = "identity"

    def normalize_parameters(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self._merge(
            raw,
            companyName=first_present(raw, "companyName", "legalName", "entityName"),
            network=first_present(raw, "network", default=DEFAULT_NETWORK),
        )

    def build_arguments(self, normalized: Mapping[str, Any]) -> list[str]:
        return self._args(normalized.get("companyName"), normalized.get("network"))
