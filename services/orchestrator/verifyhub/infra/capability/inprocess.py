"""进程内能力适配器：把普通 Python 函数包装成能力，同步函数放到线程中执行。"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping
from typing import Any

from verifyhub.domain.stream import DiagnosticStream

CapabilityFunc = Callable[[dict[str, Any], DiagnosticStream], Any]


def coerce_capability_result(raw: Any) -> dict[str, Any]:
    """统一为 {success, result}；未声明 success 的返回值视为成功结果。"""
    if isinstance(raw, Mapping) and "success" in raw:
        return {"success": bool(raw["success"]), "result": raw.get("result")}
    return {"success": True, "result": raw}


class CallableCapability:
    def __init__(self, func: CapabilityFunc, *, name: str | None = None) -> None:
        self._func = func
        self.name = name or getattr(func, "__name__", "callable")

    async def execute(self, parameters: dict[str, Any], stream: DiagnosticStream) -> dict[str, Any]:
        if inspect.iscoroutinefunction(self._func):
            raw = await self._func(parameters, stream)
        else:
            raw = await asyncio.to_thread(self._func, parameters, stream)
        return coerce_capability_result(raw)
