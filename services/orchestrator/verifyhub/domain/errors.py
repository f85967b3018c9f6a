"""领域异常定义：工具执行失败分类与作业服务层错误。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ToolExecutionError(Exception):
    """工具执行失败基类；所有失败分类共享统一的失败结构。"""
    error_type = "execution_error"

    def to_failure_result(self) -> dict[str, Any]:
        """转换为统一失败结构 {status, error, errorType, timestamp}。"""
        return {
            "status": "failed",
            "error": str(self),
            "errorType": self.error_type,
            "timestamp": utc_now_iso(),
        }


class UnknownToolError(ToolExecutionError, LookupError):
    """工具名不在目录中；消息中列出全部可用工具。"""
    error_type = "unknown_tool"

    def __init__(self, tool_name: str, available: list[str]) -> None:
        self.tool_name = tool_name
        self.available = list(available)
        super().__init__(f"Unknown tool: {tool_name}. Available tools: {', '.join(self.available)}")


class ArtifactNotFoundError(ToolExecutionError, FileNotFoundError):
    """工具依赖的编译产物不存在。"""
    error_type = "artifact_not_found"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Compiled artifact not found: {path}. Please run the build step first (npm run build).")

    def __str__(self) -> str:
        return str(self.args[0])


class ToolTimeoutError(ToolExecutionError, TimeoutError):
    """工具执行超过软超时。"""
    error_type = "timeout"

    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Execution timeout after {int(timeout_seconds * 1000)}ms for tool {tool_name}")

    def __str__(self) -> str:
        return str(self.args[0])


class CapabilityError(ToolExecutionError):
    """能力实现自身抛出的错误，保留原始消息。"""
    error_type = "capability_error"


class ExtractionWarning(UserWarning):
    """未能从工具输出中解析出状态快照；不影响作业结果。"""


class DuplicateJobError(ValueError):
    pass


class AsyncExecutionDisabledError(RuntimeError):
    pass
