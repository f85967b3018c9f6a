"""日志上下文：基于 contextvars 透传 request/job/tool/subscriber 标识。"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

CONTEXT_FIELDS: tuple[str, ...] = ("request_id", "job_id", "tool_name", "subscriber_id")

_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"verifyhub_{name}", default=None) for name in CONTEXT_FIELDS
}


def get_log_context() -> dict[str, str | None]:
    """返回当前协程/线程下的日志上下文字段。"""
    return {name: var.get() for name, var in _vars.items()}


@contextmanager
def bind_log_context(**fields: str | None) -> Iterator[None]:
    """在 with 范围内绑定日志字段，退出时恢复外层取值；只接受 CONTEXT_FIELDS 中的键。"""
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"unknown log context fields: {', '.join(unknown)}")
    tokens = [(_vars[name], _vars[name].set(value)) for name, value in fields.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
