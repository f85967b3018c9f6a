"""日志初始化：JSON 行格式、队列异步落盘，以及按模块/作业/工具放行 DEBUG。"""

from __future__ import annotations

import json
import logging
import logging.config
import queue
import sys
from collections.abc import Iterable
from datetime import datetime, timezone
from logging.handlers import QueueListener, RotatingFileHandler
from pathlib import Path
from typing import Any

from verifyhub.config import Settings
from verifyhub.infra.logging.context import CONTEXT_FIELDS, get_log_context
from verifyhub.infra.logging.redaction import redact_text, render_payload_preview

LOG_FILE_NAME = "verifyhub.jsonl"

_listener: QueueListener | None = None

_PASSTHROUGH_FIELDS = ("op", "phase", "error_type")
_NUMERIC_FIELDS = ("duration_ms", "status_code")
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "asyncio")


def _as_number(value: Any) -> int | float | None:
    if value is None or isinstance(value, (int, float)):
        return value
    for cast in (int, float):
        try:
            return cast(str(value))
        except ValueError:
            continue
    return None


class DebugRoutingFilter(logging.Filter):
    """低于最低级别的记录默认丢弃；DEBUG 可按模块前缀、作业 ID 或工具名单独放行。

    工具逐行输出以 DEBUG 写入 ``verifyhub.capability.output``，排查单个作业或
    单个工具时通过 LOG_DEBUG_JOB_IDS / LOG_DEBUG_TOOLS 打开，其余作业不受影响。
    """

    def __init__(
        self,
        *,
        min_level: int,
        debug_modules: Iterable[str] = (),
        debug_job_ids: Iterable[str] = (),
        debug_tools: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self._min_level = min_level
        self._modules = tuple(debug_modules)
        self._job_ids = frozenset(debug_job_ids)
        self._tools = frozenset(debug_tools)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._min_level:
            return True
        if record.levelno != logging.DEBUG:
            return False
        name = record.name
        if any(name == item or name.startswith(f"{item}.") for item in self._modules):
            return True
        ctx = get_log_context()
        job_id = getattr(record, "job_id", None) or ctx.get("job_id")
        tool_name = getattr(record, "tool_name", None) or ctx.get("tool_name")
        return job_id in self._job_ids or tool_name in self._tools


class ContextInjectionFilter(logging.Filter):
    """入队前把 contextvars 固化到 record 上；监听线程中读不到调用方的上下文。"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if value is not None and getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JsonLineFormatter(logging.Formatter):
    """每条记录输出一行 JSON；字段集合固定，缺失字段为 null。"""

    def __init__(self, *, service: str, process_role: str, redaction_mode: str, payload_preview_chars: int) -> None:
        super().__init__()
        self._service = service
        self._process_role = process_role
        self._redaction_mode = redaction_mode
        self._payload_preview_chars = payload_preview_chars

    def _error_text(self, record: logging.LogRecord) -> str | None:
        error = getattr(record, "error", None)
        if error is None and record.exc_info:
            error = self.formatException(record.exc_info)
        return None if error is None else str(error)

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self._service,
            "process_role": self._process_role,
            "module": record.name,
            "event": getattr(record, "event", None),
        }
        entry.update({key: getattr(record, key, None) or ctx.get(key) for key in CONTEXT_FIELDS})
        entry.update({key: getattr(record, key, None) for key in _PASSTHROUGH_FIELDS})
        entry.update({key: _as_number(getattr(record, key, None)) for key in _NUMERIC_FIELDS})
        entry["message"] = redact_text(record.getMessage(), self._redaction_mode)
        entry["error"] = redact_text(self._error_text(record), self._redaction_mode)
        entry["payload_preview"] = render_payload_preview(
            getattr(record, "payload_preview", None),
            max_chars=self._payload_preview_chars,
            redaction_mode=self._redaction_mode,
        )
        return json.dumps(entry, ensure_ascii=False, default=str)


def _parse_level(level_text: str) -> int:
    level = logging.getLevelName(str(level_text).upper())
    return level if isinstance(level, int) else logging.INFO


def _open_log_file(settings: Settings, process_role: str) -> tuple[RotatingFileHandler, Path]:
    log_root = settings.log_dir if settings.log_dir.is_absolute() else (Path.cwd() / settings.log_dir).resolve()
    role_dir = log_root / process_role
    role_dir.mkdir(parents=True, exist_ok=True)
    path = role_dir / LOG_FILE_NAME
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    return handler, path


def configure_logging(settings: Settings, *, process_role: str) -> Path:
    """安装根日志：业务线程只入队，监听线程写 JSONL 文件，ERROR 同时输出到 stderr。

    返回日志文件路径 ``<log_dir>/<process_role>/verifyhub.jsonl``。
    """
    global _listener
    shutdown_logging()

    formatter = JsonLineFormatter(
        service="verifyhub",
        process_role=process_role,
        redaction_mode=settings.log_redaction_mode,
        payload_preview_chars=settings.log_payload_preview_chars,
    )
    file_handler, log_file = _open_log_file(settings, process_role)
    file_handler.setFormatter(formatter)
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    records: queue.Queue[logging.LogRecord] = queue.Queue()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "context": {"()": ContextInjectionFilter},
                "debug_routing": {
                    "()": DebugRoutingFilter,
                    "min_level": _parse_level(settings.log_level),
                    "debug_modules": settings.log_debug_modules_list(),
                    "debug_job_ids": settings.log_debug_job_ids_list(),
                    "debug_tools": settings.log_debug_tools_list(),
                },
            },
            "handlers": {
                "queue": {
                    "class": "logging.handlers.QueueHandler",
                    "queue": records,
                    "filters": ["context", "debug_routing"],
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            "root": {"level": "DEBUG", "handlers": ["queue"]},
        }
    )

    _listener = QueueListener(records, file_handler, stderr_handler, respect_handler_level=True)
    _listener.start()
    return log_file


def shutdown_logging() -> None:
    """停止监听线程（先写完队列中的剩余记录）并关闭底层句柄。"""
    global _listener
    listener, _listener = _listener, None
    if listener is None:
        return
    listener.stop()
    for handler in listener.handlers:
        handler.close()
