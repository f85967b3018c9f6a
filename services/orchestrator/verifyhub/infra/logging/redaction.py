"""日志脱敏：工具逐行输出会原样进入日志，签名密钥与凭据必须在落盘前遮蔽。"""

from __future__ import annotations

import json
import re
from typing import Any

MASK = "***"

# 任何模式下都会遮蔽的 "键=值" / "键: 值" 形式。
_KEYED_SECRETS = (
    "authorization",
    "x-api-key",
    "password",
    "token",
    "secret",
    "private[_-]?key",
    "deployer[_-]?key",
    "sender[_-]?key",
)
_KEYED_RE = re.compile(rf"(?i)\b((?:{'|'.join(_KEYED_SECRETS)})\s*[:=]\s*(?:bearer\s+)?)[^\s,;\"']+")

# strict 模式额外遮蔽的裸值：32 字节十六进制私钥与 base58 编码的签名私钥。
_BARE_SECRETS = (
    re.compile(r"\b0x[0-9a-fA-F]{64}\b"),
    re.compile(r"\bEK[1-9A-HJ-NP-Za-km-z]{50}\b"),
)


def redact_text(value: str | None, mode: str) -> str | None:
    """按模式脱敏：off 不处理，standard 遮蔽带键名的密钥，strict 再遮蔽裸私钥。"""
    if value is None:
        return None
    text = str(value)
    mode = mode.lower()
    if mode == "off":
        return text
    text = _KEYED_RE.sub(rf"\1{MASK}", text)
    if mode == "strict":
        for pattern in _BARE_SECRETS:
            text = pattern.sub(MASK, text)
    return text


def render_payload_preview(payload: Any, *, max_chars: int, redaction_mode: str) -> str | None:
    """序列化、脱敏并截断 payload，用于 payload_preview 字段。"""
    if payload is None:
        return None
    serialized = payload if isinstance(payload, str) else json.dumps(
        payload, ensure_ascii=False, sort_keys=True, default=str
    )
    redacted = redact_text(serialized, redaction_mode) or ""
    if len(redacted) > max_chars:
        return f"{redacted[:max_chars]}...(truncated)"
    return redacted
