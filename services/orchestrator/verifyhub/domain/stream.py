"""单次调用的诊断输出流：收集 stdout/stderr，逐行转发给观察者与日志。"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger("verifyhub.capability.output")

LineObserver = Callable[[str], None]


class DiagnosticStream:
    """每次工具调用独立创建；并发作业之间互不串流。

    能力实现通过 ``write``/``log``/``write_line`` 输出诊断文本，每一行都会：
    1. 追加到本次调用的 stdout 缓冲；
    2. 以 DEBUG 级别写入 ``verifyhub.capability.output`` 日志；
    3. 在流未关闭时交给观察者（状态提取器）。

    观察者抛出的异常只记录日志并停止后续提取，不会影响能力本身的执行。
    """

    def __init__(self, *, observer: LineObserver | None = None, label: str | None = None) -> None:
        self._observer = observer
        self._label = label
        self._lock = threading.Lock()
        self._closed = False
        self._partial = ""
        self._stdout: list[str] = []
        self._stderr: list[str] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stdout(self) -> str:
        with self._lock:
            lines = list(self._stdout)
            partial = self._partial
        text = "\n".join(lines)
        if partial:
            text = f"{text}\n{partial}" if text else partial
        return text

    @property
    def stderr(self) -> str:
        with self._lock:
            return "\n".join(self._stderr)

    def write(self, text: str) -> int:
        """文件对象风格写入；按换行切分，末尾不完整的行先缓存。"""
        with self._lock:
            buffered = self._partial + text
            *lines, self._partial = buffered.split("\n")
        for line in lines:
            self.write_line(line)
        return len(text)

    def flush(self) -> None:
        with self._lock:
            pending, self._partial = self._partial, ""
        if pending:
            self.write_line(pending)

    def log(self, *args: object) -> None:
        """print 风格输出，参数以空格拼接。"""
        text = " ".join(str(item) for item in args)
        for line in text.split("\n"):
            self.write_line(line)

    def write_line(self, line: str) -> None:
        line = line.rstrip("\r")
        with self._lock:
            self._stdout.append(line)
            observer = None if self._closed else self._observer
        logger.debug(line, extra={"event": "capability.stdout", "op": self._label})
        if observer is None:
            return
        try:
            observer(line)
        except Exception as exc:
            with self._lock:
                self._observer = None
            logger.warning(
                "state extraction disabled after observer error",
                extra={
                    "event": "capability.observer.failed",
                    "op": self._label,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def error_line(self, line: str) -> None:
        line = line.rstrip("\r")
        with self._lock:
            self._stderr.append(line)
        logger.debug(line, extra={"event": "capability.stderr", "op": self._label})

    def close(self) -> None:
        """停止向观察者转发；关闭后写入的内容仍进入缓冲与日志。"""
        self.flush()
        with self._lock:
            self._closed = True
