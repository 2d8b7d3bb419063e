"""
JSON格式化器

把日志记录输出为单行JSON，extra字段（如address、state、attempt）平铺到顶层。
"""

import json
import logging
import time
from typing import Any

# LogRecord自带的属性，不属于调用方传入的extra
STANDARD_RECORD_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "message",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "asctime",
        "thread",
        "threadName",
        "process",
        "processName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


def extract_extra(record: logging.LogRecord) -> dict[str, Any]:
    """提取调用方通过extra传入的字段"""
    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in STANDARD_RECORD_FIELDS and v is not None
    }


class JsonFormatter(logging.Formatter):
    """
    JSON格式化器

    Args:
        include_extra: 是否包含extra字段
        include_location: 是否包含模块、函数、行号
        ensure_ascii: 是否确保ASCII编码
        **static_fields: 每条日志都附带的固定字段
    """

    def __init__(
        self,
        include_extra: bool = True,
        include_location: bool = True,
        ensure_ascii: bool = False,
        **static_fields: Any,
    ) -> None:
        super().__init__()
        self.include_extra: bool = include_extra
        self.include_location: bool = include_location
        self.ensure_ascii: bool = ensure_ascii
        self.static_fields: dict[str, Any] = static_fields

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = dict(self.static_fields)
        entry["asctime"] = time.strftime(
            "%Y-%m-%d %H:%M:%S", time.localtime(record.created)
        )
        entry["level"] = record.levelname
        entry["logger"] = record.name

        if self.include_location:
            entry["module"] = record.module
            entry["function"] = record.funcName
            entry["line"] = record.lineno

        entry["message"] = record.getMessage()

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            entry["exception"] = record.exc_text

        if self.include_extra:
            entry.update(extract_extra(record))

        try:
            return json.dumps(
                entry,
                ensure_ascii=self.ensure_ascii,
                separators=(",", ":"),
                default=str,
            )
        except (TypeError, ValueError) as e:
            # 序列化失败时回退到最小字段集
            return json.dumps(
                {
                    "level": record.levelname,
                    "message": record.getMessage(),
                    "serialization_error": str(e),
                },
                ensure_ascii=self.ensure_ascii,
            )


class ExtraAwareFormatter(logging.Formatter):
    """
    文本格式化器

    在普通文本行尾以 ``[k=v | k=v]`` 形式附加extra字段，可选彩色级别。
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        colored_output: bool = False,
    ) -> None:
        super().__init__(fmt, datefmt)
        self.colored_output: bool = colored_output

    def format(self, record: logging.LogRecord) -> str:
        extra = extract_extra(record)
        levelname = record.levelname
        if self.colored_output and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            formatted = super().format(record)
        finally:
            record.levelname = levelname

        if extra:
            extra_str = " | ".join(f"{k}={v}" for k, v in extra.items())
            formatted = f"{formatted} [{extra_str}]"
        return formatted
