"""
pyunityws 日志模块

提供统一的logger获取入口和全局日志配置。
"""

import logging
from typing import Optional

from .config import LoggingConfig
from .json_formatter import ExtraAwareFormatter, JsonFormatter
from .logger import LoggerFactory

__all__ = [
    "LoggingConfig",
    "LoggerFactory",
    "JsonFormatter",
    "ExtraAwareFormatter",
    "get_logger",
    "setup_logging",
    "get_config",
]


def get_logger(name: str) -> logging.Logger:
    """
    获取指定名称的logger实例

    Args:
        name: logger名称，通常使用模块名

    Example:
        >>> logger = get_logger("connection")
        >>> logger.info("连接已建立", extra={"address": "ws://localhost"})
    """
    return LoggerFactory.get_logger(name)


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    设置全局日志配置

    Example:
        >>> setup_logging(LoggingConfig(level="DEBUG", json_output=True))
    """
    LoggerFactory.setup_default_config(config or LoggingConfig())


def get_config() -> LoggingConfig:
    """获取当前日志配置"""
    return LoggerFactory.get_current_config()
