"""
Logger工厂类

提供logger创建和全局配置管理功能。
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import LoggingConfig
from .json_formatter import ExtraAwareFormatter, JsonFormatter

ROOT_LOGGER_NAME = "pyunityws"


class LoggerFactory:
    """
    Logger工厂类

    所有logger都挂在 ``pyunityws`` 命名空间下，处理器只安装在该命名空间的
    根logger上，不影响宿主应用自己的日志配置。
    """

    _config: LoggingConfig | None = None
    _configured_loggers: set[str] = set()

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        获取指定名称的logger实例

        Args:
            name: logger名称，不带前缀时自动加上 ``pyunityws.``

        Returns:
            logging.Logger: 配置好的logger实例
        """
        if cls._config is None:
            cls.setup_default_config(LoggingConfig())

        if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
            name = f"{ROOT_LOGGER_NAME}.{name}"

        logger = logging.getLogger(name)
        if name not in cls._configured_loggers:
            # 级别由根logger统一控制
            logger.setLevel(logging.NOTSET)
            logger.propagate = True
            cls._configured_loggers.add(name)
        return logger

    @classmethod
    def setup_default_config(cls, config: LoggingConfig) -> None:
        """
        设置全局配置，重建 ``pyunityws`` 根logger上的处理器

        Args:
            config: 日志配置
        """
        cls._config = config

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, config.level))
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        if config.console_output:
            root_logger.addHandler(cls._create_console_handler(config))

        if config.file_path:
            root_logger.addHandler(cls._create_file_handler(config))

        if not root_logger.handlers:
            root_logger.addHandler(logging.NullHandler())

        cls._configured_loggers.clear()

    @classmethod
    def get_current_config(cls) -> LoggingConfig:
        """获取当前配置"""
        if cls._config is None:
            cls.setup_default_config(LoggingConfig())
            if cls._config is None:
                raise RuntimeError("LoggerFactory配置未正确初始化")
        return cls._config

    @classmethod
    def _create_formatter(
        cls, config: LoggingConfig, colored: bool
    ) -> logging.Formatter:
        if config.json_output:
            return JsonFormatter()
        return ExtraAwareFormatter(
            config.format,
            datefmt=config.date_format,
            colored_output=colored and config.colored_output,
        )

    @classmethod
    def _create_console_handler(cls, config: LoggingConfig) -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, config.level))
        handler.setFormatter(cls._create_formatter(config, colored=True))
        return handler

    @classmethod
    def _create_file_handler(cls, config: LoggingConfig) -> logging.Handler:
        path = config.file_path or "pyunityws.log"
        handler: logging.Handler
        if config.rotates:
            handler = RotatingFileHandler(
                path,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        else:
            handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(getattr(logging, config.level))
        # 文件中不输出ANSI颜色码
        handler.setFormatter(cls._create_formatter(config, colored=False))
        return handler
