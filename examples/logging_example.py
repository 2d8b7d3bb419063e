#!/usr/bin/env python3
"""
日志配置示例

演示如何配置pyunityws的日志输出：文本、JSON、文件轮转。
"""

from pyunityws.logging import LoggingConfig, get_config, get_logger, setup_logging


def text_output_example():
    """文本输出，extra字段附加在行尾"""
    print("=== 文本输出 ===")
    setup_logging(LoggingConfig(level="DEBUG"))

    logger = get_logger("example")
    logger.info("连接已建立", extra={"address": "ws://localhost:8080"})
    logger.warning("已计划重连", extra={"attempt": 1, "delay": 1.0})


def json_output_example():
    """JSON输出，便于日志系统采集"""
    print("\n=== JSON输出 ===")
    setup_logging(LoggingConfig(json_output=True))

    get_logger("example").info("连接已关闭", extra={"code": 1000, "was_clean": True})


def file_output_example():
    """写入轮转文件"""
    print("\n=== 文件输出 ===")
    setup_logging(
        LoggingConfig(
            file_path="pyunityws.log",
            max_file_size=1024 * 1024,
            backup_count=3,
            console_output=False,
        )
    )

    get_logger("example").info("写入文件")
    print(f"日志已写入 {get_config().file_path}")


if __name__ == "__main__":
    text_output_example()
    json_output_example()
    file_output_example()
