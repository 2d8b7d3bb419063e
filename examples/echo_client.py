#!/usr/bin/env python3
"""
WebSocket回显客户端示例

这个示例展示了pyunityws连接的基本用法：
- 注册事件回调
- 非阻塞地连接、发送、关闭
- 通过Future等待发送结果
- 查看自动重连状态

使用方法:
    python examples/echo_client.py wss://echo.websocket.org
"""

import sys
import threading

from pyunityws import (
    ConnectionConfig,
    EventKind,
    ReadyState,
    create_connection,
)
from pyunityws.connection import is_transport_error, is_usage_error
from pyunityws.logging import LoggingConfig, setup_logging


def describe_error(event) -> str:
    if is_transport_error(event.error):
        return f"传输错误: {event.message}"
    return f"错误: {event.message}"


def main(address: str) -> int:
    """主函数"""
    setup_logging(LoggingConfig(level="INFO"))

    conn = create_connection(ConnectionConfig(max_retries=3))
    opened = threading.Event()
    closed = threading.Event()
    replies = threading.Semaphore(0)

    conn.on(EventKind.OPEN, lambda e: (print(f"已连接: {e.address}"), opened.set()))
    conn.on(EventKind.MESSAGE, lambda e: (print(f"收到: {e.text}"), replies.release()))
    conn.on(EventKind.ERROR, lambda e: print(describe_error(e)))
    conn.on(
        EventKind.CLOSE,
        lambda e: (print(f"已关闭: {e.code} {e.reason} clean={e.was_clean}"), closed.set()),
    )

    try:
        conn.connect_async(address)
    except Exception as e:
        if not is_usage_error(e):
            raise
        print(f"无法连接: {e}")
        return 2
    if not opened.wait(10):
        print(f"连接超时，当前状态 {conn.ready_state.name}")
        conn.close_async()
        return 1

    for text in ("hello", "你好", "bye"):
        future = conn.send_async(text, lambda ok: print(f"发送完成: {ok}"))
        future.result(5)
        replies.acquire(timeout=5)

    conn.close_async(1000, "done")
    closed.wait(10)
    print(f"最终状态: {conn.ready_state.name}, 重连次数: {conn.retry_count}")
    return 0 if conn.ready_state is ReadyState.CLOSED else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else "wss://echo.websocket.org"))
