"""
pyunityws

非阻塞的WebSocket客户端连接抽象：统一的 connect/send/close 接口、
严格有序的生命周期事件，以及有上限的自动重连。
"""

from .connection import (
    CloseEvent,
    ConnectionConfig,
    ErrorEvent,
    EventKind,
    InvalidArgumentError,
    InvalidStateError,
    MessageEvent,
    OpenEvent,
    ReadyState,
    WebSocketConnection,
    WebSocketObserver,
)
from .transport import CloseStatusCode, Payload, TransportConfig, WebSocketsChannel


def create_connection(
    config: ConnectionConfig | None = None,
    transport_config: TransportConfig | None = None,
) -> WebSocketConnection:
    """创建使用默认 websockets 传输通道的连接"""
    return WebSocketConnection(WebSocketsChannel(transport_config), config)


__all__ = [
    "WebSocketConnection",
    "WebSocketsChannel",
    "ConnectionConfig",
    "TransportConfig",
    "ReadyState",
    "EventKind",
    "OpenEvent",
    "MessageEvent",
    "ErrorEvent",
    "CloseEvent",
    "WebSocketObserver",
    "CloseStatusCode",
    "Payload",
    "InvalidStateError",
    "InvalidArgumentError",
    "create_connection",
]

__version__ = "0.1.0"
