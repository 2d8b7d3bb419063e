"""
Transport网络层模块

定义连接控制器依赖的传输通道接口，并提供基于 websockets 的默认实现。
"""

from .abc import TransportChannel, TransportSink
from .config import DEBUG_TRANSPORT_CONFIG, DEFAULT_TRANSPORT_CONFIG, TransportConfig
from .errors import (
    ConnectionClosedError,
    HandshakeError,
    HandshakeTimeoutError,
    SendFailedError,
    TransportError,
    is_connection_closed_error,
    is_handshake_error,
)
from .models import CloseStatusCode, Payload
from .websockets_channel import WebSocketsChannel

__all__ = [
    "TransportChannel",
    "TransportSink",
    "TransportConfig",
    "DEFAULT_TRANSPORT_CONFIG",
    "DEBUG_TRANSPORT_CONFIG",
    "TransportError",
    "HandshakeError",
    "HandshakeTimeoutError",
    "SendFailedError",
    "ConnectionClosedError",
    "is_handshake_error",
    "is_connection_closed_error",
    "CloseStatusCode",
    "Payload",
    "WebSocketsChannel",
]
