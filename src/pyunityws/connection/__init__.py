"""
连接模块

WebSocket连接的生命周期状态机、事件分发与自动重连。
"""

from .config import (
    AGGRESSIVE_RECONNECT_CONFIG,
    DEFAULT_CONFIG,
    NO_RECONNECT_CONFIG,
    ConnectionConfig,
    ConnectionRole,
)
from .connection import WebSocketConnection
from .dispatcher import EventDispatcher
from .errors import (
    ConnectionClosedError,
    HandshakeError,
    HandshakeTimeoutError,
    InvalidArgumentError,
    InvalidStateError,
    ReconnectExhaustedError,
    SendFailedError,
    TransportError,
    WebSocketError,
    is_transport_error,
    is_usage_error,
)
from .events import (
    CloseEvent,
    ErrorEvent,
    EventKind,
    MessageEvent,
    OpenEvent,
    WebSocketEvent,
)
from .models import SendCallback, SendOperation
from .observer import CallbackObserver, WebSocketObserver
from .reconnect import (
    BackoffPolicy,
    ReconnectAction,
    ReconnectDecision,
    ReconnectGovernor,
    ScheduledCall,
    Scheduler,
    ThreadingScheduler,
)
from .states import ConnectionStateMachine, ReadyState

__all__ = [
    # 配置
    "ConnectionConfig",
    "ConnectionRole",
    "DEFAULT_CONFIG",
    "NO_RECONNECT_CONFIG",
    "AGGRESSIVE_RECONNECT_CONFIG",
    # 控制器
    "WebSocketConnection",
    # 状态
    "ConnectionStateMachine",
    "ReadyState",
    # 事件
    "EventKind",
    "OpenEvent",
    "MessageEvent",
    "ErrorEvent",
    "CloseEvent",
    "WebSocketEvent",
    "EventDispatcher",
    "WebSocketObserver",
    "CallbackObserver",
    # 发送
    "SendOperation",
    "SendCallback",
    # 重连
    "BackoffPolicy",
    "ReconnectAction",
    "ReconnectDecision",
    "ReconnectGovernor",
    "Scheduler",
    "ScheduledCall",
    "ThreadingScheduler",
    # 异常
    "WebSocketError",
    "InvalidStateError",
    "InvalidArgumentError",
    "ReconnectExhaustedError",
    "TransportError",
    "HandshakeError",
    "HandshakeTimeoutError",
    "SendFailedError",
    "ConnectionClosedError",
    "is_usage_error",
    "is_transport_error",
]
