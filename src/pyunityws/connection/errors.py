"""
连接模块异常定义

InvalidStateError / InvalidArgumentError 同步抛给调用方；
传输层错误（TransportError 及其子类）只通过事件和发送结果异步上报。
"""

from pyunityws.transport.errors import (
    ConnectionClosedError,
    HandshakeError,
    HandshakeTimeoutError,
    SendFailedError,
    TransportError,
)


class WebSocketError(Exception):
    """连接模块基础异常"""

    pass


class InvalidStateError(WebSocketError):
    """当前状态不允许该操作

    例如：非Open状态下发送、Closing状态下连接、重连次数耗尽后再次连接。
    """

    pass


class InvalidArgumentError(WebSocketError, ValueError):
    """参数缺失或格式错误"""

    pass


class ReconnectExhaustedError(WebSocketError):
    """自动重连次数耗尽，通过 ErrorEvent 上报一次"""

    def __init__(self, address: str, attempts: int) -> None:
        super().__init__(f"重连 {address} 已失败 {attempts} 次，停止自动重连")
        self.address: str = address
        self.attempts: int = attempts


def is_usage_error(error: Exception) -> bool:
    """检查是否为调用方使用错误（应由调用方修正）"""
    return isinstance(error, (InvalidStateError, InvalidArgumentError))


def is_transport_error(error: Exception) -> bool:
    """检查是否为传输层错误"""
    return isinstance(error, TransportError)


__all__ = [
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
