"""Transport模块异常定义"""


class TransportError(Exception):
    """Transport基础异常类

    所有来自传输层的失败（握手失败、发送失败、意外断开）都包装为该类型，
    只通过事件、Future和完成回调异步上报，不会抛给同步调用方。
    """

    pass


class HandshakeError(TransportError):
    """握手异常"""

    pass


class HandshakeTimeoutError(HandshakeError):
    """握手超时异常"""

    pass


class SendFailedError(TransportError):
    """发送失败异常"""

    pass


class ConnectionClosedError(TransportError):
    """连接已关闭异常"""

    pass


def is_handshake_error(error: Exception) -> bool:
    """检查是否为握手阶段的错误"""
    return isinstance(error, HandshakeError)


def is_connection_closed_error(error: Exception) -> bool:
    """检查是否为连接关闭导致的错误"""
    return isinstance(error, ConnectionClosedError)
