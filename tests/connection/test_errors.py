"""连接模块异常分类测试"""

import pytest

from pyunityws.connection import (
    ConnectionClosedError,
    EventKind,
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


class TestErrorPredicates:
    """is_usage_error / is_transport_error 测试类"""

    @pytest.mark.parametrize(
        "error",
        [InvalidStateError("not open"), InvalidArgumentError("bad address")],
    )
    def test_usage_errors(self, error):
        """测试调用方错误的判定"""
        assert is_usage_error(error)
        assert not is_transport_error(error)

    @pytest.mark.parametrize(
        "error",
        [
            HandshakeError("refused"),
            HandshakeTimeoutError("timeout"),
            SendFailedError("broken pipe"),
            ConnectionClosedError("closed"),
        ],
    )
    def test_transport_errors(self, error):
        """测试传输层错误的判定"""
        assert is_transport_error(error)
        assert not is_usage_error(error)

    @pytest.mark.parametrize(
        "error",
        [ReconnectExhaustedError("ws://host", 3), ValueError("x"), RuntimeError("y")],
    )
    def test_neither(self, error):
        """测试其他异常两者都不匹配"""
        assert not is_usage_error(error)
        assert not is_transport_error(error)

    def test_hierarchy(self):
        """测试异常层次"""
        assert issubclass(InvalidArgumentError, ValueError)
        assert issubclass(InvalidArgumentError, WebSocketError)
        assert issubclass(ReconnectExhaustedError, WebSocketError)
        assert not issubclass(TransportError, WebSocketError)

        error = ReconnectExhaustedError("ws://host", 3)
        assert error.address == "ws://host"
        assert error.attempts == 3


class TestRaisedErrors:
    """控制器实际抛出与上报的异常分类"""

    def test_invalid_address_is_usage_error(self, conn):
        """测试非法地址同步抛出调用方错误"""
        with pytest.raises(InvalidArgumentError) as exc_info:
            conn.connect_async("ws://host:99999/")

        assert is_usage_error(exc_info.value)

    def test_send_before_open_is_usage_error(self, conn):
        """测试未打开时发送同步抛出调用方错误"""
        with pytest.raises(InvalidStateError) as exc_info:
            conn.send_async("hello")

        assert is_usage_error(exc_info.value)

    def test_handshake_failure_is_transport_error(self, conn, transport, recorder):
        """测试握手失败通过 ErrorEvent 上报传输层错误"""
        conn.connect_async("ws://host")
        transport.fail_connect()

        (event,) = recorder.of_kind(EventKind.ERROR)
        assert is_transport_error(event.error)
        assert not is_usage_error(event.error)
