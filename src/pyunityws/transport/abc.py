"""传输层抽象接口定义模块

连接控制器只通过这里的接口驱动真实的网络I/O。
"""

from abc import ABC, abstractmethod
from typing import Callable

from .models import Payload

OpenCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]
SentCallback = Callable[[], None]
# (code, reason, was_clean)
ClosedCallback = Callable[[int, str, bool], None]


class TransportSink(ABC):
    """传输层入站事件接收者

    由连接控制器实现，传输层在自己的执行上下文中随时调用。
    """

    @abstractmethod
    def on_transport_message(self, payload: Payload) -> None:
        """收到一条完整消息"""
        pass

    @abstractmethod
    def on_transport_error(self, error: Exception) -> None:
        """连接存活期间发生的非致命错误"""
        pass

    @abstractmethod
    def on_unexpected_close(self, code: int, reason: str, was_clean: bool) -> None:
        """连接在未调用 begin_close 的情况下断开

        Args:
            code: 关闭状态码，异常断开时为 1006
            reason: 关闭原因
            was_clean: 是否完成了协议层的关闭握手
        """
        pass


class TransportChannel(ABC):
    """传输通道接口

    约定:
    - 所有 begin_* 方法只做交接，不能阻塞在网络I/O上
    - begin_connect 的 on_open / on_error 恰好调用其一，且只调用一次
    - begin_send 按提交顺序发送，on_sent / on_error 恰好调用其一
    - begin_close 无论当前是否有连接，都必须最终调用一次 on_closed
    - 回调可以在任意线程调用，也允许在 begin_* 内部同步调用
    """

    @abstractmethod
    def bind(self, sink: TransportSink) -> None:
        """绑定入站事件接收者"""
        pass

    @abstractmethod
    def begin_connect(
        self, address: str, on_open: OpenCallback, on_error: ErrorCallback
    ) -> None:
        """开始建立连接

        Args:
            address: ws:// 或 wss:// 地址
            on_open: 握手完成回调
            on_error: 握手失败回调
        """
        pass

    @abstractmethod
    def begin_send(
        self, payload: Payload, on_sent: SentCallback, on_error: ErrorCallback
    ) -> None:
        """开始发送一条消息

        传输层在调用 on_sent / on_error 之后不得再持有 payload。
        """
        pass

    @abstractmethod
    def begin_close(self, code: int, reason: str, on_closed: ClosedCallback) -> None:
        """开始关闭连接，同时取消进行中的握手"""
        pass
