"""
连接事件定义

四种事件使用带标签的不可变数据类表示，kind 字段即标签，
分发器按 kind 把事件路由到观察者的对应回调。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from pyunityws.transport.models import CloseStatusCode, Payload


class EventKind(Enum):
    """事件类型"""

    OPEN = "open"
    MESSAGE = "message"
    ERROR = "error"
    CLOSE = "close"


@dataclass(frozen=True)
class OpenEvent:
    """连接已建立"""

    address: str = ""
    kind: EventKind = field(default=EventKind.OPEN, init=False)


@dataclass(frozen=True)
class MessageEvent:
    """收到消息"""

    payload: Payload
    kind: EventKind = field(default=EventKind.MESSAGE, init=False)

    @property
    def data(self) -> bytes:
        return self.payload.data

    @property
    def is_text(self) -> bool:
        return self.payload.is_text

    @property
    def is_binary(self) -> bool:
        return not self.payload.is_text

    @property
    def text(self) -> str:
        """按UTF-8解码的文本内容"""
        return self.payload.text


@dataclass(frozen=True)
class ErrorEvent:
    """发生错误

    Attributes:
        message: 可读的错误描述
        error: 原始异常
    """

    message: str
    error: Exception | None = None
    kind: EventKind = field(default=EventKind.ERROR, init=False)

    @classmethod
    def from_exception(cls, error: Exception) -> "ErrorEvent":
        return cls(message=str(error) or type(error).__name__, error=error)


@dataclass(frozen=True)
class CloseEvent:
    """连接已关闭

    Attributes:
        code: 关闭状态码
        reason: 关闭原因
        was_clean: 是否完成了协议层关闭握手
    """

    code: int = CloseStatusCode.NORMAL
    reason: str = ""
    was_clean: bool = True
    kind: EventKind = field(default=EventKind.CLOSE, init=False)

    @property
    def status(self) -> CloseStatusCode | None:
        """已知状态码对应的枚举值，应用自定义码返回None"""
        try:
            return CloseStatusCode(self.code)
        except ValueError:
            return None


WebSocketEvent = Union[OpenEvent, MessageEvent, ErrorEvent, CloseEvent]
