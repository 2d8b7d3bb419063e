"""
事件观察者

观察者按事件类型提供回调，默认实现为空操作，只需覆盖关心的事件。
"""

from typing import Callable

from .events import (
    CloseEvent,
    ErrorEvent,
    EventKind,
    MessageEvent,
    OpenEvent,
    WebSocketEvent,
)


class WebSocketObserver:
    """
    观察者基类

    使用示例:
        >>> class Printer(WebSocketObserver):
        ...     def on_message(self, event):
        ...         print(event.text)
    """

    def on_open(self, event: OpenEvent) -> None:
        pass

    def on_message(self, event: MessageEvent) -> None:
        pass

    def on_error(self, event: ErrorEvent) -> None:
        pass

    def on_close(self, event: CloseEvent) -> None:
        pass


class CallbackObserver(WebSocketObserver):
    """把单个可调用对象适配为只关心某一类事件的观察者"""

    def __init__(self, kind: EventKind, callback: Callable[[WebSocketEvent], None]):
        self.kind: EventKind = kind
        self.callback: Callable[[WebSocketEvent], None] = callback

    def on_open(self, event: OpenEvent) -> None:
        if self.kind is EventKind.OPEN:
            self.callback(event)

    def on_message(self, event: MessageEvent) -> None:
        if self.kind is EventKind.MESSAGE:
            self.callback(event)

    def on_error(self, event: ErrorEvent) -> None:
        if self.kind is EventKind.ERROR:
            self.callback(event)

    def on_close(self, event: CloseEvent) -> None:
        if self.kind is EventKind.CLOSE:
            self.callback(event)

    def __repr__(self) -> str:
        name = getattr(self.callback, "__qualname__", repr(self.callback))
        return f"CallbackObserver({self.kind.value}, {name})"


def notify(observer: WebSocketObserver, event: WebSocketEvent) -> None:
    """按事件标签调用观察者的对应回调"""
    match event.kind:
        case EventKind.OPEN:
            observer.on_open(event)
        case EventKind.MESSAGE:
            observer.on_message(event)
        case EventKind.ERROR:
            observer.on_error(event)
        case EventKind.CLOSE:
            observer.on_close(event)
