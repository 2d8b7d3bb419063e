"""测试公共夹具：内存传输通道、手动调度器、记录型观察者"""

from dataclasses import dataclass, field
from typing import Callable

import pytest

from pyunityws.connection import (
    ConnectionConfig,
    EventKind,
    WebSocketConnection,
    WebSocketObserver,
)
from pyunityws.connection.reconnect import ScheduledCall, Scheduler
from pyunityws.transport.abc import TransportChannel, TransportSink
from pyunityws.transport.errors import HandshakeError, SendFailedError
from pyunityws.transport.models import CloseStatusCode, Payload


class FakeTransport(TransportChannel):
    """内存传输通道，记录所有请求，由测试手动触发回调"""

    def __init__(self) -> None:
        self.sink: TransportSink | None = None
        self.connects: list[tuple[str, Callable, Callable]] = []
        self.sends: list[tuple[Payload, Callable, Callable]] = []
        self.closes: list[tuple[int, str, Callable]] = []

    def bind(self, sink: TransportSink) -> None:
        self.sink = sink

    def begin_connect(self, address, on_open, on_error) -> None:
        self.connects.append((address, on_open, on_error))

    def begin_send(self, payload, on_sent, on_error) -> None:
        self.sends.append((payload, on_sent, on_error))

    def begin_close(self, code, reason, on_closed) -> None:
        self.closes.append((code, reason, on_closed))

    # 测试驱动的回调

    def open(self, index: int = -1) -> None:
        self.connects[index][1]()

    def fail_connect(self, error: Exception | None = None, index: int = -1) -> None:
        self.connects[index][2](error or HandshakeError("connection refused"))

    def complete_send(self, index: int = 0) -> None:
        self.sends[index][1]()

    def fail_send(self, error: Exception | None = None, index: int = 0) -> None:
        self.sends[index][2](error or SendFailedError("broken pipe"))

    def complete_close(
        self,
        code: int = CloseStatusCode.NORMAL,
        reason: str = "",
        was_clean: bool = True,
        index: int = -1,
    ) -> None:
        self.closes[index][2](code, reason, was_clean)

    def receive(self, payload: Payload) -> None:
        self.sink.on_transport_message(payload)

    def drop(
        self,
        code: int = CloseStatusCode.ABNORMAL,
        reason: str = "",
        was_clean: bool = False,
    ) -> None:
        self.sink.on_unexpected_close(code, reason, was_clean)


@dataclass
class FakeCall(ScheduledCall):
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler(Scheduler):
    """只记录延迟调用，由测试调用 fire() 触发"""

    calls: list[FakeCall] = field(default_factory=list)

    def call_later(self, delay, callback) -> FakeCall:
        call = FakeCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def active(self) -> list[FakeCall]:
        return [c for c in self.calls if not c.cancelled and not c.fired]

    def fire(self, call: FakeCall | None = None) -> None:
        """触发调用；已取消的调用同样会执行，用来模拟取消与到期之间的竞争"""
        call = call or self.calls[-1]
        call.fired = True
        call.callback()

    def fire_pending(self) -> int:
        fired = 0
        for call in self.active:
            self.fire(call)
            fired += 1
        return fired


class RecordingObserver(WebSocketObserver):
    """按顺序记录收到的事件"""

    def __init__(self) -> None:
        self.events: list = []

    def on_open(self, event) -> None:
        self.events.append(event)

    def on_message(self, event) -> None:
        self.events.append(event)

    def on_error(self, event) -> None:
        self.events.append(event)

    def on_close(self, event) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[EventKind]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: EventKind) -> list:
        return [e for e in self.events if e.kind is kind]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def config() -> ConnectionConfig:
    return ConnectionConfig(max_retries=2, retry_interval=0.5, max_retry_interval=10.0)


@pytest.fixture
def conn(transport, scheduler, recorder, config) -> WebSocketConnection:
    connection = WebSocketConnection(transport, config, scheduler=scheduler)
    connection.add_observer(recorder)
    return connection


@pytest.fixture
def open_conn(conn, transport) -> WebSocketConnection:
    conn.connect_async("ws://host")
    transport.open()
    return conn
