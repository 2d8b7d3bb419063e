"""WebSocketsChannel 本地回环测试

测试在后台线程中运行一个 websockets 回显服务器。
"""

import asyncio
import socket
import threading
import time

import pytest
from websockets.asyncio.server import serve

from pyunityws import create_connection
from pyunityws.connection import ConnectionConfig, EventKind, ReadyState
from pyunityws.transport import (
    ConnectionClosedError,
    HandshakeError,
    Payload,
    TransportConfig,
    TransportError,
    TransportSink,
    WebSocketsChannel,
)

TIMEOUT = 5.0


def wait_for(predicate, timeout: float = TIMEOUT) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class EchoServer:
    """回显服务器；收到 "close-me" 时以 4000 主动关闭"""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self.server = None
        self.port = 0

    def start(self) -> None:
        self.thread.start()
        asyncio.run_coroutine_threadsafe(self._start(), self.loop).result(TIMEOUT)

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(self._stop(), self.loop).result(TIMEOUT)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(TIMEOUT)
        self.loop.close()

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}"

    async def _start(self) -> None:
        self.server = await serve(self._handler, "127.0.0.1", 0, close_timeout=1)
        self.port = self.server.sockets[0].getsockname()[1]

    async def _stop(self) -> None:
        self.server.close()
        await self.server.wait_closed()

    async def _handler(self, ws) -> None:
        async for message in ws:
            if message == "close-me":
                await ws.close(4000, "bye")
                return
            await ws.send(message)


class RecordingSink(TransportSink):
    def __init__(self) -> None:
        self.messages: list[Payload] = []
        self.errors: list[Exception] = []
        self.unexpected: list[tuple[int, str, bool]] = []

    def on_transport_message(self, payload: Payload) -> None:
        self.messages.append(payload)

    def on_transport_error(self, error: Exception) -> None:
        self.errors.append(error)

    def on_unexpected_close(self, code: int, reason: str, was_clean: bool) -> None:
        self.unexpected.append((code, reason, was_clean))


class Outcome:
    """记录一次 begin_* 调用的回调结果"""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.value = None

    def __call__(self, *args) -> None:
        self.value = args
        self.done.set()

    def wait(self):
        assert self.done.wait(TIMEOUT)
        return self.value


@pytest.fixture(scope="module")
def echo_server():
    server = EchoServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def channel(sink):
    channel = WebSocketsChannel(
        TransportConfig(open_timeout=TIMEOUT, close_timeout=2.0, ping_interval=None)
    )
    channel.bind(sink)
    yield channel
    channel.shutdown()


def open_channel(channel, url) -> None:
    opened, failed = Outcome(), Outcome()
    channel.begin_connect(url, opened, failed)
    assert opened.done.wait(TIMEOUT), failed.value


class TestWebSocketsChannel:
    """WebSocketsChannel测试类"""

    def test_echo_text_and_binary(self, channel, sink, echo_server):
        """测试文本与二进制消息回显"""
        open_channel(channel, echo_server.url)
        assert channel.is_running

        sent = Outcome()
        channel.begin_send(Payload.from_text("hello"), sent, Outcome())
        channel.begin_send(Payload.from_bytes(b"\x00\x01"), Outcome(), Outcome())

        assert sent.wait() == ()
        assert wait_for(lambda: len(sink.messages) == 2)
        assert sink.messages[0] == Payload.from_text("hello")
        assert sink.messages[1] == Payload.from_bytes(b"\x00\x01")

    def test_client_close(self, channel, sink, echo_server):
        """测试客户端主动关闭"""
        open_channel(channel, echo_server.url)

        closed = Outcome()
        channel.begin_close(1000, "done", closed)
        code, reason, was_clean = closed.wait()

        assert code == 1000
        assert was_clean
        assert sink.unexpected == []

    def test_server_close_is_unexpected(self, channel, sink, echo_server):
        """测试服务端关闭通过 on_unexpected_close 上报"""
        open_channel(channel, echo_server.url)

        channel.begin_send(Payload.from_text("close-me"), Outcome(), Outcome())

        assert wait_for(lambda: sink.unexpected)
        assert sink.unexpected[0] == (4000, "bye", True)

    def test_connection_refused(self, channel):
        """测试连接失败上报 HandshakeError"""
        opened, failed = Outcome(), Outcome()
        channel.begin_connect(f"ws://127.0.0.1:{free_port()}", opened, failed)

        (error,) = failed.wait()
        assert isinstance(error, HandshakeError)
        assert not opened.done.is_set()

    def test_send_without_connection(self, channel):
        """测试未连接时发送立即失败"""
        failed = Outcome()
        channel.begin_send(Payload.from_text("x"), Outcome(), failed)

        (error,) = failed.wait()
        assert isinstance(error, ConnectionClosedError)

    def test_close_without_connection(self, channel):
        """测试未连接时关闭立即完成"""
        closed = Outcome()
        channel.begin_close(1000, "", closed)

        assert closed.wait() == (1000, "", False)

    def test_shutdown(self, channel, sink, echo_server):
        """测试停止事件循环线程会终止连接并上报异常断开"""
        open_channel(channel, echo_server.url)

        channel.shutdown()

        assert not channel.is_running
        assert sink.unexpected == [(1006, "", False)]
        failed = Outcome()
        channel.begin_send(Payload.from_text("x"), Outcome(), failed)
        assert isinstance(failed.wait()[0], ConnectionClosedError)

    def test_connect_after_shutdown(self, channel):
        """测试停止后的连接请求立即失败且不会重启线程"""
        channel.shutdown()

        opened, failed = Outcome(), Outcome()
        channel.begin_connect("ws://127.0.0.1:1/", opened, failed)

        assert isinstance(failed.wait()[0], ConnectionClosedError)
        assert not opened.done.is_set()
        assert not channel.is_running

    def test_shutdown_settles_queued_sends(self, channel, echo_server):
        """测试停止时所有已排队的发送都有结果"""
        open_channel(channel, echo_server.url)

        outcomes = []
        for i in range(50):
            sent, failed = Outcome(), Outcome()
            channel.begin_send(Payload.from_text(f"m{i}"), sent, failed)
            outcomes.append((sent, failed))
        channel.shutdown()

        assert wait_for(
            lambda: all(s.done.is_set() or f.done.is_set() for s, f in outcomes)
        )
        for _, failed in outcomes:
            if failed.done.is_set():
                assert isinstance(failed.value[0], ConnectionClosedError)

    @pytest.mark.parametrize(
        "address",
        [
            "ws://127.0.0.1:99999/",
            "ws://127.0.0.1:abc/",
            "http://127.0.0.1/",
        ],
    )
    def test_malformed_address(self, channel, address):
        """测试无法解析的地址通过 on_error 上报而不是丢失回调"""
        opened, failed = Outcome(), Outcome()
        channel.begin_connect(address, opened, failed)

        (error,) = failed.wait()
        assert isinstance(error, HandshakeError)
        assert not opened.done.is_set()

    def test_receive_failure_with_failing_close(self, channel, sink):
        """测试接收异常且关闭也失败时仍上报错误与断开"""

        class BrokenConnection:
            async def recv(self):
                raise RuntimeError("decoder exploded")

            async def close(self, code, reason):
                raise RuntimeError("socket already gone")

        conn = BrokenConnection()
        channel._conn = conn

        asyncio.run(channel._read_loop(conn))

        assert len(sink.errors) == 1
        assert isinstance(sink.errors[0], TransportError)
        assert sink.unexpected == [(1006, "", False)]


class TestEndToEnd:
    """WebSocketConnection 与 WebSocketsChannel 集成测试"""

    def test_full_lifecycle(self, echo_server):
        """测试连接、收发、关闭的完整流程"""
        conn = create_connection(
            ConnectionConfig(max_retries=0),
            TransportConfig(open_timeout=TIMEOUT, ping_interval=None),
        )
        events = []
        closed = threading.Event()
        conn.on(EventKind.OPEN, events.append)
        conn.on(EventKind.MESSAGE, events.append)
        conn.on(EventKind.CLOSE, lambda e: (events.append(e), closed.set()))

        conn.connect_async(echo_server.url)
        assert wait_for(lambda: conn.ready_state is ReadyState.OPEN)

        future = conn.send_async("ping")
        assert future.result(TIMEOUT) is None
        assert wait_for(lambda: len(events) == 2)
        assert events[1].text == "ping"

        conn.close_async(1000, "bye")
        assert closed.wait(TIMEOUT)

        assert conn.ready_state is ReadyState.CLOSED
        assert [e.kind for e in events] == [
            EventKind.OPEN,
            EventKind.MESSAGE,
            EventKind.CLOSE,
        ]
        assert events[-1].was_clean

    def test_transport_shutdown_closes_connection(self, echo_server):
        """测试传输通道停止后连接进入 CLOSED，待完成的发送全部有结果"""
        conn = create_connection(
            ConnectionConfig(max_retries=0),
            TransportConfig(open_timeout=TIMEOUT, close_timeout=2.0, ping_interval=None),
        )
        closes = []
        closed = threading.Event()
        conn.on(EventKind.CLOSE, lambda e: (closes.append(e), closed.set()))

        conn.connect_async(echo_server.url)
        assert wait_for(lambda: conn.ready_state is ReadyState.OPEN)

        futures = [conn.send_async(f"m{i}") for i in range(50)]
        conn._transport.shutdown()

        assert closed.wait(TIMEOUT)
        assert conn.ready_state is ReadyState.CLOSED
        assert closes[0].code == 1006
        assert not closes[0].was_clean
        for future in futures:
            error = future.exception(TIMEOUT)
            assert error is None or isinstance(error, ConnectionClosedError)
