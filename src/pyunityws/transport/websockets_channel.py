"""基于 websockets 库的传输通道实现

在独立的守护线程上运行一个私有 asyncio 事件循环，所有网络I/O都在该循环中完成，
对外的 begin_* 方法只负责把请求投递到循环里。
"""

import asyncio
import contextlib
import logging
import threading
from typing import Any, Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from pyunityws.logging import get_logger

from .abc import (
    ClosedCallback,
    ErrorCallback,
    OpenCallback,
    SentCallback,
    TransportChannel,
    TransportSink,
)
from .config import TransportConfig
from .errors import (
    ConnectionClosedError,
    HandshakeError,
    HandshakeTimeoutError,
    SendFailedError,
    TransportError,
)
from .models import CloseStatusCode, Payload

_OutboxItem = tuple[Payload, SentCallback, ErrorCallback]


class WebSocketsChannel(TransportChannel):
    """WebSocket传输通道

    以 _conn 为界，下面这些字段只在事件循环线程上读写：
    _conn、_connect_task、_reader_task、_writer_task、_outbox、_closing。
    """

    def __init__(self, config: TransportConfig | None = None) -> None:
        self.config: TransportConfig = config or TransportConfig()
        self._sink: TransportSink | None = None
        self._logger: logging.Logger = get_logger("transport.websockets")

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._loop_lock: threading.Lock = threading.Lock()

        self._conn: ClientConnection | None = None
        self._connect_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None
        self._writer_task: asyncio.Task | None = None
        self._outbox: asyncio.Queue[_OutboxItem] | None = None
        self._closing: bool = False
        self._stopped: bool = False

    # ========================================================================
    # 公共接口：只做投递，不阻塞
    # ========================================================================

    def bind(self, sink: TransportSink) -> None:
        self._sink = sink

    def begin_connect(
        self, address: str, on_open: OpenCallback, on_error: ErrorCallback
    ) -> None:
        loop = self._ensure_loop()
        if loop is None:
            self._invoke(on_error, ConnectionClosedError("传输通道已停止"))
            return
        loop.call_soon_threadsafe(self._start_connect, address, on_open, on_error)

    def begin_send(
        self, payload: Payload, on_sent: SentCallback, on_error: ErrorCallback
    ) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._invoke(on_error, ConnectionClosedError("传输通道未连接"))
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, payload, on_sent, on_error)
        except RuntimeError as e:
            # 事件循环已被 shutdown 关闭
            self._invoke(on_error, ConnectionClosedError(f"传输通道已停止: {e}"))

    def begin_close(self, code: int, reason: str, on_closed: ClosedCallback) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._invoke(on_closed, code, reason, False)
            return
        loop.call_soon_threadsafe(self._start_close, code, reason, on_closed)

    def shutdown(self, timeout: float = 5.0) -> None:
        """停止事件循环线程

        先在循环中终止进行中的握手与连接：未完成的发送以 ConnectionClosedError 失败，
        已建立的连接通过 on_unexpected_close 上报。停止后通道不可再用，
        之后的 begin_connect / begin_send 立即失败。
        """
        with self._loop_lock:
            self._stopped = True
            loop, thread = self._loop, self._thread
            self._loop, self._thread = None, None

        if loop is None or loop.is_closed():
            return

        teardown = asyncio.run_coroutine_threadsafe(self._teardown(), loop)
        if thread is threading.current_thread():
            # 在事件循环线程内调用，不能阻塞等待
            teardown.add_done_callback(lambda _: loop.stop())
            return

        try:
            teardown.result(timeout)
        except Exception as e:
            self._logger.warning(
                "终止连接未完成",
                extra={"error": str(e), "error_type": type(e).__name__},
            )

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout)
        if not loop.is_running():
            loop.close()
        self._logger.info("传输事件循环已停止")

    @property
    def is_running(self) -> bool:
        """事件循环线程是否在运行"""
        thread = self._thread
        return thread is not None and thread.is_alive()

    # ========================================================================
    # 事件循环管理
    # ========================================================================

    def _ensure_loop(self) -> asyncio.AbstractEventLoop | None:
        with self._loop_lock:
            if self._stopped:
                return None
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=self._run_loop,
                    args=(loop,),
                    name="pyunityws-transport",
                    daemon=True,
                )
                thread.start()
                self._loop, self._thread = loop, thread
            return self._loop

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        loop.run_forever()

    # ========================================================================
    # 连接
    # ========================================================================

    def _start_connect(
        self, address: str, on_open: OpenCallback, on_error: ErrorCallback
    ) -> None:
        self._closing = False
        self._connect_task = asyncio.get_running_loop().create_task(
            self._connect(address, on_open, on_error)
        )

    def _connect_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "open_timeout": self.config.open_timeout,
            "close_timeout": self.config.close_timeout,
            "ping_interval": self.config.ping_interval,
            "ping_timeout": self.config.ping_timeout,
            "max_size": self.config.max_message_size,
            "max_queue": self.config.max_queue,
        }
        if self.config.additional_headers:
            kwargs["additional_headers"] = dict(self.config.additional_headers)
        if self.config.user_agent is not None:
            kwargs["user_agent_header"] = self.config.user_agent
        return kwargs

    async def _connect(
        self, address: str, on_open: OpenCallback, on_error: ErrorCallback
    ) -> None:
        self._logger.info("开始WebSocket握手", extra={"address": address})
        try:
            conn = await connect(address, **self._connect_kwargs())
        except TimeoutError:
            self._logger.error("握手超时", extra={"address": address})
            self._invoke(on_error, HandshakeTimeoutError(f"握手超时: {address}"))
            return
        except (InvalidURI, InvalidHandshake) as e:
            self._logger.error(
                "握手失败",
                extra={"address": address, "error": str(e), "error_type": type(e).__name__},
            )
            self._invoke(on_error, HandshakeError(f"握手失败: {e}"))
            return
        except (OSError, WebSocketException) as e:
            self._logger.error(
                "连接失败",
                extra={"address": address, "error": str(e), "error_type": type(e).__name__},
            )
            self._invoke(on_error, HandshakeError(f"连接失败: {e}"))
            return
        except asyncio.CancelledError:
            self._invoke(on_error, ConnectionClosedError("握手已取消"))
            raise
        except Exception as e:
            # websockets 对非法端口等参数直接抛出 ValueError
            self._logger.error(
                "连接失败",
                extra={"address": address, "error": str(e), "error_type": type(e).__name__},
            )
            self._invoke(on_error, HandshakeError(f"连接失败: {e}"))
            return
        finally:
            self._connect_task = None

        loop = asyncio.get_running_loop()
        self._conn = conn
        self._outbox = asyncio.Queue()
        self._writer_task = loop.create_task(self._write_loop(conn, self._outbox))
        self._reader_task = loop.create_task(self._read_loop(conn))
        self._logger.info("WebSocket握手完成", extra={"address": address})
        self._invoke(on_open)

    # ========================================================================
    # 收发
    # ========================================================================

    async def _read_loop(self, conn: ClientConnection) -> None:
        code: int = CloseStatusCode.ABNORMAL
        reason: str = ""
        was_clean: bool = False
        try:
            while True:
                message = await conn.recv()
                if isinstance(message, str):
                    payload = Payload.from_text(message)
                else:
                    payload = Payload.from_bytes(message)
                self._logger.debug(
                    "收到消息",
                    extra={"bytes_received": len(payload), "is_text": payload.is_text},
                )
                self._notify_sink("on_transport_message", payload)
        except ConnectionClosed as exc:
            if exc.rcvd is not None:
                code, reason = exc.rcvd.code, exc.rcvd.reason
            was_clean = exc.rcvd is not None and exc.sent is not None
        except Exception as e:
            # recv以外的异常：上报后按异常断开处理
            self._logger.error(
                "接收消息失败",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            self._notify_sink("on_transport_error", TransportError(f"接收消息失败: {e}"))
            with contextlib.suppress(Exception):
                await conn.close(CloseStatusCode.SERVER_ERROR, "receive failure")
        finally:
            await self._stop_writer()

        if self._closing or self._conn is not conn:
            return

        self._conn = None
        self._logger.warning(
            "连接意外断开",
            extra={"code": code, "reason": reason, "was_clean": was_clean},
        )
        self._notify_sink("on_unexpected_close", code, reason, was_clean)

    async def _write_loop(
        self, conn: ClientConnection, outbox: "asyncio.Queue[_OutboxItem]"
    ) -> None:
        while True:
            payload, on_sent, on_error = await outbox.get()
            try:
                await conn.send(payload.text if payload.is_text else payload.data)
            except asyncio.CancelledError:
                self._invoke(on_error, ConnectionClosedError("连接已关闭，消息未发送"))
                raise
            except ConnectionClosed as e:
                self._invoke(on_error, ConnectionClosedError(f"连接已关闭: {e}"))
            except Exception as e:
                self._logger.error(
                    "发送消息失败",
                    extra={"error": str(e), "error_type": type(e).__name__},
                )
                self._invoke(on_error, SendFailedError(f"发送消息失败: {e}"))
            else:
                self._logger.debug("发送消息成功", extra={"bytes_sent": len(payload)})
                self._invoke(on_sent)

    def _enqueue(
        self, payload: Payload, on_sent: SentCallback, on_error: ErrorCallback
    ) -> None:
        if self._outbox is None:
            self._invoke(on_error, ConnectionClosedError("连接未建立，无法发送消息"))
            return
        self._outbox.put_nowait((payload, on_sent, on_error))

    async def _stop_writer(self) -> None:
        writer, outbox = self._writer_task, self._outbox
        self._writer_task, self._outbox = None, None

        try:
            if writer is not None:
                writer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await writer
        finally:
            if outbox is not None:
                while not outbox.empty():
                    _, _, on_error = outbox.get_nowait()
                    self._invoke(on_error, ConnectionClosedError("连接已关闭，消息未发送"))

    # ========================================================================
    # 关闭
    # ========================================================================

    def _start_close(self, code: int, reason: str, on_closed: ClosedCallback) -> None:
        asyncio.get_running_loop().create_task(self._close(code, reason, on_closed))

    async def _close(self, code: int, reason: str, on_closed: ClosedCallback) -> None:
        self._closing = True

        connect_task = self._connect_task
        if connect_task is not None and not connect_task.done():
            self._logger.info("取消进行中的握手")
            connect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await connect_task

        conn = self._conn
        if conn is None:
            self._invoke(on_closed, code, reason, False)
            return

        try:
            await conn.close(code, reason)
        except Exception as e:
            self._logger.error(
                "关闭连接时发生错误",
                extra={"error": str(e), "error_type": type(e).__name__},
            )

        reader = self._reader_task
        if reader is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        self._reader_task = None
        self._conn = None

        close_rcvd = conn.protocol.close_rcvd
        was_clean = close_rcvd is not None and conn.protocol.close_sent is not None
        if close_rcvd is not None:
            code, reason = close_rcvd.code, close_rcvd.reason

        self._logger.info(
            "连接已关闭",
            extra={"code": code, "reason": reason, "was_clean": was_clean},
        )
        self._invoke(on_closed, code, reason, was_clean)

    async def _teardown(self) -> None:
        connect_task = self._connect_task
        if connect_task is not None and not connect_task.done():
            connect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await connect_task

        conn, reader = self._conn, self._reader_task
        self._conn, self._reader_task = None, None
        self._closing = True

        if conn is not None:
            with contextlib.suppress(Exception):
                await conn.close(CloseStatusCode.AWAY, "client shutdown")

        if reader is not None:
            # 连接关闭后 recv 会结束，读任务自行停止写任务并清空待发送队列
            done, _ = await asyncio.wait({reader}, timeout=self.config.close_timeout)
            if not done:
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader
        await self._stop_writer()

        if conn is not None:
            self._logger.warning("传输通道停止，连接被终止")
            self._notify_sink(
                "on_unexpected_close", CloseStatusCode.ABNORMAL, "", False
            )

    # ========================================================================
    # 回调调用
    # ========================================================================

    def _notify_sink(self, method: str, *args: Any) -> None:
        if self._sink is None:
            self._logger.warning("未绑定TransportSink，丢弃入站事件", extra={"event": method})
            return
        self._invoke(getattr(self._sink, method), *args)

    def _invoke(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as e:
            # 回调运行在事件循环线程上，异常不能打断循环
            self._logger.error(
                "传输回调执行失败",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
