"""
WebSocket连接控制器

对外提供非阻塞的 connect_async / send_async / close_async，
根据当前状态接受或拒绝请求，驱动传输通道，并把传输层事件经分发器送达观察者。

并发模型:
- 状态机、重连计数、待完成发送队列都由 self._lock 保护
- 持锁期间只做状态判断与转换、把事件放入分发器队列，
  从不调用传输通道、观察者或发送完成回调
- 事件在释放锁之后由 dispatcher.drain() 投递，因此投递顺序与状态转换顺序一致
"""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from functools import partial
from typing import Callable
from urllib.parse import urlsplit

from pyunityws.logging import get_logger
from pyunityws.transport.abc import TransportChannel, TransportSink
from pyunityws.transport.models import CloseStatusCode, Payload

from .config import ConnectionConfig, ConnectionRole
from .dispatcher import EventDispatcher
from .errors import (
    ConnectionClosedError,
    HandshakeError,
    InvalidArgumentError,
    InvalidStateError,
    ReconnectExhaustedError,
    SendFailedError,
    TransportError,
)
from .events import CloseEvent, ErrorEvent, EventKind, MessageEvent, OpenEvent, WebSocketEvent
from .models import SendCallback, SendOperation
from .observer import CallbackObserver, WebSocketObserver
from .reconnect import (
    BackoffPolicy,
    ReconnectAction,
    ReconnectDecision,
    ReconnectGovernor,
    Scheduler,
    ThreadingScheduler,
)
from .states import ConnectionStateMachine, ReadyState

MAX_CLOSE_REASON_BYTES = 123


class WebSocketConnection(TransportSink):
    """WebSocket连接

    一个实例对应一个逻辑连接，地址在第一次 connect_async 时确定且之后不可修改。
    进入 Closed 后可以用同一地址再次 connect_async 复用该实例。

    使用示例:
        >>> conn = WebSocketConnection(WebSocketsChannel())
        >>> conn.on(EventKind.MESSAGE, lambda e: print(e.text))
        >>> conn.connect_async("ws://localhost:8080/chat")
    """

    def __init__(
        self,
        transport: TransportChannel,
        config: ConnectionConfig | None = None,
        scheduler: Scheduler | None = None,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self.config: ConnectionConfig = config or ConnectionConfig()
        self._transport: TransportChannel = transport
        self._dispatcher: EventDispatcher = dispatcher or EventDispatcher()
        self._logger: logging.Logger = get_logger("connection")

        self._lock: threading.Lock = threading.Lock()
        # 保证发送按 send_async 的调用顺序交给传输层，允许在完成回调中再次发送
        self._submit_lock: threading.RLock = threading.RLock()

        self._state: ConnectionStateMachine = ConnectionStateMachine()
        self._governor: ReconnectGovernor = ReconnectGovernor(
            self.config.max_retries,
            BackoffPolicy.from_config(self.config),
            scheduler or ThreadingScheduler(),
        )

        self._address: str = ""
        # 每次发起连接递增，用于识别过期的传输回调
        self._attempt: int = 0
        self._connect_in_flight: bool = False
        self._close_in_flight: bool = False

        self._pending: OrderedDict[int, SendOperation] = OrderedDict()
        self._next_op_id: int = 1

        transport.bind(self)

    # ========================================================================
    # 只读属性
    # ========================================================================

    @property
    def address(self) -> str:
        """目标地址，第一次连接前为空字符串"""
        return self._address

    @property
    def ready_state(self) -> ReadyState:
        """当前状态，默认值为 CONNECTING"""
        with self._lock:
            return self._state.ready_state

    @property
    def role(self) -> ConnectionRole:
        return self.config.role

    @property
    def retry_count(self) -> int:
        """自上次成功建立连接以来的重连次数"""
        with self._lock:
            return self._governor.attempts

    @property
    def retries_exhausted(self) -> bool:
        with self._lock:
            return self._governor.exhausted

    @property
    def reconnect_scheduled(self) -> bool:
        with self._lock:
            return self._governor.is_pending

    @property
    def pending_sends(self) -> int:
        """已接受但尚未完成的发送数量"""
        with self._lock:
            return len(self._pending)

    @property
    def state_history(self) -> list[tuple[ReadyState, ReadyState]]:
        """最近的状态转换记录 (source, target)"""
        with self._lock:
            return list(self._state.history)

    # ========================================================================
    # 观察者
    # ========================================================================

    def add_observer(self, observer: WebSocketObserver) -> None:
        self._dispatcher.add_observer(observer)

    def remove_observer(self, observer: WebSocketObserver) -> bool:
        return self._dispatcher.remove_observer(observer)

    def on(
        self, kind: EventKind, callback: Callable[[WebSocketEvent], None]
    ) -> CallbackObserver:
        """注册单一事件类型的回调"""
        return self._dispatcher.on(kind, callback)

    # ========================================================================
    # 连接
    # ========================================================================

    def connect_async(self, address: str) -> None:
        """异步建立连接，不等待握手完成

        已经 Open 或正在握手时调用无效果。

        Raises:
            InvalidArgumentError: 地址为空、协议不是 ws/wss、主机或端口无效、或与已记录的地址不同
            InvalidStateError: 非客户端角色、正在关闭、或重连次数已耗尽
        """
        address = self._validate_address(address)

        with self._lock:
            if self.config.role is not ConnectionRole.CLIENT:
                raise self._reject(InvalidStateError("该实例不是客户端，不能发起连接"))

            if self._state.is_closing:
                raise self._reject(InvalidStateError("正在关闭，不能发起连接"))

            if self._governor.exhausted:
                raise self._reject(
                    InvalidStateError(f"重连 {self._address} 已失败，需要 reset_retries()")
                )

            if self._address and address != self._address:
                raise self._reject(
                    InvalidArgumentError(
                        f"地址不可修改: 已为 {self._address}，收到 {address}"
                    )
                )

            if self._state.is_open or (
                self._state.is_connecting and self._connect_in_flight
            ):
                self._logger.debug(
                    "连接已建立或正在建立，忽略重复的连接请求",
                    extra={"address": address, "state": self._state.current_state_name},
                )
                return

            if self._state.is_closed:
                self._state.restart()

            self._address = address
            self._governor.resume()
            attempt = self._begin_attempt()

        self._start_connect(attempt, address)

    def _begin_attempt(self) -> int:
        self._attempt += 1
        self._connect_in_flight = True
        return self._attempt

    def _start_connect(self, attempt: int, address: str) -> None:
        self._logger.info(
            "开始连接",
            extra={"address": address, "attempt": attempt},
        )
        try:
            self._transport.begin_connect(
                address,
                partial(self._handle_open, attempt),
                partial(self._handle_connect_error, attempt),
            )
        except Exception as e:
            self._handle_connect_error(attempt, e)

    def _handle_open(self, attempt: int) -> None:
        with self._lock:
            if attempt != self._attempt or not self._state.is_connecting:
                self._logger.debug(
                    "忽略过期的握手完成回调",
                    extra={"attempt": attempt, "state": self._state.current_state_name},
                )
                return
            self._connect_in_flight = False
            self._state.establish()
            self._governor.on_open()
            self._dispatcher.post(OpenEvent(self._address))

        self._logger.info("连接已建立", extra={"address": self._address})
        self._dispatcher.drain()

    def _handle_connect_error(self, attempt: int, error: Exception) -> None:
        with self._lock:
            if (
                attempt != self._attempt
                or not self._state.is_connecting
                or not self._connect_in_flight
            ):
                self._logger.debug(
                    "忽略过期的握手失败回调",
                    extra={"attempt": attempt, "error": str(error)},
                )
                return

            if not isinstance(error, TransportError):
                error = HandshakeError(f"握手失败: {error}")

            self._connect_in_flight = False
            self._state.fail()
            self._dispatcher.post(ErrorEvent.from_exception(error))
            self._dispatcher.post(
                CloseEvent(CloseStatusCode.ABNORMAL, str(error), was_clean=False)
            )
            failed = self._take_pending()
            decision = self._governor.on_unexpected_close(self._on_reconnect_due)
            self._post_decision(decision)

        self._logger.warning(
            "连接失败",
            extra={
                "address": self._address,
                "error": str(error),
                "error_type": type(error).__name__,
                "reconnect": decision.action.value,
            },
        )
        self._finish(failed)

    def _on_reconnect_due(self, token: object) -> None:
        with self._lock:
            if not self._governor.claim(token):
                return
            if not self._state.is_closed:
                self._logger.debug(
                    "状态已变化，放弃本次重连",
                    extra={"state": self._state.current_state_name},
                )
                return
            self._state.restart()
            attempt = self._begin_attempt()
            address = self._address
            retry = self._governor.attempts

        self._logger.info("自动重连", extra={"address": address, "retry": retry})
        self._start_connect(attempt, address)

    def _post_decision(self, decision: ReconnectDecision) -> None:
        if decision.action is ReconnectAction.EXHAUSTED:
            self._dispatcher.post(
                ErrorEvent.from_exception(
                    ReconnectExhaustedError(self._address, decision.attempt)
                )
            )

    def reset_retries(self) -> None:
        """清除重连计数与耗尽标记，之后可以再次 connect_async"""
        with self._lock:
            self._governor.reset()
        self._logger.info("重连计数已重置", extra={"address": self._address})

    # ========================================================================
    # 关闭
    # ========================================================================

    def close_async(
        self, code: int = CloseStatusCode.NORMAL, reason: str = ""
    ) -> None:
        """异步关闭连接，不等待关闭完成

        正在关闭或已关闭时无效果（但仍会取消计划中的重连）。

        Raises:
            InvalidArgumentError: 状态码不是1000或3000-4999，或原因超过123字节
        """
        self._validate_close(code, reason)

        with self._lock:
            self._governor.suppress()

            if self._state.is_closing or self._state.is_closed:
                self._logger.debug(
                    "已在关闭流程中，忽略关闭请求",
                    extra={"state": self._state.current_state_name},
                )
                return

            if self._state.is_connecting and not self._connect_in_flight:
                # 从未发起连接，无需经过传输层
                self._state.start_closing()
                self._state.finish_closing()
                self._logger.info("空闲连接已关闭")
                return

            self._connect_in_flight = False
            self._close_in_flight = True
            self._state.start_closing()
            attempt = self._attempt

        self._logger.info(
            "开始关闭连接",
            extra={"address": self._address, "code": int(code), "reason": reason},
        )
        try:
            self._transport.begin_close(
                code, reason, partial(self._handle_closed, attempt)
            )
        except Exception as e:
            self.on_transport_error(e)
            self._handle_closed(attempt, CloseStatusCode.ABNORMAL, str(e), False)

    def _handle_closed(
        self,
        attempt: int,
        code: int = CloseStatusCode.NORMAL,
        reason: str = "",
        was_clean: bool = True,
    ) -> None:
        with self._lock:
            if attempt != self._attempt or not self._state.is_closing:
                self._logger.debug(
                    "忽略过期的关闭完成回调",
                    extra={"attempt": attempt, "state": self._state.current_state_name},
                )
                return
            failed = self._complete_close(code, reason, was_clean)

        self._logger.info(
            "连接已关闭",
            extra={"address": self._address, "code": code, "was_clean": was_clean},
        )
        self._finish(failed)

    def _complete_close(
        self, code: int, reason: str, was_clean: bool
    ) -> list[SendOperation]:
        """Closing → Closed，持锁调用"""
        self._close_in_flight = False
        self._state.finish_closing()
        self._dispatcher.post(CloseEvent(code, reason, was_clean))
        return self._take_pending()

    def _take_pending(self) -> list[SendOperation]:
        ops = list(self._pending.values())
        self._pending.clear()
        return ops

    def _finish(self, failed: list[SendOperation]) -> None:
        for op in failed:
            op.settle(ConnectionClosedError("连接已关闭，发送未完成"))
        self._dispatcher.drain()

    # ========================================================================
    # 发送
    # ========================================================================

    def send_async(
        self,
        data: bytes | bytearray | memoryview | str,
        on_complete: SendCallback | None = None,
    ) -> Future:
        """异步发送消息，不等待发送完成

        Args:
            data: 二进制数据或文本
            on_complete: 发送完成回调，参数表示是否成功，恰好调用一次

        Returns:
            Future: 成功时结果为None，失败时为 TransportError

        Raises:
            InvalidArgumentError: data 为None、类型不支持或文本无法编码为UTF-8
            InvalidStateError: 当前状态不是 Open
        """
        payload = self._build_payload(data)

        with self._submit_lock:
            with self._lock:
                if not self._state.is_open:
                    raise self._reject(
                        InvalidStateError(
                            f"当前状态 {self._state.ready_state.name} 不允许发送消息"
                        )
                    )
                op = SendOperation(self._next_op_id, payload, on_complete)
                self._next_op_id += 1
                self._pending[op.op_id] = op

            self._logger.debug(
                "提交发送",
                extra={"op_id": op.op_id, "bytes": len(payload), "is_text": payload.is_text},
            )
            try:
                self._transport.begin_send(
                    payload,
                    partial(self._handle_sent, op.op_id),
                    partial(self._handle_send_error, op.op_id),
                )
            except Exception as e:
                self._handle_send_error(op.op_id, e)

        return op.future

    def _handle_sent(self, op_id: int) -> None:
        with self._lock:
            op = self._pending.pop(op_id, None)
        if op is not None:
            op.settle()

    def _handle_send_error(self, op_id: int, error: Exception) -> None:
        if not isinstance(error, TransportError):
            error = SendFailedError(f"发送失败: {error}")

        with self._lock:
            op = self._pending.pop(op_id, None)
            if op is None:
                return
            if not self._state.is_closed:
                self._dispatcher.post(ErrorEvent.from_exception(error))

        self._logger.warning(
            "发送失败",
            extra={"op_id": op_id, "error": str(error), "error_type": type(error).__name__},
        )
        op.settle(error)
        self._dispatcher.drain()

    # ========================================================================
    # TransportSink
    # ========================================================================

    def on_transport_message(self, payload: Payload) -> None:
        with self._lock:
            if not (self._state.is_open or self._state.is_closing):
                self._logger.warning(
                    "连接未打开，丢弃收到的消息",
                    extra={"state": self._state.current_state_name, "bytes": len(payload)},
                )
                return
            self._dispatcher.post(MessageEvent(payload))
        self._dispatcher.drain()

    def on_transport_error(self, error: Exception) -> None:
        if not isinstance(error, TransportError):
            error = TransportError(str(error))

        with self._lock:
            if self._state.is_closed:
                self._logger.debug("连接已关闭，忽略传输错误", extra={"error": str(error)})
                return
            self._dispatcher.post(ErrorEvent.from_exception(error))

        self._logger.warning(
            "传输错误",
            extra={"error": str(error), "error_type": type(error).__name__},
        )
        self._dispatcher.drain()

    def on_unexpected_close(self, code: int, reason: str, was_clean: bool) -> None:
        with self._lock:
            if self._state.is_connecting and self._connect_in_flight:
                attempt = self._attempt
            elif self._state.is_open or self._state.is_closing:
                attempt = None
            else:
                self._logger.debug(
                    "连接未打开，忽略断开通知",
                    extra={"state": self._state.current_state_name, "code": code},
                )
                return

            if attempt is None:
                if self._state.is_open:
                    self._state.start_closing()
                explicit = self._close_in_flight
                failed = self._complete_close(code, reason, was_clean)
                decision = None
                if not explicit:
                    decision = self._governor.on_unexpected_close(self._on_reconnect_due)
                    self._post_decision(decision)

        if attempt is not None:
            # 握手期间断开，按握手失败处理
            self._handle_connect_error(
                attempt, ConnectionClosedError(f"握手期间连接断开: {code} {reason}")
            )
            return

        self._logger.warning(
            "连接断开",
            extra={
                "address": self._address,
                "code": code,
                "reason": reason,
                "was_clean": was_clean,
                "reconnect": decision.action.value if decision else "none",
            },
        )
        self._finish(failed)

    # ========================================================================
    # 参数校验
    # ========================================================================

    def _validate_address(self, address: str) -> str:
        if not isinstance(address, str) or not address.strip():
            raise self._reject(InvalidArgumentError("地址不能为空"))

        address = address.strip()
        parts = urlsplit(address)
        if parts.scheme.lower() not in self.config.allowed_schemes:
            raise self._reject(
                InvalidArgumentError(
                    f"不支持的协议: {parts.scheme or '(none)'}，"
                    f"只允许 {', '.join(self.config.allowed_schemes)}"
                )
            )
        if not parts.hostname:
            raise self._reject(InvalidArgumentError(f"地址缺少主机: {address}"))
        try:
            parts.port
        except ValueError as e:
            raise self._reject(InvalidArgumentError(f"地址端口无效: {address}: {e}")) from e
        return address

    def _validate_close(self, code: int, reason: str) -> None:
        if not isinstance(code, int) or not (
            code == CloseStatusCode.NORMAL or 3000 <= code <= 4999
        ):
            raise self._reject(
                InvalidArgumentError(f"关闭状态码必须为1000或3000-4999: {code}")
            )
        if not isinstance(reason, str):
            raise self._reject(InvalidArgumentError("关闭原因必须是字符串"))
        try:
            encoded = reason.encode("utf-8")
        except UnicodeEncodeError as e:
            raise self._reject(InvalidArgumentError(f"关闭原因无法编码为UTF-8: {e}")) from e
        if len(encoded) > MAX_CLOSE_REASON_BYTES:
            raise self._reject(
                InvalidArgumentError(
                    f"关闭原因超过{MAX_CLOSE_REASON_BYTES}字节: {len(encoded)}"
                )
            )

    def _build_payload(self, data: bytes | bytearray | memoryview | str) -> Payload:
        if data is None:
            raise self._reject(InvalidArgumentError("发送数据不能为None"))
        if isinstance(data, str):
            try:
                return Payload.from_text(data)
            except UnicodeEncodeError as e:
                raise self._reject(
                    InvalidArgumentError(f"文本无法编码为UTF-8: {e}")
                ) from e
        if isinstance(data, (bytes, bytearray, memoryview)):
            return Payload.from_bytes(data)
        raise self._reject(
            InvalidArgumentError(f"不支持的数据类型: {type(data).__name__}")
        )

    def _reject(self, error: Exception) -> Exception:
        self._logger.warning(
            "拒绝操作",
            extra={
                "address": self._address,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
        return error

    def __repr__(self) -> str:
        return (
            f"WebSocketConnection(address={self._address!r}, "
            f"state={self._state.current_state_name})"
        )
