"""
事件分发器

保证事件按投递顺序、逐个、恰好一次地送达所有已注册的观察者。

- post() 只把事件放入队列，可以在持有控制器锁时调用
- drain() 由任意线程调用，同一时刻只有一个线程负责投递，其余线程直接返回，
  因此传输层的回调线程不会被其他线程上的慢观察者阻塞
- 注册/注销与投递通过读写锁互斥：一次投递要么完全看到变更前的观察者列表，
  要么完全看到变更后的列表
"""

import logging
import threading
from collections import deque
from typing import Callable

from pyunityws.logging import get_logger
from pyunityws.utils import ReadWriteLock

from .events import EventKind, WebSocketEvent
from .observer import CallbackObserver, WebSocketObserver, notify


class EventDispatcher:
    """事件分发器"""

    def __init__(self) -> None:
        self._logger: logging.Logger = get_logger("connection.dispatcher")

        # 观察者列表采用写时复制，投递时读取快照
        self._observers: tuple[WebSocketObserver, ...] = ()
        self._observers_lock: threading.Lock = threading.Lock()
        self._fence: ReadWriteLock = ReadWriteLock()

        self._queue: deque[WebSocketEvent] = deque()
        self._queue_lock: threading.Lock = threading.Lock()
        self._draining: bool = False

        # 当前线程是否正在执行观察者回调
        self._local = threading.local()

        self._delivered_count: int = 0
        self._observer_error_count: int = 0

    # ========================================================================
    # 观察者管理
    # ========================================================================

    def add_observer(self, observer: WebSocketObserver) -> None:
        """注册观察者，重复注册同一对象无效果"""
        self._mutate(
            lambda observers: observers
            if observer in observers
            else observers + (observer,)
        )

    def remove_observer(self, observer: WebSocketObserver) -> bool:
        """注销观察者

        在其他线程调用时会等待进行中的投递结束；在观察者回调内部调用时，
        变更从下一个事件开始生效。

        Returns:
            bool: 观察者之前是否已注册
        """
        removed: list[bool] = []

        def _remove(observers: tuple[WebSocketObserver, ...]):
            removed.append(observer in observers)
            return tuple(o for o in observers if o is not observer)

        self._mutate(_remove)
        return removed[0]

    def on(
        self, kind: EventKind, callback: Callable[[WebSocketEvent], None]
    ) -> CallbackObserver:
        """为单一事件类型注册回调，返回的观察者可用于注销"""
        observer = CallbackObserver(kind, callback)
        self.add_observer(observer)
        return observer

    @property
    def observers(self) -> tuple[WebSocketObserver, ...]:
        return self._observers

    def _mutate(
        self,
        change: Callable[[tuple[WebSocketObserver, ...]], tuple[WebSocketObserver, ...]],
    ) -> None:
        if self._in_delivery():
            # 投递线程自己持有读锁，不能再等写锁
            with self._observers_lock:
                self._observers = change(self._observers)
            return

        with self._fence.write_locked():
            with self._observers_lock:
                self._observers = change(self._observers)

    def _in_delivery(self) -> bool:
        return getattr(self._local, "depth", 0) > 0

    # ========================================================================
    # 投递
    # ========================================================================

    def post(self, event: WebSocketEvent) -> None:
        """把事件放入投递队列"""
        with self._queue_lock:
            self._queue.append(event)

    def drain(self) -> None:
        """投递队列中的所有事件

        若其他线程（或当前线程的外层调用）正在投递，立即返回，
        由正在投递的线程负责把新事件送达。
        """
        with self._queue_lock:
            if self._draining:
                return
            self._draining = True

        try:
            while True:
                with self._queue_lock:
                    if not self._queue:
                        self._draining = False
                        return
                    event = self._queue.popleft()
                self._deliver(event)
        except BaseException:
            with self._queue_lock:
                self._draining = False
            raise

    def emit(self, event: WebSocketEvent) -> None:
        """投递单个事件"""
        self.post(event)
        self.drain()

    @property
    def pending_count(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    @property
    def delivered_count(self) -> int:
        return self._delivered_count

    @property
    def observer_error_count(self) -> int:
        return self._observer_error_count

    def _deliver(self, event: WebSocketEvent) -> None:
        self._local.depth = getattr(self._local, "depth", 0) + 1
        try:
            with self._fence.read_locked():
                for observer in self._observers:
                    try:
                        notify(observer, event)
                    except Exception as e:
                        self._observer_error_count += 1
                        self._logger.error(
                            "观察者处理事件失败",
                            extra={
                                "observer": repr(observer),
                                "event_kind": event.kind.value,
                                "error": str(e),
                                "error_type": type(e).__name__,
                            },
                            exc_info=True,
                        )
            self._delivered_count += 1
        finally:
            self._local.depth -= 1
