"""
自动重连控制

ReconnectGovernor 记录自上次成功建立连接以来的重连次数，在意外断开时决定
是否以及何时重新连接。它本身不加锁，所有方法都必须在连接控制器的锁内调用，
这样“主动关闭时取消重连”与“定时器触发重连”之间不存在竞争。
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from pyunityws.logging import get_logger

from .config import ConnectionConfig

UNLIMITED_RETRIES = -1


@dataclass(frozen=True)
class BackoffPolicy:
    """指数退避策略

    第 n 次重连（n 从1开始）的延迟为
    ``min(initial_delay * multiplier ** (n - 1), max_delay)``，随 n 单调不减。
    """

    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")

    def delay(self, attempt: int) -> float:
        """计算第 attempt 次重连前的等待时间（秒）"""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        # 指数部分在超过上限后不再计算，避免浮点溢出
        delay = self.initial_delay
        for _ in range(attempt - 1):
            delay *= self.multiplier
            if delay >= self.max_delay:
                return self.max_delay
        return min(delay, self.max_delay)

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "BackoffPolicy":
        return cls(
            initial_delay=config.retry_interval,
            multiplier=config.backoff_multiplier,
            max_delay=config.max_retry_interval,
        )


class ScheduledCall(ABC):
    """已计划的延迟调用"""

    @abstractmethod
    def cancel(self) -> None:
        """取消调用，已经执行或已取消时无效果"""
        pass


class Scheduler(ABC):
    """延迟调用调度器"""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        """在 delay 秒后于调度器自己的执行上下文中调用 callback"""
        pass


class _TimerCall(ScheduledCall):
    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """基于 threading.Timer 的调度器，每次调用使用一个守护线程"""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(delay, callback)
        timer.name = "pyunityws-reconnect"
        timer.daemon = True
        timer.start()
        return _TimerCall(timer)


class ReconnectAction(Enum):
    """重连决策结果"""

    SCHEDULED = "scheduled"  # 已计划重连
    EXHAUSTED = "exhausted"  # 本次断开导致重连次数耗尽
    DISABLED = "disabled"  # 配置关闭了自动重连
    SUPPRESSED = "suppressed"  # 调用方已主动关闭，或已处于耗尽状态


@dataclass(frozen=True)
class ReconnectDecision:
    action: ReconnectAction
    attempt: int
    delay: float | None = None


class ReconnectGovernor:
    """重连控制器

    Args:
        max_retries: 最大重连次数，-1表示无限，0表示关闭自动重连
        backoff: 退避策略
        scheduler: 延迟调用调度器
    """

    def __init__(
        self,
        max_retries: int,
        backoff: BackoffPolicy,
        scheduler: Scheduler,
    ) -> None:
        if max_retries < UNLIMITED_RETRIES:
            raise ValueError("max_retries must be >= -1")
        self.max_retries: int = max_retries
        self.backoff: BackoffPolicy = backoff
        self._scheduler: Scheduler = scheduler
        self._logger: logging.Logger = get_logger("connection.reconnect")

        self._attempts: int = 0
        self._exhausted: bool = False
        self._suppressed: bool = False
        self._pending: ScheduledCall | None = None
        self._pending_token: object | None = None

    @property
    def attempts(self) -> int:
        """自上次成功建立连接以来已计划的重连次数"""
        return self._attempts

    @property
    def exhausted(self) -> bool:
        """重连次数是否已耗尽（粘滞，直到成功建立连接或 reset）"""
        return self._exhausted

    @property
    def is_pending(self) -> bool:
        """是否有已计划但尚未执行的重连"""
        return self._pending_token is not None

    @property
    def enabled(self) -> bool:
        return self.max_retries != 0

    def on_unexpected_close(
        self, reconnect: Callable[[object], None]
    ) -> ReconnectDecision:
        """意外断开后调用，决定是否计划重连

        Args:
            reconnect: 到期时调用，参数为本次计划的令牌，需交给 claim() 校验
        """
        if self._suppressed or self._exhausted:
            return ReconnectDecision(ReconnectAction.SUPPRESSED, self._attempts)

        if not self.enabled:
            return ReconnectDecision(ReconnectAction.DISABLED, self._attempts)

        if self.max_retries != UNLIMITED_RETRIES and self._attempts >= self.max_retries:
            self._exhausted = True
            self._logger.warning(
                "重连次数耗尽",
                extra={"attempts": self._attempts, "max_retries": self.max_retries},
            )
            return ReconnectDecision(ReconnectAction.EXHAUSTED, self._attempts)

        self._cancel_pending()
        self._attempts += 1
        delay = self.backoff.delay(self._attempts)
        token = object()
        # 令牌必须先于调度设置，调度器可能立即在其他线程触发
        self._pending_token = token
        self._pending = self._scheduler.call_later(delay, lambda: reconnect(token))
        self._logger.info(
            "已计划重连",
            extra={
                "attempt": self._attempts,
                "delay": delay,
                "max_retries": self.max_retries,
            },
        )
        return ReconnectDecision(ReconnectAction.SCHEDULED, self._attempts, delay)

    def claim(self, token: object) -> bool:
        """定时器到期时校验令牌，未被取消则消费该计划并返回True"""
        if token is None or token is not self._pending_token:
            return False
        self._pending_token = None
        self._pending = None
        return True

    def on_open(self) -> None:
        """成功建立连接：计数清零并清除耗尽标记"""
        self._attempts = 0
        self._exhausted = False

    def suppress(self) -> None:
        """调用方主动关闭：取消已计划的重连，之后不再自动重连"""
        self._suppressed = True
        self._cancel_pending()

    def resume(self) -> None:
        """调用方手动发起连接：解除主动关闭的抑制，并取消已计划的重连"""
        self._suppressed = False
        self._cancel_pending()

    def reset(self) -> None:
        """显式重置计数与耗尽标记，不影响已计划的重连"""
        self._attempts = 0
        self._exhausted = False

    def _cancel_pending(self) -> None:
        pending = self._pending
        self._pending = None
        self._pending_token = None
        if pending is not None:
            pending.cancel()
            self._logger.info("已取消计划中的重连", extra={"attempt": self._attempts})
