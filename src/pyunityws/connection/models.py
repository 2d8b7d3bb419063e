"""发送操作模型"""

import logging
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass, field
from typing import Callable, Optional

from pyunityws.logging import get_logger
from pyunityws.transport.models import Payload

# 发送完成回调，参数表示是否发送成功
SendCallback = Callable[[bool], None]

logger: logging.Logger = get_logger(__name__)


@dataclass(eq=False)
class SendOperation:
    """一次已被接受的发送

    结果由 future 承载；on_complete 在 future 完成时恰好调用一次。
    future 创建即标记为运行中，调用方无法取消。
    """

    op_id: int
    payload: Payload
    on_complete: Optional[SendCallback] = None
    future: Future = field(default_factory=Future)

    def __post_init__(self) -> None:
        self.future.set_running_or_notify_cancel()
        self.future.add_done_callback(self._notify_complete)

    def settle(self, error: Exception | None = None) -> bool:
        """完成本次发送，只有第一次调用生效

        Returns:
            bool: 本次调用是否真正完成了发送
        """
        try:
            if error is None:
                self.future.set_result(None)
            else:
                self.future.set_exception(error)
        except InvalidStateError:
            return False
        return True

    @property
    def done(self) -> bool:
        return self.future.done()

    def _notify_complete(self, future: Future) -> None:
        if self.on_complete is None:
            return
        try:
            self.on_complete(future.exception() is None)
        except Exception as e:
            logger.error(
                "发送完成回调执行失败",
                extra={
                    "op_id": self.op_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
