"""连接状态管理模块 - 基于python-statemachine实现"""

from collections import deque
from enum import IntEnum

from statemachine import State, StateMachine


class ReadyState(IntEnum):
    """连接就绪状态，取值与浏览器 WebSocket.readyState 一致"""

    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class ConnectionStateMachine(StateMachine):
    """连接状态机

    合法路径：
    - Connecting → Open → Closing → Closed（正常流程）
    - Connecting → Closing → Closed（握手期间主动关闭）
    - Connecting → Closed（握手失败）
    - Closed → Connecting（实例复用或自动重连）

    Open 不能直接进入 Closed，必须经过 Closing。
    初始状态为 Connecting，此时尚未发起任何连接，由控制器区分空闲与握手中。
    该类本身不是线程安全的，由持有者的锁保护。
    """

    connecting: State = State(initial=True)
    open: State = State()
    closing: State = State()
    closed: State = State()

    establish = connecting.to(open)
    start_closing = connecting.to(closing) | open.to(closing)
    finish_closing = closing.to(closed)
    fail = connecting.to(closed)
    restart = closed.to(connecting)

    HISTORY_SIZE = 64

    def __init__(self, *args, **kwargs):
        self.history: deque[tuple[ReadyState, ReadyState]] = deque(
            maxlen=self.HISTORY_SIZE
        )
        super().__init__(*args, **kwargs)

    def after_transition(self, source: State, target: State) -> None:
        """记录每一次状态转换"""
        # 初始状态激活不算转换
        if source is None or target is None or source.id == target.id:
            return
        self.history.append((_READY_STATES[source.id], _READY_STATES[target.id]))

    @property
    def ready_state(self) -> ReadyState:
        """当前状态对应的 ReadyState"""
        return _READY_STATES[self.current_state.id]

    @property
    def current_state_name(self) -> str:
        """获取当前状态名称"""
        return self.current_state.id

    @property
    def is_connecting(self) -> bool:
        return self.current_state == self.connecting

    @property
    def is_open(self) -> bool:
        return self.current_state == self.open

    @property
    def is_closing(self) -> bool:
        return self.current_state == self.closing

    @property
    def is_closed(self) -> bool:
        return self.current_state == self.closed


_READY_STATES: dict[str, ReadyState] = {
    "connecting": ReadyState.CONNECTING,
    "open": ReadyState.OPEN,
    "closing": ReadyState.CLOSING,
    "closed": ReadyState.CLOSED,
}
