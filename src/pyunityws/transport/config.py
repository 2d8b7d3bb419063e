"""传输层配置管理模块"""

import os
from dataclasses import asdict, dataclass, field, replace
from typing import Optional


@dataclass
class TransportConfig:
    """WebSocketsChannel 配置类"""

    # 超时配置
    open_timeout: float = 10.0
    close_timeout: float = 5.0

    # 保活配置，ping_interval 为 None 时关闭自动ping
    ping_interval: Optional[float] = 20.0
    ping_timeout: Optional[float] = 20.0

    # 消息配置
    max_message_size: Optional[int] = 1024 * 1024  # 1MB，None表示不限制
    max_queue: int = 16  # 入站缓冲的消息帧数

    # 握手附加请求头
    additional_headers: dict[str, str] = field(default_factory=dict)
    user_agent: Optional[str] = None

    def __post_init__(self):
        """配置验证"""
        if self.open_timeout <= 0:
            raise ValueError("Open timeout must be positive")

        if self.close_timeout <= 0:
            raise ValueError("Close timeout must be positive")

        if self.ping_interval is not None and self.ping_interval <= 0:
            raise ValueError("Ping interval must be positive")

        if self.ping_timeout is not None and self.ping_timeout <= 0:
            raise ValueError("Ping timeout must be positive")

        if self.max_message_size is not None and self.max_message_size <= 0:
            raise ValueError("Max message size must be positive")

        if self.max_queue <= 0:
            raise ValueError("Max queue must be positive")

    @classmethod
    def from_env(cls) -> "TransportConfig":
        """从环境变量创建配置

        支持 PYUNITYWS_OPEN_TIMEOUT、PYUNITYWS_CLOSE_TIMEOUT、
        PYUNITYWS_PING_INTERVAL（0表示关闭）、PYUNITYWS_MAX_MESSAGE_SIZE。
        """
        kwargs: dict = {}

        if open_timeout := os.getenv("PYUNITYWS_OPEN_TIMEOUT"):
            kwargs["open_timeout"] = float(open_timeout)

        if close_timeout := os.getenv("PYUNITYWS_CLOSE_TIMEOUT"):
            kwargs["close_timeout"] = float(close_timeout)

        if ping_interval := os.getenv("PYUNITYWS_PING_INTERVAL"):
            value = float(ping_interval)
            kwargs["ping_interval"] = value if value > 0 else None

        if max_size := os.getenv("PYUNITYWS_MAX_MESSAGE_SIZE"):
            kwargs["max_message_size"] = int(max_size)

        return cls(**kwargs)

    def copy_with(self, **kwargs) -> "TransportConfig":
        """创建配置副本并更新指定字段"""
        return replace(self, **kwargs)

    def to_dict(self) -> dict:
        """转换为字典"""
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "TransportConfig":
        """从字典创建配置"""
        return cls(**config_dict)


DEFAULT_TRANSPORT_CONFIG = TransportConfig()

# 调试配置：超时更宽松，关闭自动ping
DEBUG_TRANSPORT_CONFIG = TransportConfig(
    open_timeout=30.0,
    close_timeout=10.0,
    ping_interval=None,
    ping_timeout=None,
)
