"""连接配置管理模块"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum


class ConnectionRole(Enum):
    """连接角色，当前只支持客户端"""

    CLIENT = "client"
    SERVER = "server"


@dataclass
class ConnectionConfig:
    """连接配置类"""

    role: ConnectionRole = ConnectionRole.CLIENT

    # 重连配置
    max_retries: int = 5  # -1表示无限重连，0表示关闭自动重连
    retry_interval: float = 1.0  # 第一次重连前的等待时间（秒）
    backoff_multiplier: float = 2.0
    max_retry_interval: float = 30.0

    # 地址校验
    allowed_schemes: tuple[str, ...] = field(default=("ws", "wss"))

    def __post_init__(self):
        """配置验证"""
        if not isinstance(self.role, ConnectionRole):
            self.role = ConnectionRole(self.role)

        if self.max_retries < -1:
            raise ValueError("Max retries must be >= -1")

        if self.retry_interval < 0:
            raise ValueError("Retry interval must be non-negative")

        if self.backoff_multiplier < 1:
            raise ValueError("Backoff multiplier must be >= 1")

        if self.max_retry_interval < self.retry_interval:
            raise ValueError("Max retry interval must be >= retry interval")

        if not self.allowed_schemes:
            raise ValueError("Allowed schemes must not be empty")
        self.allowed_schemes = tuple(s.lower() for s in self.allowed_schemes)

    @property
    def auto_reconnect(self) -> bool:
        """是否开启自动重连"""
        return self.max_retries != 0

    @classmethod
    def from_env(cls) -> "ConnectionConfig":
        """从环境变量创建配置

        支持的环境变量：
        - PYUNITYWS_MAX_RETRIES
        - PYUNITYWS_RETRY_INTERVAL
        - PYUNITYWS_BACKOFF_MULTIPLIER
        - PYUNITYWS_MAX_RETRY_INTERVAL
        """
        kwargs: dict = {}

        if max_retries := os.getenv("PYUNITYWS_MAX_RETRIES"):
            kwargs["max_retries"] = int(max_retries)

        if retry_interval := os.getenv("PYUNITYWS_RETRY_INTERVAL"):
            kwargs["retry_interval"] = float(retry_interval)

        if multiplier := os.getenv("PYUNITYWS_BACKOFF_MULTIPLIER"):
            kwargs["backoff_multiplier"] = float(multiplier)

        if max_interval := os.getenv("PYUNITYWS_MAX_RETRY_INTERVAL"):
            kwargs["max_retry_interval"] = float(max_interval)

        return cls(**kwargs)

    def copy_with(self, **kwargs) -> "ConnectionConfig":
        """创建配置副本并更新指定字段"""
        return replace(self, **kwargs)

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "role": self.role.value,
            "max_retries": self.max_retries,
            "retry_interval": self.retry_interval,
            "backoff_multiplier": self.backoff_multiplier,
            "max_retry_interval": self.max_retry_interval,
            "allowed_schemes": list(self.allowed_schemes),
        }

    @classmethod
    def from_dict(cls, config_dict: dict) -> "ConnectionConfig":
        """从字典创建配置"""
        data = dict(config_dict)
        if "allowed_schemes" in data:
            data["allowed_schemes"] = tuple(data["allowed_schemes"])
        return cls(**data)

    def __str__(self) -> str:
        return (
            f"ConnectionConfig(role={self.role.value}, max_retries={self.max_retries}, "
            f"retry_interval={self.retry_interval})"
        )


# 预定义配置
DEFAULT_CONFIG = ConnectionConfig()

NO_RECONNECT_CONFIG = ConnectionConfig(max_retries=0)

# 快速、无限重连
AGGRESSIVE_RECONNECT_CONFIG = ConnectionConfig(
    max_retries=-1,
    retry_interval=0.2,
    backoff_multiplier=1.5,
    max_retry_interval=5.0,
)
