"""传输层数据模型：消息载荷与关闭状态码"""

from dataclasses import dataclass
from enum import IntEnum


class CloseStatusCode(IntEnum):
    """WebSocket关闭状态码 (RFC 6455 第7.4节)"""

    NORMAL = 1000
    AWAY = 1001
    PROTOCOL_ERROR = 1002
    UNSUPPORTED_DATA = 1003
    UNDEFINED = 1004
    NO_STATUS = 1005
    ABNORMAL = 1006
    INVALID_DATA = 1007
    POLICY_VIOLATION = 1008
    TOO_BIG = 1009
    MANDATORY_EXTENSION = 1010
    SERVER_ERROR = 1011
    TLS_HANDSHAKE_FAILURE = 1015


@dataclass(frozen=True)
class Payload:
    """消息载荷

    data 始终为字节；文本消息以UTF-8编码保存，is_text 标记原始类型。
    """

    data: bytes
    is_text: bool = False

    @classmethod
    def from_text(cls, text: str) -> "Payload":
        """从文本创建载荷

        Raises:
            TypeError: text 不是 str
            UnicodeEncodeError: text 无法编码为UTF-8（如孤立代理项）
        """
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")
        return cls(text.encode("utf-8"), is_text=True)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> "Payload":
        """从二进制数据创建载荷，总是复制一份"""
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"data must be bytes-like, got {type(data).__name__}")
        return cls(bytes(data), is_text=False)

    @property
    def text(self) -> str:
        """按UTF-8解码载荷"""
        return self.data.decode("utf-8")

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        kind = "text" if self.is_text else "binary"
        return f"Payload({kind}, {len(self.data)} bytes)"
