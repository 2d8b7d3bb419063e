"""
pyunityws 日志配置

日志写到控制台和/或文件，格式为文本或 JSON。文件固定以 UTF-8 追加写入。
"""

import os
from dataclasses import asdict, dataclass
from typing import Optional

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_flag(name: str) -> Optional[bool]:
    """读取布尔型环境变量，未设置时返回None"""
    value = os.getenv(name)
    if not value:
        return None
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class LoggingConfig:
    """pyunityws 日志配置

    Attributes:
        level: 日志级别名
        format: 文本格式串，json_output 开启时不使用
        date_format: 文本格式中的时间格式
        file_path: 日志文件路径，None 表示不写文件
        max_file_size: 单个文件的字节上限，与 backup_count 同时设置时按大小轮转
        backup_count: 轮转保留的旧文件个数
        console_output: 是否输出到标准输出
        colored_output: 控制台输出是否着色
        json_output: 是否以 JSON 行输出
    """

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    file_path: Optional[str] = None
    max_file_size: Optional[int] = None
    backup_count: int = 0

    console_output: bool = True
    colored_output: bool = True
    json_output: bool = False

    def __post_init__(self):
        level = str(self.level).upper()
        if level not in _VALID_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.level}. Must be one of {list(_VALID_LEVELS)}"
            )
        self.level = level

        if self.max_file_size is not None and self.max_file_size <= 0:
            raise ValueError("max_file_size must be positive")

        if self.backup_count < 0:
            raise ValueError("backup_count must be non-negative")

    @property
    def rotates(self) -> bool:
        """文件输出是否按大小轮转"""
        return bool(self.max_file_size) and self.backup_count > 0

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """
        从环境变量创建配置实例

        支持的环境变量：
        - PYUNITYWS_LOG_LEVEL: 日志级别
        - PYUNITYWS_LOG_FILE: 日志文件路径
        - PYUNITYWS_LOG_CONSOLE: 是否输出到控制台 (true/false)
        - PYUNITYWS_LOG_COLOR: 控制台是否着色 (true/false)
        - PYUNITYWS_LOG_JSON: 是否输出JSON格式 (true/false)
        """
        kwargs: dict = {}

        if level := os.getenv("PYUNITYWS_LOG_LEVEL"):
            kwargs["level"] = level
        if file_path := os.getenv("PYUNITYWS_LOG_FILE"):
            kwargs["file_path"] = file_path

        for field_name, env_name in (
            ("console_output", "PYUNITYWS_LOG_CONSOLE"),
            ("colored_output", "PYUNITYWS_LOG_COLOR"),
            ("json_output", "PYUNITYWS_LOG_JSON"),
        ):
            flag = _env_flag(env_name)
            if flag is not None:
                kwargs[field_name] = flag

        return cls(**kwargs)

    def to_dict(self) -> dict:
        """转换为字典格式"""
        return asdict(self)
