"""
pyunityws 工具模块
"""

from .rwlock import ReadWriteLock

__all__ = [
    "ReadWriteLock",
]
