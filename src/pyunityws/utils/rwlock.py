"""
同步读写锁实现
支持多个读者同时持有，写者独占
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """读写锁实现

    写者持有内部的可重入锁直到释放，因此同一线程在持有写锁期间可以再次
    获取读锁或写锁；反过来，持有读锁的线程不能再获取写锁，否则会死锁。
    """

    def __init__(self) -> None:
        self._read_ready = threading.Condition(threading.RLock())
        self._readers = 0

    @property
    def readers(self) -> int:
        """当前持有读锁的数量"""
        return self._readers

    def acquire_read(self) -> None:
        """获取读锁"""
        with self._read_ready:
            self._readers += 1

    def release_read(self) -> None:
        """释放读锁"""
        with self._read_ready:
            if self._readers <= 0:
                raise RuntimeError("release_read called without a matching acquire_read")
            self._readers -= 1
            if self._readers == 0:
                self._read_ready.notify_all()

    def acquire_write(self) -> None:
        """获取写锁，等待所有读者退出"""
        self._read_ready.acquire()
        while self._readers > 0:
            self._read_ready.wait()

    def release_write(self) -> None:
        """释放写锁"""
        self._read_ready.release()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        """读锁上下文"""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        """写锁上下文"""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
