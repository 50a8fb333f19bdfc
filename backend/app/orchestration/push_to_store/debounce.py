"""
防抖保存：连续编辑合并成一次落库，也支持立即 flush。
定时器通过 TaskScheduler 抽象注入，测试里用虚拟时钟推进。
"""

from __future__ import annotations
import asyncio, logging, threading
from typing import Any, Callable, Optional, Protocol

from app.core.config import settings

logger = logging.getLogger(__name__)


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class TaskScheduler(Protocol):
    def call_later(self, delay_sec: float, fn: Callable[[], None]) -> ScheduledHandle: ...


class AsyncioScheduler:
    """事件循环里的定时器（loop.call_later）。"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay_sec: float, fn: Callable[[], None]) -> ScheduledHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_sec, fn)


class ThreadingScheduler:
    """没有事件循环时（worker / 脚本）用 threading.Timer。"""

    def call_later(self, delay_sec: float, fn: Callable[[], None]) -> ScheduledHandle:
        timer = threading.Timer(delay_sec, fn)
        timer.daemon = True
        timer.start()
        return timer


class DebouncedSaver:

    def __init__(
        self,
        save_fn: Callable[[Any], None],
        delay_ms: Optional[int] = None,
        scheduler: Optional[TaskScheduler] = None,
    ) -> None:
        self._save_fn = save_fn
        self.delay_ms = settings.SAVE_DEBOUNCE_MS if delay_ms is None else delay_ms
        self._scheduler = scheduler or AsyncioScheduler()
        self._handle: Optional[ScheduledHandle] = None
        self._pending: Any = None
        self._has_pending = False
        self._lock = threading.Lock()

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    def save(self, content: Any, flush_immediately: bool = False) -> None:
        """同一个入口：默认延迟合并，flush_immediately=True 时取消定时器立即写。"""
        with self._lock:
            self._pending = content
            self._has_pending = True
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            if not flush_immediately:
                self._handle = self._scheduler.call_later(self.delay_ms / 1000.0, self._fire)
                return
        self._fire()

    def flush(self) -> None:
        """有待写内容就立即写（例如离开编辑页）。"""
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
        self._fire()

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = None
            self._pending = None
            self._has_pending = False

    def _fire(self) -> None:
        with self._lock:
            if not self._has_pending:
                return
            content = self._pending
            self._pending = None
            self._has_pending = False
            self._handle = None
        logger.debug("debounced_saver.flush")
        self._save_fn(content)
