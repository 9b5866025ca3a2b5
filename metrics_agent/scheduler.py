"""
周期任务

固定间隔执行一个协程；单次执行出错只记录日志，不终止任务。
start/stop 幂等。
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """固定间隔的 asyncio 任务"""

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[None]]):
        self.name = name
        self.interval = interval
        self._func = func
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        loop = asyncio.get_running_loop()
        logger.info(f"Starting {self.name} task (interval={self.interval}s)")
        next_tick = loop.time()
        while True:
            try:
                await self._func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} tick failed: {e}", exc_info=True)
            self.ticks += 1

            # 按固定节拍调度，执行耗时不累积漂移
            next_tick += self.interval
            delay = next_tick - loop.time()
            if delay < 0:
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    def start(self) -> bool:
        """启动任务，已在运行时返回 False"""
        if self.running:
            return False
        self._task = asyncio.create_task(self._run(), name=self.name)
        return True

    async def stop(self) -> bool:
        """停止任务，未运行时返回 False"""
        if not self.running:
            self._task = None
            return False
        task = self._task
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"{self.name} task stopped")
        return True
