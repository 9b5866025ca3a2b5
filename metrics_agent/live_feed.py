"""
实时推送

按订阅者数量懒启动/停止推送循环：
- idle：无订阅者，无循环
- active：至少一个订阅者，循环运行

每个节拍读取最新快照并原样广播给所有订阅者；尚无快照时跳过。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Optional, Set

from .models import Snapshot

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[], Awaitable[Optional[Snapshot]]]
Broadcast = Callable[[Any], Awaitable[None]]


class LiveFeedPublisher:
    """订阅计数的广播器，所有订阅者共享一个定时器"""

    def __init__(self, get_snapshot: SnapshotProvider, broadcast: Broadcast, interval: float = 1.0):
        self._get_snapshot = get_snapshot
        self._broadcast = broadcast
        self.interval = interval
        self._subscribers: Set[Hashable] = set()
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self.broadcasts = 0

    @property
    def state(self) -> str:
        return "active" if self._task is not None else "idle"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def join(self, subscriber_id: Hashable) -> None:
        """订阅者连接"""
        async with self._lock:
            if subscriber_id in self._subscribers:
                return
            self._subscribers.add(subscriber_id)
            logger.info(f"Subscriber joined: {subscriber_id} (total={len(self._subscribers)})")
            if self._task is None:
                self._start()

    async def leave(self, subscriber_id: Hashable) -> None:
        """订阅者断开，未知 id 忽略"""
        task = None
        async with self._lock:
            if subscriber_id not in self._subscribers:
                return
            self._subscribers.discard(subscriber_id)
            logger.info(f"Subscriber left: {subscriber_id} (total={len(self._subscribers)})")
            if not self._subscribers and self._task is not None:
                task = self._task
                self._task = None
        if task is not None:
            await self._cancel(task)

    async def stop(self) -> None:
        """关闭时停止推送循环"""
        async with self._lock:
            task = self._task
            self._task = None
            self._subscribers.clear()
        if task is not None:
            await self._cancel(task)

    def _start(self) -> None:
        logger.info("Starting live feed updates")
        self._task = asyncio.create_task(self._run(), name="live-feed")

    async def _cancel(self, task: asyncio.Task) -> None:
        logger.info("Stopping live feed updates")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def publish_once(self) -> bool:
        """
        推送一次

        Returns:
            是否实际发生了广播
        """
        snapshot = await self._get_snapshot()
        if snapshot is None:
            logger.debug("No metrics data available yet to send to subscribers")
            return False
        await self._broadcast(snapshot.model_dump(mode="json"))
        self.broadcasts += 1
        return True

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.publish_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error sending metrics to subscribers: {e}")
