"""
有界缓冲区

FIFO 队列，容量上限 capacity；写入超限时丢弃最旧的数据点。
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, List

from .models import Point

logger = logging.getLogger(__name__)


class PointBuffer:
    """
    数据点缓冲区

    生产者：采集任务（put）
    消费者：发送任务（drain / clear）
    任意操作之后 len(buffer) <= capacity。
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._points: Deque[Point] = deque()
        self._lock = asyncio.Lock()
        self.dropped_total = 0

    def __len__(self) -> int:
        return len(self._points)

    async def put(self, points: Iterable[Point]) -> int:
        """
        写入一批数据点

        Returns:
            因容量不足被丢弃的数据点数
        """
        batch = list(points)
        if not batch:
            return 0

        async with self._lock:
            dropped = 0
            # 单批超过容量时只保留最新的 capacity 个
            if len(batch) > self.capacity:
                dropped += len(batch) - self.capacity
                batch = batch[-self.capacity:]

            overflow = len(self._points) + len(batch) - self.capacity
            for _ in range(max(0, overflow)):
                self._points.popleft()
                dropped += 1

            self._points.extend(batch)
            self.dropped_total += dropped

        if dropped:
            logger.warning(f"Buffer full (capacity={self.capacity}), dropped {dropped} oldest points")
        return dropped

    async def drain(self, max_items: int) -> List[Point]:
        """取出最多 max_items 个最旧的数据点"""
        async with self._lock:
            count = min(max_items, len(self._points))
            return [self._points.popleft() for _ in range(count)]

    async def clear(self) -> int:
        """清空缓冲区，返回被丢弃的数据点数"""
        async with self._lock:
            count = len(self._points)
            self._points.clear()
            return count

    async def snapshot(self) -> List[Point]:
        """返回当前内容的副本（不移除）"""
        async with self._lock:
            return list(self._points)
