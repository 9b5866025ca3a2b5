"""
Agent 上下文

显式构造并注入的运行时对象，持有：
- 配置（只读）
- 数据点缓冲区
- 最新快照（供实时推送和查询）
- 采集任务和发送任务
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Set

from .assembler import assemble
from .buffer import PointBuffer
from .config import AgentConfig
from .models import Snapshot
from .scheduler import PeriodicTask
from .sink import Sink
from .sources.base import SourceResolver
from .transformer import PointTransformer, build_global_tags

logger = logging.getLogger(__name__)


class MetricsAgent:
    """采集 -> 转换 -> 缓冲 -> 发送"""

    def __init__(
        self,
        config: AgentConfig,
        sink: Optional[Sink] = None,
        resolver: Optional[SourceResolver] = None,
    ):
        self.config = config
        self.sink = sink
        self.resolver = resolver or SourceResolver()
        self.buffer = PointBuffer(config.buffer_capacity)
        self.transformer = PointTransformer(build_global_tags(config))

        self._latest: Optional[Snapshot] = None
        self._latest_lock = asyncio.Lock()
        self._pending_writes: Set[asyncio.Task] = set()

        self.collection_task = PeriodicTask("collection", config.collection_seconds, self.collect_once)
        self.flush_task = PeriodicTask("flush", config.flush_seconds, self.flush_once)

        logger.info(f"Metrics target set to: {config.target}")
        if config.target == "host":
            host_proc = config.paths.host_proc
            logger.warning(
                f"Running in 'host' mode. Ensure the host's /proc is mounted read-only at {host_proc} "
                f"(e.g. -v /proc:{host_proc}:ro)"
            )

    async def get_latest_snapshot(self) -> Optional[Snapshot]:
        """最新快照，首次采集完成前为 None"""
        async with self._latest_lock:
            return self._latest

    async def _set_latest(self, snapshot: Snapshot) -> None:
        async with self._latest_lock:
            self._latest = snapshot

    async def collect_once(self) -> Snapshot:
        """
        执行一次采集

        无论成功与否都会替换最新快照，订阅者也能看到错误状态。
        """
        try:
            snapshot = await assemble(self.config, self.resolver)
        except Exception as e:
            logger.error(f"Failed to collect metrics: {e}")
            snapshot = Snapshot(
                timestamp=datetime.now(timezone.utc),
                target=self.config.target,
                error=f"Failed to collect metrics: {e}",
            )
            await self._set_latest(snapshot)
            return snapshot

        await self._set_latest(snapshot)
        points = self.transformer.transform(snapshot)
        await self.buffer.put(points)
        logger.debug(f"Collected {len(points)} points (buffered={len(self.buffer)})")
        return snapshot

    async def flush_once(self) -> int:
        """
        执行一次发送

        未配置写入端时丢弃缓冲区全部内容；否则取出最多 batch_size 个数据点提交，
        提交后不等待结果，失败的批次不会重新入队。

        Returns:
            本次取出的数据点数
        """
        if self.sink is None:
            discarded = await self.buffer.clear()
            if discarded:
                logger.debug(f"No sink configured, discarded {discarded} points")
            return discarded

        batch = await self.buffer.drain(self.config.batch_size)
        if not batch:
            return 0

        task = asyncio.create_task(self._write(batch))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return len(batch)

    async def _write(self, batch) -> None:
        try:
            await self.sink.write(batch)
        except Exception as e:
            logger.error(f"Sink write failed for {len(batch)} points: {e}")

    def start(self) -> None:
        """启动采集和发送任务（幂等）"""
        started = self.collection_task.start()
        self.flush_task.start()
        if started:
            sink_state = "enabled" if self.sink else "disabled (discard only)"
            logger.info(f"Metrics agent started: target={self.config.target}, sink {sink_state}")

    async def stop(self) -> None:
        """停止采集和发送任务（幂等）"""
        await self.collection_task.stop()
        await self.flush_task.stop()
        for task in list(self._pending_writes):
            task.cancel()
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)

    async def close(self) -> None:
        """停止任务并关闭写入端"""
        await self.stop()
        if self.sink is not None:
            await self.sink.close()
