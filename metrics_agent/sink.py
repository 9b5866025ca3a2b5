"""
时序数据库写入

Sink 接口：write(batch)，异步，调用方不等待结果。
HttpSink 以 InfluxDB line protocol 通过 HTTP 写入，失败时按配置重试，结果只记录日志。
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

import httpx

from .config import SinkConfig
from .models import Point

logger = logging.getLogger(__name__)


def _escape(value: str, chars: str) -> str:
    value = value.replace("\\", "\\\\")
    for ch in chars:
        value = value.replace(ch, f"\\{ch}")
    return value


def _format_field(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def _timestamp_ns(ts: datetime) -> int:
    return int(ts.timestamp()) * 1_000_000_000 + ts.microsecond * 1000


def to_line(point: Point) -> str:
    """
    编码单个数据点为 line protocol

    例: cpu,cpu=cpu-total,host=web-01 user=100i,usage_percent=15.0 1700000000000000000
    """
    key = _escape(point.measurement, ", ")
    for tag_key, tag_value in point.tags.items():
        if tag_value == "":
            continue
        key += f",{_escape(tag_key, ', =')}={_escape(str(tag_value), ', =')}"
    fields = ",".join(
        f"{_escape(name, ', =')}={_format_field(value)}"
        for name, value in point.fields.items()
    )
    return f"{key} {fields} {_timestamp_ns(point.timestamp)}"


def encode_batch(points: Iterable[Point]) -> str:
    """编码一批数据点，每行一个"""
    return "\n".join(to_line(p) for p in points if p.fields)


class Sink:
    """写入端接口"""

    async def write(self, batch: Sequence[Point]) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class HttpSink(Sink):
    """HTTP line protocol 写入端"""

    def __init__(self, config: SinkConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self.written_total = 0
        self.failed_total = 0

    def _write_url(self, base_url: str) -> str:
        return base_url.rstrip("/") + "/api/v2/write"

    def _headers(self) -> dict:
        headers = {"Content-Type": "text/plain; charset=utf-8"}
        if self.config.token:
            headers["Authorization"] = f"Token {self.config.token}"
        return headers

    async def _post(self, url: str, body: str) -> None:
        params = {
            "org": self.config.organization,
            "bucket": self.config.bucket,
            "precision": "ns",
        }
        response = await self._client.post(url, params=params, content=body, headers=self._headers())
        response.raise_for_status()

    async def write(self, batch: Sequence[Point]) -> None:
        """
        写入一批数据点

        依次尝试各 url，每轮失败后等待 retry_delay 秒，最多重试 retry_count 次。
        失败只记录日志，不抛异常，不重新入队。
        """
        body = encode_batch(batch)
        if not body:
            return

        attempts = max(0, self.config.retry_count) + 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            for base_url in self.config.urls:
                url = self._write_url(base_url)
                try:
                    await self._post(url, body)
                    self.written_total += len(batch)
                    logger.debug(f"Wrote {len(batch)} points to {url}")
                    return
                except httpx.HTTPStatusError as e:
                    last_error = e
                    logger.warning(f"Sink write to {url} failed: HTTP {e.response.status_code}")
                except httpx.HTTPError as e:
                    last_error = e
                    logger.warning(f"Sink unavailable at {url}: {e}")
            if attempt < attempts - 1:
                await asyncio.sleep(self.config.retry_delay)

        self.failed_total += len(batch)
        logger.error(f"Dropped batch of {len(batch)} points after {attempts} attempts: {last_error}")

    async def close(self) -> None:
        await self._client.aclose()


def create_sink(config: Optional[SinkConfig]) -> Optional[Sink]:
    """根据配置创建写入端，未配置时返回 None（只丢弃）"""
    if config is None or not config.urls:
        return None
    return HttpSink(config)


__all__ = ["Sink", "HttpSink", "create_sink", "encode_batch", "to_line"]
