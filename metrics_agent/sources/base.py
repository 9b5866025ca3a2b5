"""
统计来源抽象与回退链

每个采集域提供一个有序的 Source 列表，SourceResolver 依次尝试，
第一个返回非空结果的来源胜出；全部失败时返回 DomainError，不抛异常。
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Union

from ..models import DomainError, DomainOk

logger = logging.getLogger(__name__)

Contents = Dict[str, Optional[str]]
Parser = Callable[[Contents], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]


class SourceUnavailable(Exception):
    """单个来源不可读或无法解析"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True)
class Source:
    """
    一个统计来源

    Attributes:
        label: 结果中记录的来源描述
        files: 逻辑名 -> 文件路径
        parser: 接收 {逻辑名: 文件内容} 返回解析结果（可为协程）
        optional: 可缺失的文件逻辑名，缺失时内容为 None
    """
    label: str
    files: Dict[str, str]
    parser: Parser
    optional: FrozenSet[str] = field(default_factory=frozenset)


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


async def read_file(path: str) -> str:
    """在线程池中读取统计文件，避免阻塞事件循环"""
    return await asyncio.to_thread(_read_text, path)


def parse_int(value: str) -> Union[int, str]:
    """能转换为整数则转换，否则保留原字符串"""
    try:
        return int(value)
    except ValueError:
        return value


class SourceResolver:
    """按顺序尝试来源列表"""

    def __init__(self, reader: Callable[[str], Awaitable[str]] = read_file):
        self._reader = reader

    async def _read_contents(self, source: Source, attempted: List[str]) -> Contents:
        contents: Contents = {}
        for name, path in source.files.items():
            attempted.append(path)
            try:
                text = await self._reader(path)
            except OSError as e:
                if name in source.optional:
                    contents[name] = None
                    continue
                raise SourceUnavailable(path, e.strerror or str(e)) from e
            if not text.strip() and name not in source.optional:
                raise SourceUnavailable(path, "empty")
            contents[name] = text if text.strip() else None
        return contents

    async def resolve_chain(self, domain: str, sources: List[Source]) -> Union[DomainOk, DomainError]:
        """
        依次尝试来源，返回第一个非空结果

        Args:
            domain: 采集域名称（用于日志）
            sources: 有序来源列表

        Returns:
            DomainOk 或 DomainError
        """
        if not sources:
            return DomainError(error=f"No sources available for {domain}", source="none")

        last_path = sources[0].label
        last_reason = "not attempted"

        for source in sources:
            attempted: List[str] = []
            try:
                contents = await self._read_contents(source, attempted)
                data = source.parser(contents)
                if inspect.isawaitable(data):
                    data = await data
                if not data:
                    raise SourceUnavailable(attempted[-1] if attempted else source.label, "no data parsed")
                return DomainOk(data=data, source=source.label)
            except SourceUnavailable as e:
                last_path = e.path
                last_reason = e.reason
                logger.debug(f"{domain}: source {source.label} unavailable: {e.reason}")
            except (ValueError, IndexError, KeyError) as e:
                last_path = attempted[-1] if attempted else source.label
                last_reason = f"parse error: {e}"
                logger.debug(f"{domain}: failed to parse {source.label}: {e}")
            except Exception as e:
                last_path = attempted[-1] if attempted else source.label
                last_reason = str(e)
                logger.error(f"{domain}: unexpected error reading {source.label}: {e}", exc_info=True)

        logger.warning(f"Could not collect {domain} stats: {last_reason} (last tried {last_path})")
        return DomainError(
            error=f"Could not read {domain} stats: {last_reason}",
            source=last_path,
        )
