"""
统计来源模块

包含 CPU、内存、磁盘 I/O、磁盘容量、网络五个采集域。
resolve() 根据模式选择来源列表并按顺序回退，从不抛出异常。
"""

from typing import Any, Callable, Dict, List, Optional, Union

from ..config import PathsConfig
from ..models import DomainError, DomainOk
from . import cpu, disk, diskio, memory, network
from .base import Source, SourceResolver, SourceUnavailable, read_file

# 采集域 -> 来源列表构造函数
DOMAINS: Dict[str, Callable[[str, PathsConfig, Any], List[Source]]] = {
    "cpu": cpu.sources,
    "memory": memory.sources,
    "diskio": diskio.sources,
    "disk": disk.sources,
    "network": network.sources,
}


async def resolve(
    domain: str,
    mode: str,
    options: Any,
    paths: Optional[PathsConfig] = None,
    resolver: Optional[SourceResolver] = None,
) -> Union[DomainOk, DomainError]:
    """
    采集单个域的统计数据

    Args:
        domain: 采集域名称（cpu/memory/diskio/disk/network）
        mode: host 或 container
        options: 该域的配置
        paths: 统计接口路径，默认使用标准路径
        resolver: 来源解析器（测试时可替换读取函数）

    Returns:
        DomainOk 或 DomainError
    """
    if domain not in DOMAINS:
        return DomainError(error=f"Unknown domain: {domain}", source="none")

    paths = paths or PathsConfig()
    resolver = resolver or SourceResolver()
    try:
        chain = DOMAINS[domain](mode, paths, options)
    except Exception as e:
        return DomainError(error=f"Failed to build sources for {domain}: {e}", source="none")
    return await resolver.resolve_chain(domain, chain)


__all__ = [
    "DOMAINS",
    "Source",
    "SourceResolver",
    "SourceUnavailable",
    "read_file",
    "resolve",
]
