"""
快照组装

并发调用所有已启用采集域，等待全部完成后生成快照。
单个域失败不影响其他域，部分快照是合法的。
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from .config import AgentConfig
from .models import Snapshot
from .sources import resolve
from .sources.base import SourceResolver

logger = logging.getLogger(__name__)


class NoDomainsEnabled(Exception):
    """没有任何启用的采集域"""


def enabled_domains(config: AgentConfig) -> Dict[str, object]:
    """返回 {采集域: 该域配置}，仅包含已启用的域"""
    inputs = config.inputs
    candidates = {
        "cpu": inputs.cpu,
        "memory": inputs.memory,
        "diskio": inputs.diskio,
        "disk": inputs.disk,
        "network": inputs.network,
    }
    return {name: options for name, options in candidates.items() if options.enabled}


async def assemble(config: AgentConfig, resolver: Optional[SourceResolver] = None) -> Snapshot:
    """
    组装一次快照

    Raises:
        NoDomainsEnabled: 所有采集域均被禁用
    """
    domains = enabled_domains(config)
    if not domains:
        raise NoDomainsEnabled("No metric domains are enabled")

    names = list(domains)
    results = await asyncio.gather(*[
        resolve(name, config.target, domains[name], config.paths, resolver)
        for name in names
    ])

    snapshot = Snapshot(
        timestamp=datetime.now(timezone.utc),
        target=config.target,
        domains=dict(zip(names, results)),
    )

    failed = [name for name in names if snapshot.ok(name) is None]
    if failed:
        logger.debug(f"Snapshot assembled with failed domains: {', '.join(failed)}")
    return snapshot
