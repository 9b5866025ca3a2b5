"""
内存统计来源

- host: <host_proc>/meminfo
- container: cgroup v2 memory.current/max/stat，失败时 cgroup v1 memory.*
"""

import os
import re
from typing import Dict, List, Optional

from ..config import MemoryInputConfig, PathsConfig
from .base import Contents, Source
from .cpu import parse_key_values

_MEMINFO_RE = re.compile(r"^(\S+):\s+(\d+)(?:\s+(\w+))?")

_UNIT_FACTORS = {
    "kb": 1024,
    "mb": 1024 * 1024,
    "gb": 1024 * 1024 * 1024,
}

# cgroup v1 未设限制时 limit_in_bytes 为接近 2^63 的值
UNLIMITED_THRESHOLD = 2 ** 62


def parse_meminfo(text: str) -> Dict[str, float]:
    """
    解析 /proc/meminfo

    例: "MemTotal:       16110976 kB" -> {"memtotal": 16497639424}
    派生: used, used_percent, available, used_percent_actual
    """
    stats = {}
    for line in text.splitlines():
        match = _MEMINFO_RE.match(line.strip())
        if not match:
            continue
        key = match.group(1).lower()
        value = int(match.group(2))
        unit = (match.group(3) or "").lower()
        stats[key] = value * _UNIT_FACTORS.get(unit, 1)

    total = stats.get("memtotal")
    free = stats.get("memfree")
    buffers = stats.get("buffers")
    cached = stats.get("cached")

    if total is not None and free is not None:
        used = total - free - (buffers or 0) - (cached or 0)
        stats["used"] = used
        if total > 0:
            stats["used_percent"] = used * 100.0 / total

    if "memavailable" in stats:
        available = stats["memavailable"]
    elif free is not None and (buffers is not None or cached is not None):
        available = free + (buffers or 0) + (cached or 0)
    else:
        available = None

    if available is not None:
        stats["available"] = available
        if total:
            stats["used_percent_actual"] = (total - available) * 100.0 / total

    return stats


def parse_limit(text: Optional[str]) -> Optional[int]:
    """解析内存限制，"max" 或溢出值表示无限制"""
    if text is None:
        return None
    value = text.strip().lower()
    if not value or value == "max":
        return None
    limit = int(value)
    if limit >= UNLIMITED_THRESHOLD:
        return None
    return limit


def _parse_cgroup_memory(contents: Contents) -> Dict:
    stats = {"usage": int(contents["usage"].strip())}

    limit = parse_limit(contents.get("limit"))
    if limit is not None:
        stats["limit"] = limit
        if limit > 0:
            stats["used_percent"] = stats["usage"] * 100.0 / limit

    if contents.get("stat"):
        stats["stat"] = parse_key_values(contents["stat"])
    return stats


def sources(mode: str, paths: PathsConfig, options: MemoryInputConfig) -> List[Source]:
    if mode == "host":
        meminfo_path = os.path.join(paths.host_proc, "meminfo")
        return [
            Source(
                label=meminfo_path,
                files={"meminfo": meminfo_path},
                parser=lambda c: parse_meminfo(c["meminfo"]),
            ),
        ]

    v1_dir = os.path.join(paths.cgroup, "memory")
    return [
        Source(
            label=f"{os.path.join(paths.cgroup, 'memory.current')} (v2)",
            files={
                "usage": os.path.join(paths.cgroup, "memory.current"),
                "limit": os.path.join(paths.cgroup, "memory.max"),
                "stat": os.path.join(paths.cgroup, "memory.stat"),
            },
            parser=_parse_cgroup_memory,
            optional=frozenset({"limit", "stat"}),
        ),
        Source(
            label=f"{v1_dir}/ (v1)",
            files={
                "usage": os.path.join(v1_dir, "memory.usage_in_bytes"),
                "limit": os.path.join(v1_dir, "memory.limit_in_bytes"),
                "stat": os.path.join(v1_dir, "memory.stat"),
            },
            parser=_parse_cgroup_memory,
            optional=frozenset({"limit", "stat"}),
        ),
    ]
