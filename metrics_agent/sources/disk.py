"""
磁盘容量采集

读取挂载表，对每个挂载点查询文件系统容量：
- host: <host_proc>/1/mounts，容量查询路径加 host_mount_prefix
- container: <proc>/self/mounts
"""

import asyncio
import logging
import os
import re
from typing import Dict, List, Tuple

import psutil

from ..config import DiskInputConfig, PathsConfig
from .base import Contents, Source

logger = logging.getLogger(__name__)

# 伪文件系统，始终排除
PSEUDO_FILESYSTEMS = frozenset({
    "autofs",
    "binfmt_misc",
    "bpf",
    "cgroup",
    "cgroup2",
    "configfs",
    "debugfs",
    "devpts",
    "efivarfs",
    "fusectl",
    "hugetlbfs",
    "mqueue",
    "nsfs",
    "proc",
    "pstore",
    "rpc_pipefs",
    "securityfs",
    "selinuxfs",
    "sysfs",
    "tracefs",
})


_OCTAL_ESCAPE_RE = re.compile(r"\\([0-7]{3})")


def _unescape(value: str) -> str:
    # 挂载表中空格等字符以八进制转义，如 \040
    return _OCTAL_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 8)), value)


def parse_mounts(text: str, ignore_fs: List[str]) -> List[Tuple[str, str, str]]:
    """
    解析挂载表

    Returns:
        [(device, mountpoint, fstype)]，排除伪文件系统和 ignore_fs，按挂载点去重
    """
    ignored = set(ignore_fs or [])
    seen = set()
    mounts = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        device, mountpoint, fstype = _unescape(parts[0]), _unescape(parts[1]), parts[2]
        if fstype in PSEUDO_FILESYSTEMS or fstype in ignored:
            continue
        if mountpoint in seen:
            continue
        seen.add(mountpoint)
        mounts.append((device, mountpoint, fstype))
    return mounts


async def query_usage(path: str) -> Dict[str, float]:
    """查询单个挂载点容量（线程池中执行）"""
    usage = await asyncio.to_thread(psutil.disk_usage, path)
    return {
        "total": usage.total,
        "free": usage.free,
        "used": usage.used,
        "used_percent": round(usage.percent, 2),
    }


async def collect_usage(mounts: List[Tuple[str, str, str]], mount_prefix: str = "") -> Dict[str, Dict]:
    """
    并发查询所有挂载点

    单个挂载点失败时跳过，不影响其他挂载点。
    """
    async def _one(device: str, mountpoint: str, fstype: str):
        query_path = os.path.join(mount_prefix, mountpoint.lstrip("/")) if mount_prefix else mountpoint
        try:
            usage = await query_usage(query_path)
        except OSError as e:
            logger.debug(f"Skipping mount {mountpoint}: {e}")
            return None
        usage["device"] = device
        usage["fstype"] = fstype
        return mountpoint, usage

    results = await asyncio.gather(*[_one(*m) for m in mounts])
    return {mountpoint: usage for mountpoint, usage in filter(None, results)}


def sources(mode: str, paths: PathsConfig, options: DiskInputConfig) -> List[Source]:
    if mode == "host":
        mounts_path = os.path.join(paths.host_proc, "1", "mounts")
        prefix = paths.host_mount_prefix
    else:
        mounts_path = os.path.join(paths.proc, "self", "mounts")
        prefix = ""

    def _parse(contents: Contents):
        return collect_usage(parse_mounts(contents["mounts"], options.ignore_fs), prefix)

    return [
        Source(
            label=mounts_path,
            files={"mounts": mounts_path},
            parser=_parse,
        ),
    ]
