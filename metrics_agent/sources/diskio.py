"""
磁盘 I/O 统计来源

- host: <host_proc>/diskstats（排除分区）
- container: cgroup v2 io.stat，失败时 cgroup v1 blkio throttle 文件
"""

import os
import re
from typing import Any, Dict, Iterable, List

from ..config import DiskIOInputConfig, PathsConfig
from .base import Contents, Source, parse_int

SECTOR_SIZE = 512

# nvme0n1p1、mmcblk0p1 这类带 p 后缀的分区
_P_PARTITION_RE = re.compile(r"^(nvme\d+n\d+|mmcblk\d+)p\d+$")
# sda1、xvda2：字母名 + 数字，父设备存在时才算分区
_NUMBERED_PARTITION_RE = re.compile(r"^([a-z]+)\d+$")

# /proc/diskstats 第 4 列起的字段
DISKSTATS_FIELDS = [
    "reads",
    "reads_merged",
    "read_sectors",
    "read_time",
    "writes",
    "writes_merged",
    "write_sectors",
    "write_time",
    "io_in_progress",
    "io_time",
    "weighted_io_time",
]


def is_partition(device: str, devices: Iterable[str]) -> bool:
    """
    判断设备是否为分区

    nvme0n1、mmcblk0、md0 等以数字结尾的整盘保留；
    sda1 只有在 sda 也出现时才视为分区。
    """
    if _P_PARTITION_RE.match(device):
        return True
    match = _NUMBERED_PARTITION_RE.match(device)
    return bool(match) and match.group(1) in devices


def parse_diskstats(text: str) -> Dict[str, Dict[str, int]]:
    """
    解析 /proc/diskstats

    格式: major minor device reads reads_merged sectors read_ms writes ...
    分区行被排除，只保留整盘。
    """
    rows = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 3 + len(DISKSTATS_FIELDS):
            continue
        rows.append(parts)
    devices = {parts[2] for parts in rows}

    stats = {}
    for parts in rows:
        device = parts[2]
        if is_partition(device, devices):
            continue

        values = {}
        for i, name in enumerate(DISKSTATS_FIELDS):
            try:
                values[name] = int(parts[3 + i])
            except ValueError:
                values[name] = 0
        values["read_bytes"] = values["read_sectors"] * SECTOR_SIZE
        values["write_bytes"] = values["write_sectors"] * SECTOR_SIZE
        stats[device] = values
    return stats


def summarize_disks(stats: Dict[str, Any]) -> Dict[str, Any]:
    """
    添加主磁盘摘要（实时面板使用）

    主磁盘为文件中的第一个整盘；摘要为标量键，不产生数据点。
    """
    disks = [name for name, value in stats.items() if isinstance(value, dict)]
    if not disks:
        return stats
    main = stats[disks[0]]
    stats["main_disk"] = disks[0]
    stats["total_reads"] = main["reads"]
    stats["total_writes"] = main["writes"]
    stats["total_bytes_read"] = main["read_bytes"]
    stats["total_bytes_written"] = main["write_bytes"]
    return stats


def parse_io_stat(text: str) -> Dict[str, Dict]:
    """
    解析 cgroup v2 io.stat

    格式: "8:0 rbytes=N wbytes=N rios=N wios=N dbytes=N dios=N"
    """
    stats = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2 or ":" not in parts[0]:
            continue
        device = {}
        for metric in parts[1:]:
            key, sep, value = metric.partition("=")
            if sep and key and value:
                device[key] = parse_int(value)
        if device:
            stats[parts[0]] = device
    return stats


def parse_blkio(text: str, suffix: str, stats: Dict[str, Dict]) -> None:
    """
    解析 cgroup v1 blkio throttle 文件，结果合并进 stats

    格式: "8:0 Read 1234"，Total 行跳过
    """
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 3 or ":" not in parts[0]:
            continue
        device, op, value = parts
        op = op.lower()
        if op == "total":
            continue
        stats.setdefault(device, {})[f"{op}_{suffix}"] = int(value)


def _parse_blkio_files(contents: Contents) -> Dict[str, Dict]:
    stats: Dict[str, Dict] = {}
    if contents.get("bytes"):
        parse_blkio(contents["bytes"], "bytes", stats)
    if contents.get("ops"):
        parse_blkio(contents["ops"], "ops", stats)
    return stats


def _blkio_source(blkio_dir: str, suffix: str) -> Source:
    bytes_path = os.path.join(blkio_dir, f"blkio.throttle.io_service_bytes{suffix}")
    ops_path = os.path.join(blkio_dir, f"blkio.throttle.io_serviced{suffix}")
    return Source(
        label=f"{bytes_path} (v1)",
        files={"bytes": bytes_path, "ops": ops_path},
        parser=_parse_blkio_files,
        optional=frozenset({"ops"}),
    )


def sources(mode: str, paths: PathsConfig, options: DiskIOInputConfig) -> List[Source]:
    if mode == "host":
        diskstats_path = os.path.join(paths.host_proc, "diskstats")
        return [
            Source(
                label=diskstats_path,
                files={"diskstats": diskstats_path},
                parser=lambda c: summarize_disks(parse_diskstats(c["diskstats"])),
            ),
        ]

    io_stat_path = os.path.join(paths.cgroup, "io.stat")
    blkio_dir = os.path.join(paths.cgroup, "blkio")
    return [
        Source(
            label=f"{io_stat_path} (v2)",
            files={"stat": io_stat_path},
            parser=lambda c: parse_io_stat(c["stat"]),
        ),
        _blkio_source(blkio_dir, "_recursive"),
        _blkio_source(blkio_dir, ""),
    ]
