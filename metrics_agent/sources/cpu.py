"""
CPU 统计来源

- host: <host_proc>/stat
- container: cgroup v2 cpu.stat，失败时 cgroup v1 cpuacct.usage
"""

import os
from typing import Dict, List

from ..config import CpuInputConfig, PathsConfig
from .base import Contents, Source, parse_int

# /proc/stat cpu 行字段顺序
CPU_FIELDS = ["user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal"]

# 计入“使用”的字段
_BUSY_FIELDS = ("user", "nice", "system", "irq", "softirq", "steal")


def parse_cpu_line(line: str) -> Dict[str, int]:
    """
    解析 /proc/stat 中的一行 cpu 统计

    格式: cpu  user nice system idle iowait irq softirq steal guest guest_nice
    缺失的尾部字段补 0，total 为所有计数之和。
    """
    parts = line.split()
    values = []
    for raw in parts[1:]:
        try:
            values.append(int(raw))
        except ValueError:
            values.append(0)

    stats = {}
    for i, name in enumerate(CPU_FIELDS):
        stats[name] = values[i] if i < len(values) else 0
    stats["total"] = sum(values)
    return stats


def usage_percent(stats: Dict[str, int]) -> float:
    """基于累计计数的使用率（非两次采样差值）"""
    total = stats.get("total", 0)
    if total <= 0:
        return 0.0
    busy = sum(stats.get(name, 0) for name in _BUSY_FIELDS)
    return min(100.0, max(0.0, busy * 100.0 / total))


def parse_proc_stat(text: str, percpu: bool, totalcpu: bool) -> Dict[str, Dict]:
    """解析整个 /proc/stat，返回 {cpu-total|cpuN: stats}"""
    result = {}
    for line in text.splitlines():
        if not line.startswith("cpu"):
            continue
        name = line.split(None, 1)[0]
        if name == "cpu":
            if not totalcpu:
                continue
            key = "cpu-total"
        else:
            if not percpu:
                continue
            key = name
        stats = parse_cpu_line(line)
        stats["usage_percent"] = usage_percent(stats)
        result[key] = stats
    return result


def parse_key_values(text: str) -> Dict:
    """解析 "key value" 形式的多行文本（cgroup *.stat）"""
    stats = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            stats[parts[0]] = parse_int(parts[1])
    return stats


def _parse_cpuacct_usage(contents: Contents) -> Dict:
    return {"usage_nsec": int(contents["usage"].strip())}


def sources(mode: str, paths: PathsConfig, options: CpuInputConfig) -> List[Source]:
    if mode == "host":
        stat_path = os.path.join(paths.host_proc, "stat")
        return [
            Source(
                label=stat_path,
                files={"stat": stat_path},
                parser=lambda c: parse_proc_stat(c["stat"], options.percpu, options.totalcpu),
            ),
        ]

    v2_path = os.path.join(paths.cgroup, "cpu.stat")
    v1_path = os.path.join(paths.cgroup, "cpu", "cpuacct.usage")
    return [
        Source(
            label=f"{v2_path} (v2)",
            files={"stat": v2_path},
            parser=lambda c: parse_key_values(c["stat"]),
        ),
        Source(
            label=f"{v1_path} (v1)",
            files={"usage": v1_path},
            parser=_parse_cpuacct_usage,
        ),
    ]
