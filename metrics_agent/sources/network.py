"""
网络统计来源

网络计数不在 cgroup 中，统一读取 net/dev：
- host: <host_proc>/net/dev
- container: <proc>/net/dev
"""

import os
from typing import Any, Dict, List, Optional

from ..config import NetworkInputConfig, PathsConfig
from .base import Source

LOOPBACK = "lo"

# 列序号 -> 字段名（接收 8 列，发送 8 列）
NET_DEV_FIELDS = {
    0: "rx_bytes",
    1: "rx_packets",
    2: "rx_errs",
    3: "rx_drop",
    8: "tx_bytes",
    9: "tx_packets",
    10: "tx_errs",
    11: "tx_drop",
}


def parse_net_dev(text: str, interfaces: Optional[List[str]] = None) -> Dict[str, Dict[str, int]]:
    """
    解析 /proc/net/dev

    Args:
        text: 文件内容
        interfaces: 接口白名单，为空表示不限制

    Returns:
        {interface: {rx_bytes, rx_packets, ...}}，始终排除 lo
    """
    allowed = set(interfaces or [])
    stats = {}
    for line in text.splitlines():
        # 表头行包含 "|"
        if "|" in line or ":" not in line:
            continue
        name, _, data = line.partition(":")
        name = name.strip()
        if not name or name == LOOPBACK:
            continue
        if allowed and name not in allowed:
            continue

        values = data.split()
        if len(values) < 16:
            continue

        iface = {}
        for index, field_name in NET_DEV_FIELDS.items():
            try:
                iface[field_name] = int(values[index])
            except ValueError:
                iface[field_name] = 0
        stats[name] = iface
    return stats


def _to_mb(value: int) -> float:
    return round(value / (1024 * 1024), 2)


def summarize_interfaces(stats: Dict[str, Any]) -> Dict[str, Any]:
    """
    添加主接口摘要（实时面板使用）

    主接口为文件中第一个非 lo 接口；摘要为标量键，不产生数据点。
    """
    interfaces = [name for name, value in stats.items() if isinstance(value, dict)]
    if not interfaces:
        return stats
    main = stats[interfaces[0]]
    stats["main_interface"] = interfaces[0]
    stats["total_rx_bytes"] = main["rx_bytes"]
    stats["total_tx_bytes"] = main["tx_bytes"]
    stats["total_rx_mb"] = _to_mb(main["rx_bytes"])
    stats["total_tx_mb"] = _to_mb(main["tx_bytes"])
    return stats


def sources(mode: str, paths: PathsConfig, options: NetworkInputConfig) -> List[Source]:
    proc = paths.host_proc if mode == "host" else paths.proc
    net_dev_path = os.path.join(proc, "net", "dev")
    return [
        Source(
            label=net_dev_path,
            files={"dev": net_dev_path},
            parser=lambda c: summarize_interfaces(parse_net_dev(c["dev"], options.interfaces)),
        ),
    ]
