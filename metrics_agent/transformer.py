"""
快照 -> 数据点转换

设备、接口、挂载点、CPU 核等标识作为 tag，不进入 measurement 名称。
失败的采集域不产生数据点。
"""

import socket
from typing import Any, Dict, List, Mapping, Optional

from .config import AgentConfig
from .models import Point, Snapshot

# 采集域 -> (measurement, 标识 tag 名)
MEASUREMENTS = {
    "cpu": ("cpu", "cpu"),
    "memory": ("mem", None),
    "diskio": ("diskio", "name"),
    "disk": ("disk", "path"),
    "network": ("net", "interface"),
}

# 采集域中作为 tag 而非 field 的字符串键
_STRING_TAGS = {
    "disk": ("device", "fstype"),
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numeric_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """只保留数值字段"""
    return {key: value for key, value in data.items() if _is_number(value)}


def _is_keyed(data: Mapping[str, Any]) -> bool:
    # 按设备/接口分组的结果；同级的标量键是摘要（main_disk、total_rx_bytes 等）
    return any(isinstance(value, dict) for value in data.values())


def build_global_tags(config: AgentConfig) -> Dict[str, str]:
    """全局 tag：host（除非 omit_hostname）"""
    tags = {}
    if not config.omit_hostname:
        tags["host"] = config.hostname or socket.gethostname()
    return tags


class PointTransformer:
    """把快照转换为数据点，无副作用"""

    def __init__(self, global_tags: Optional[Mapping[str, str]] = None):
        self.global_tags = dict(global_tags or {})

    def _point(self, measurement: str, tags: Dict[str, str], fields: Dict[str, Any], snapshot: Snapshot) -> Optional[Point]:
        if not fields:
            return None
        return Point(
            measurement=measurement,
            tags={**self.global_tags, "target": snapshot.target, **tags},
            fields=fields,
            timestamp=snapshot.timestamp,
        )

    def _memory_points(self, data: Mapping[str, Any], snapshot: Snapshot) -> List[Point]:
        fields = {}
        # cgroup 内存的 stat 子项与顶层字段合并，顶层优先
        stat = data.get("stat")
        if isinstance(stat, dict):
            fields.update(numeric_fields(stat))
        fields.update(numeric_fields(data))
        point = self._point("mem", {}, fields, snapshot)
        return [point] if point else []

    def _keyed_points(self, domain: str, data: Mapping[str, Any], snapshot: Snapshot) -> List[Point]:
        measurement, tag_name = MEASUREMENTS[domain]
        string_tags = _STRING_TAGS.get(domain, ())
        points = []
        for key in sorted(data):
            entry = data[key]
            if not isinstance(entry, dict):
                continue
            tags = {tag_name: str(key)}
            for name in string_tags:
                if isinstance(entry.get(name), str):
                    tags[name] = entry[name]
            point = self._point(measurement, tags, numeric_fields(entry), snapshot)
            if point:
                points.append(point)
        return points

    def transform(self, snapshot: Snapshot) -> List[Point]:
        """
        转换快照

        Returns:
            数据点列表（按采集域和标识排序，结果确定）
        """
        points: List[Point] = []
        for domain in sorted(snapshot.domains):
            if domain not in MEASUREMENTS:
                continue
            result = snapshot.ok(domain)
            if result is None:
                continue
            data = result.data

            if domain == "memory":
                points.extend(self._memory_points(data, snapshot))
            elif _is_keyed(data):
                points.extend(self._keyed_points(domain, data, snapshot))
            else:
                # 容器模式 CPU 等扁平结果
                measurement, tag_name = MEASUREMENTS[domain]
                tags = {tag_name: "cpu-total"} if domain == "cpu" else {}
                point = self._point(measurement, tags, numeric_fields(data), snapshot)
                if point:
                    points.append(point)
        return points


def transform(snapshot: Snapshot, global_tags: Optional[Mapping[str, str]] = None) -> List[Point]:
    """便捷函数：使用给定全局 tag 转换快照"""
    return PointTransformer(global_tags).transform(snapshot)
