"""
数据模型定义

- DomainOk / DomainError：单个采集域的结果（带标签的联合类型）
- Snapshot：一次采集周期的完整结果
- Point：归一化后的时序数据点
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field


class DomainOk(BaseModel):
    """采集成功"""
    status: Literal["ok"] = "ok"
    data: Dict[str, Any] = Field(default_factory=dict, description="解析结果")
    source: str = Field(..., description="数据来源路径")


class DomainError(BaseModel):
    """采集失败（所有来源均不可用）"""
    status: Literal["error"] = "error"
    error: str = Field(..., description="错误信息")
    source: str = Field(..., description="最后尝试的路径")


DomainResult = Annotated[Union[DomainOk, DomainError], Field(discriminator="status")]


class Snapshot(BaseModel):
    """采集快照"""
    timestamp: datetime = Field(..., description="采集时间")
    target: Literal["host", "container"] = Field(..., description="采集模式")
    domains: Dict[str, DomainResult] = Field(default_factory=dict, description="已启用的采集域结果")
    error: Optional[str] = Field(None, description="整体采集失败原因")

    def ok(self, domain: str) -> Optional[DomainOk]:
        """返回某个采集域的成功结果，失败或未启用返回 None"""
        result = self.domains.get(domain)
        if isinstance(result, DomainOk):
            return result
        return None


@dataclass(frozen=True)
class Point:
    """时序数据点（创建后不可变）"""
    measurement: str
    tags: Mapping[str, str]
    fields: Mapping[str, Union[int, float]]
    timestamp: datetime

    def __post_init__(self):
        # 冻结副本，调用方后续修改原字典不影响数据点
        object.__setattr__(self, "tags", MappingProxyType(dict(sorted(self.tags.items()))))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
