"""
配置管理模块

从 YAML 文件加载配置，支持环境变量覆盖（METRICS_AGENT_ 前缀，嵌套字段用 __ 分隔）。
配置在启动时加载一次，之后只读。
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/metrics-agent/config.yaml"

DEFAULT_COLLECTION_INTERVAL = 10.0
DEFAULT_FLUSH_INTERVAL = 10.0
DEFAULT_LIVE_FEED_INTERVAL = 1.0

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh])\s*$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}


def parse_duration(value: Optional[str], default: float) -> float:
    """
    解析时长字符串

    Args:
        value: 形如 "10s"、"5m"、"1h" 的字符串
        default: 解析失败时使用的默认秒数

    Returns:
        秒数（浮点）
    """
    if value is None:
        logger.warning(f"Interval missing, using default {default}s")
        return default

    match = _DURATION_RE.match(str(value))
    if not match:
        logger.warning(f"Invalid interval {value!r}, using default {default}s")
        return default

    seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        logger.warning(f"Non-positive interval {value!r}, using default {default}s")
        return default
    return seconds


class CpuInputConfig(BaseModel):
    """CPU 采集配置"""
    enabled: bool = True
    percpu: bool = False
    totalcpu: bool = True


class MemoryInputConfig(BaseModel):
    """内存采集配置"""
    enabled: bool = True


class DiskIOInputConfig(BaseModel):
    """磁盘 I/O 采集配置"""
    enabled: bool = True


class DiskInputConfig(BaseModel):
    """磁盘容量采集配置"""
    enabled: bool = True
    ignore_fs: List[str] = Field(
        default=["tmpfs", "devtmpfs", "devfs", "iso9660", "overlay", "aufs", "squashfs"],
        description="忽略的文件系统类型",
    )


class NetworkInputConfig(BaseModel):
    """网络采集配置"""
    enabled: bool = True
    interfaces: List[str] = Field(default_factory=list, description="接口白名单，为空表示全部")


class InputsConfig(BaseModel):
    """各采集域配置"""
    cpu: CpuInputConfig = Field(default_factory=CpuInputConfig)
    memory: MemoryInputConfig = Field(default_factory=MemoryInputConfig)
    diskio: DiskIOInputConfig = Field(default_factory=DiskIOInputConfig)
    disk: DiskInputConfig = Field(default_factory=DiskInputConfig)
    network: NetworkInputConfig = Field(default_factory=NetworkInputConfig)


class PathsConfig(BaseModel):
    """内核统计接口路径"""
    host_proc: str = Field(default="/host/proc", description="宿主机 /proc 挂载点")
    proc: str = Field(default="/proc", description="容器内 /proc")
    cgroup: str = Field(default="/sys/fs/cgroup", description="cgroup 挂载点")
    host_mount_prefix: str = Field(default="", description="宿主机根目录挂载前缀（用于容量查询）")


class SinkConfig(BaseModel):
    """时序数据库写入配置"""
    urls: List[str] = Field(..., description="写入地址列表")
    token: str = Field(default="", description="认证 Token")
    organization: str = Field(default="", description="组织")
    bucket: str = Field(..., description="Bucket")
    timeout: float = 5.0
    retry_count: int = 2
    retry_delay: float = 1.0


class APIConfig(BaseModel):
    """实时推送网关配置"""
    listen: str = "0.0.0.0:3001"

    @property
    def host(self) -> str:
        """获取监听主机"""
        return self.listen.split(":")[0]

    @property
    def port(self) -> int:
        """获取监听端口"""
        return int(self.listen.split(":")[1])


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None

    @field_validator("level", mode="before")
    @classmethod
    def _known_level(cls, value):
        # 级别名同时传给 uvicorn，只接受两边都认识的名称
        level = str(value or "").strip().upper()
        level = _LOG_LEVEL_ALIASES.get(level, level)
        if level not in LOG_LEVELS:
            logger.warning(f"Invalid logging level {value!r}, using default INFO")
            return "INFO"
        return level


class AgentConfig(BaseSettings):
    """Agent 配置模型"""

    model_config = SettingsConfigDict(
        env_prefix="METRICS_AGENT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    target: Literal["host", "container"] = Field(default="container", description="采集模式")
    collection_interval: str = "10s"
    flush_interval: str = "10s"
    live_feed_interval: str = "1s"
    batch_size: int = 1000
    buffer_capacity: int = 10000
    omit_hostname: bool = False
    hostname: Optional[str] = None
    inputs: InputsConfig = Field(default_factory=InputsConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    sink: Optional[SinkConfig] = None
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量优先于 YAML
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("batch_size", "buffer_capacity", mode="before")
    @classmethod
    def _positive_or_default(cls, value, info):
        default = cls.model_fields[info.field_name].default
        try:
            number = int(value)
        except (TypeError, ValueError):
            number = 0
        if number <= 0:
            logger.warning(f"Invalid {info.field_name} {value!r}, using default {default}")
            return default
        return number

    @field_validator("collection_interval", "flush_interval", "live_feed_interval", mode="before")
    @classmethod
    def _interval_as_str(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].default
        return str(value)

    @property
    def collection_seconds(self) -> float:
        return parse_duration(self.collection_interval, DEFAULT_COLLECTION_INTERVAL)

    @property
    def flush_seconds(self) -> float:
        return parse_duration(self.flush_interval, DEFAULT_FLUSH_INTERVAL)

    @property
    def live_feed_seconds(self) -> float:
        return parse_duration(self.live_feed_interval, DEFAULT_LIVE_FEED_INTERVAL)


def load_config(config_path: Optional[str] = None) -> AgentConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 METRICS_AGENT_CONFIG
    3. 默认路径 /etc/metrics-agent/config.yaml

    配置文件缺失或不合法时不会阻止启动，使用默认配置并记录警告。

    Returns:
        AgentConfig 实例
    """
    if config_path is None:
        config_path = os.getenv("METRICS_AGENT_CONFIG", DEFAULT_CONFIG_PATH)

    config_file = Path(config_path)
    raw_config = {}

    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to read config {config_path}: {e}; using defaults")
            raw_config = {}
        if not isinstance(raw_config, dict):
            logger.warning(f"Config {config_path} is not a mapping; using defaults")
            raw_config = {}
    else:
        logger.warning(f"Config file not found: {config_path}; using defaults")

    try:
        return AgentConfig(**raw_config)
    except ValidationError as e:
        logger.warning(f"Invalid configuration in {config_path}: {e}; using defaults")

    try:
        return AgentConfig()
    except ValidationError as e:
        # 环境变量本身不合法
        logger.warning(f"Invalid environment overrides: {e}; ignoring them")
        return AgentConfig.model_construct()
