"""
测试公共 fixture

在 tmp_path 下构造假的 /proc 与 cgroup 目录树。
"""

import sys
from pathlib import Path

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from metrics_agent.config import AgentConfig, PathsConfig


PROC_STAT = """cpu  100 0 50 850 0 0 0 0
cpu0 60 0 30 410 0 0 0 0
cpu1 40 0 20 440 0 0 0 0
intr 12345
ctxt 6789
"""

MEMINFO = """MemTotal:        1000 kB
MemFree:          400 kB
"""

DISKSTATS = """   8       0 sda 100 5 2000 30 50 2 800 20 0 40 50
   8       1 sda1 90 5 1800 25 45 2 700 18 0 35 45
 259       0 nvme0n1 10 0 80 1 5 0 40 1 0 2 3
 252       0 vda 7 1 56 3 4 0 32 2 0 5 6
"""

NET_DEV = """Inter-|   Receive                                                |  Transmit
 face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed
    lo: 1000 10 0 0 0 0 0 0 1000 10 0 0 0 0 0 0
  eth0: 5000 50 1 2 0 0 0 0 3000 30 3 4 0 0 0 0
  eth1: 700 7 0 0 0 0 0 0 900 9 0 0 0 0 0 0
"""

MOUNTS = """/dev/sda1 / ext4 rw,relatime 0 0
proc /proc proc rw,nosuid 0 0
sysfs /sys sysfs rw 0 0
tmpfs /run tmpfs rw 0 0
/dev/sdb1 /data xfs rw 0 0
"""


def write_file(root: Path, relative: str, content: str) -> Path:
    """在 root 下写入文件（自动创建目录）"""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def fake_root(tmp_path) -> Path:
    return tmp_path


@pytest.fixture
def fake_paths(tmp_path) -> PathsConfig:
    """指向 tmp_path 的统计接口路径"""
    for name in ("host_proc", "proc", "cgroup"):
        (tmp_path / name).mkdir()
    return PathsConfig(
        host_proc=str(tmp_path / "host_proc"),
        proc=str(tmp_path / "proc"),
        cgroup=str(tmp_path / "cgroup"),
    )


@pytest.fixture
def host_tree(tmp_path, fake_paths) -> PathsConfig:
    """完整的宿主机 /proc 假目录"""
    write_file(tmp_path, "host_proc/stat", PROC_STAT)
    write_file(tmp_path, "host_proc/meminfo", MEMINFO)
    write_file(tmp_path, "host_proc/diskstats", DISKSTATS)
    write_file(tmp_path, "host_proc/net/dev", NET_DEV)
    write_file(tmp_path, "host_proc/1/mounts", MOUNTS)
    return fake_paths


@pytest.fixture
def make_config(fake_paths):
    """构造指向假目录的配置"""
    def _make(**overrides) -> AgentConfig:
        overrides.setdefault("paths", fake_paths)
        overrides.setdefault("hostname", "test-host")
        return AgentConfig(**overrides)

    return _make
