"""
单元测试：磁盘 I/O 统计来源
"""

import asyncio

import pytest

from metrics_agent.config import DiskIOInputConfig
from metrics_agent.models import DomainError, DomainOk
from metrics_agent.sources import resolve
from metrics_agent.sources.diskio import parse_diskstats, parse_io_stat

from conftest import DISKSTATS, write_file

BLKIO_BYTES = """8:0 Read 4096
8:0 Write 8192
8:0 Sync 1024
8:0 Async 11264
8:0 Total 12288
Total 12288
"""

NVME_DISKSTATS = """ 259       0 nvme0n1 500 0 4000 10 200 0 1600 5 0 12 15
 259       1 nvme0n1p1 490 0 3900 9 195 0 1500 4 0 11 13
 259       2 nvme0n1p2 10 0 100 1 5 0 100 1 0 1 2
 259       3 nvme1n1 7 0 56 1 3 0 24 1 0 2 2
"""

BLKIO_OPS = """8:0 Read 3
8:0 Write 5
8:0 Total 8
"""


class TestParseDiskstats:
    def test_partitions_excluded(self):
        """测试：sda1 被排除，nvme0n1 作为整盘保留"""
        result = parse_diskstats(DISKSTATS)

        assert set(result) == {"sda", "nvme0n1", "vda"}

    def test_nvme_only_host(self):
        """测试：只有 NVMe 盘的主机（分区带 p 后缀）"""
        result = parse_diskstats(NVME_DISKSTATS)

        assert set(result) == {"nvme0n1", "nvme1n1"}

    @pytest.mark.parametrize("device,partition", [
        ("mmcblk0", "mmcblk0p1"),
        ("xvda", "xvda1"),
        ("md0", None),
    ])
    def test_whole_disks_ending_in_digit(self, device, partition):
        lines = [f"   8 0 {device} 1 0 8 1 1 0 8 1 0 2 2"]
        if partition:
            lines.append(f"   8 1 {partition} 1 0 8 1 1 0 8 1 0 2 2")

        assert set(parse_diskstats("\n".join(lines) + "\n")) == {device}

    def test_numbered_device_without_parent_kept(self):
        assert set(parse_diskstats("   8 1 sdb1 1 0 8 1 1 0 8 1 0 2 2\n")) == {"sdb1"}

    def test_fields(self):
        sda = parse_diskstats(DISKSTATS)["sda"]

        assert sda["reads"] == 100
        assert sda["reads_merged"] == 5
        assert sda["read_sectors"] == 2000
        assert sda["read_time"] == 30
        assert sda["writes"] == 50
        assert sda["writes_merged"] == 2
        assert sda["write_sectors"] == 800
        assert sda["write_time"] == 20
        assert sda["io_in_progress"] == 0
        assert sda["io_time"] == 40
        assert sda["weighted_io_time"] == 50
        assert sda["read_bytes"] == 2000 * 512
        assert sda["write_bytes"] == 800 * 512

    def test_short_lines_skipped(self):
        assert parse_diskstats("8 0 sda 1 2 3\n") == {}


class TestParseIoStat:
    def test_cgroup_v2_format(self):
        text = "8:0 rbytes=1024 wbytes=2048 rios=1 wios=2 dbytes=0 dios=0\n253:1 rbytes=5 wbytes=6 rios=7 wios=8\n"

        result = parse_io_stat(text)

        assert result["8:0"] == {"rbytes": 1024, "wbytes": 2048, "rios": 1, "wios": 2, "dbytes": 0, "dios": 0}
        assert result["253:1"]["wios"] == 8


class TestResolveDiskIO:
    def test_host_mode(self, fake_root, fake_paths):
        write_file(fake_root, "host_proc/diskstats", DISKSTATS)

        result = asyncio.run(resolve("diskio", "host", DiskIOInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert {k for k, v in result.data.items() if isinstance(v, dict)} == {"sda", "nvme0n1", "vda"}

    def test_host_summary(self, fake_root, fake_paths):
        """测试：主磁盘摘要取第一个整盘"""
        write_file(fake_root, "host_proc/diskstats", DISKSTATS)

        data = asyncio.run(resolve("diskio", "host", DiskIOInputConfig(), fake_paths)).data

        assert data["main_disk"] == "sda"
        assert data["total_reads"] == 100
        assert data["total_writes"] == 50
        assert data["total_bytes_read"] == 2000 * 512
        assert data["total_bytes_written"] == 800 * 512

    def test_host_nvme_only(self, fake_root, fake_paths):
        write_file(fake_root, "host_proc/diskstats", NVME_DISKSTATS)

        result = asyncio.run(resolve("diskio", "host", DiskIOInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert result.data["main_disk"] == "nvme0n1"
        assert result.data["nvme0n1"]["reads"] == 500
        assert "nvme0n1p1" not in result.data

    def test_container_v1_recursive(self, fake_root, fake_paths):
        write_file(fake_root, "cgroup/blkio/blkio.throttle.io_service_bytes_recursive", BLKIO_BYTES)
        write_file(fake_root, "cgroup/blkio/blkio.throttle.io_serviced_recursive", BLKIO_OPS)

        result = asyncio.run(resolve("diskio", "container", DiskIOInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert "_recursive" in result.source
        device = result.data["8:0"]
        assert device["read_bytes"] == 4096
        assert device["write_bytes"] == 8192
        assert device["read_ops"] == 3
        assert device["write_ops"] == 5
        assert "total_bytes" not in device

    def test_container_v1_non_recursive(self, fake_root, fake_paths):
        write_file(fake_root, "cgroup/blkio/blkio.throttle.io_service_bytes", BLKIO_BYTES)

        result = asyncio.run(resolve("diskio", "container", DiskIOInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert result.data["8:0"]["read_bytes"] == 4096
        assert "read_ops" not in result.data["8:0"]

    def test_container_prefers_v2(self, fake_root, fake_paths):
        write_file(fake_root, "cgroup/io.stat", "8:0 rbytes=1 wbytes=2 rios=3 wios=4\n")
        write_file(fake_root, "cgroup/blkio/blkio.throttle.io_service_bytes_recursive", BLKIO_BYTES)

        result = asyncio.run(resolve("diskio", "container", DiskIOInputConfig(), fake_paths))

        assert "(v2)" in result.source
        assert result.data["8:0"]["rbytes"] == 1

    def test_container_nothing_readable(self, fake_paths):
        result = asyncio.run(resolve("diskio", "container", DiskIOInputConfig(), fake_paths))

        assert isinstance(result, DomainError)
        assert result.source.endswith("blkio.throttle.io_service_bytes")


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
