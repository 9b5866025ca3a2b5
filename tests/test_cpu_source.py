"""
单元测试：CPU 统计来源

测试覆盖：
- /proc/stat 单行解析、缺失字段补 0
- percpu / totalcpu 选项
- 容器模式 cgroup v2 -> v1 回退
"""

import asyncio

import pytest

from metrics_agent.config import CpuInputConfig
from metrics_agent.models import DomainError, DomainOk
from metrics_agent.sources import resolve
from metrics_agent.sources.cpu import parse_cpu_line, parse_proc_stat, usage_percent

from conftest import PROC_STAT, write_file


class TestParseCpuLine:
    """/proc/stat cpu 行解析"""

    def test_aggregate_line(self):
        """测试：标准 cpu 行"""
        result = parse_cpu_line("cpu  100 0 50 850 0 0 0 0")

        assert result == {
            "user": 100,
            "nice": 0,
            "system": 50,
            "idle": 850,
            "iowait": 0,
            "irq": 0,
            "softirq": 0,
            "steal": 0,
            "total": 1000,
        }

    def test_missing_trailing_fields(self):
        """测试：缺失的尾部字段补 0"""
        result = parse_cpu_line("cpu 1 2 3")

        assert result["user"] == 1
        assert result["system"] == 3
        assert result["idle"] == 0
        assert result["steal"] == 0
        assert result["total"] == 6

    def test_guest_fields_count_in_total(self):
        """测试：guest 字段计入 total"""
        result = parse_cpu_line("cpu 10 0 10 80 0 0 0 0 5 5")

        assert result["total"] == 110
        assert "guest" not in result

    def test_usage_percent_is_cumulative_ratio(self):
        assert usage_percent(parse_cpu_line("cpu  100 0 50 850 0 0 0 0")) == 15.0
        assert usage_percent({"total": 0}) == 0.0


class TestParseProcStat:
    """选项控制输出哪些 cpu 行"""

    def test_total_only(self):
        result = parse_proc_stat(PROC_STAT, percpu=False, totalcpu=True)

        assert list(result) == ["cpu-total"]
        assert result["cpu-total"]["total"] == 1000
        assert result["cpu-total"]["usage_percent"] == 15.0

    def test_percpu_and_total(self):
        result = parse_proc_stat(PROC_STAT, percpu=True, totalcpu=True)

        assert set(result) == {"cpu-total", "cpu0", "cpu1"}
        assert result["cpu0"]["user"] == 60
        assert result["cpu1"]["idle"] == 440

    def test_percpu_only(self):
        result = parse_proc_stat(PROC_STAT, percpu=True, totalcpu=False)

        assert set(result) == {"cpu0", "cpu1"}


class TestResolveCpu:
    """host / container 模式回退链"""

    def test_host_mode(self, fake_root, fake_paths):
        write_file(fake_root, "host_proc/stat", PROC_STAT)

        result = asyncio.run(resolve("cpu", "host", CpuInputConfig(percpu=True), fake_paths))

        assert isinstance(result, DomainOk)
        assert result.source.endswith("host_proc/stat")
        assert result.data["cpu-total"]["total"] == 1000
        assert "cpu0" in result.data

    def test_container_v2(self, fake_root, fake_paths):
        write_file(fake_root, "cgroup/cpu.stat", "usage_usec 123\nuser_usec 100\nsystem_usec 23\nmode weird\n")

        result = asyncio.run(resolve("cpu", "container", CpuInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert "(v2)" in result.source
        assert result.data["usage_usec"] == 123
        assert result.data["system_usec"] == 23
        assert result.data["mode"] == "weird"

    def test_container_falls_back_to_v1(self, fake_root, fake_paths):
        write_file(fake_root, "cgroup/cpu/cpuacct.usage", "987654321\n")

        result = asyncio.run(resolve("cpu", "container", CpuInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert "(v1)" in result.source
        assert result.data == {"usage_nsec": 987654321}

    def test_empty_v2_falls_back_to_v1(self, fake_root, fake_paths):
        write_file(fake_root, "cgroup/cpu.stat", "")
        write_file(fake_root, "cgroup/cpu/cpuacct.usage", "42")

        result = asyncio.run(resolve("cpu", "container", CpuInputConfig(), fake_paths))

        assert isinstance(result, DomainOk)
        assert result.data["usage_nsec"] == 42

    def test_all_sources_fail(self, fake_paths):
        """测试：所有来源失败返回 DomainError，不抛异常"""
        result = asyncio.run(resolve("cpu", "container", CpuInputConfig(), fake_paths))

        assert isinstance(result, DomainError)
        assert result.source.endswith("cpuacct.usage")
        assert "cpu" in result.error


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
