"""
Metrics Agent - 主机/容器资源监控代理

负责：
- 从 /proc 与 cgroup 接口采集 CPU、内存、磁盘 I/O、磁盘容量、网络统计
- 将快照转换为时序数据点并缓冲
- 定时批量写入时序数据库
- 向已连接的订阅者实时推送最新快照
"""

__version__ = "1.0.0"
