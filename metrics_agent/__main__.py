"""
Metrics Agent 主程序入口

使用方式:
    python -m metrics_agent [config.yaml]
    或
    metrics-agent [config.yaml]
"""

import logging
import sys
from pathlib import Path

import uvicorn

from . import __version__
from .agent import MetricsAgent
from .app import create_app
from .config import AgentConfig, load_config
from .sink import create_sink


def setup_logging(config: AgentConfig):
    """配置日志"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main():
    """主程序入口"""
    # 配置加载前先输出到 stdout，便于看到配置警告
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    config = load_config(config_path)
    setup_logging(config)

    logger = logging.getLogger(__name__)
    logger.info(f"Metrics Agent v{__version__}")
    logger.info(f"Target: {config.target}, listening on {config.api.listen}")

    agent = MetricsAgent(config, sink=create_sink(config.sink))
    app = create_app(agent)

    try:
        uvicorn.run(
            app,
            host=config.api.host,
            port=config.api.port,
            log_level=config.logging.level.lower(),
            access_log=False,
        )
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting...")


if __name__ == "__main__":
    main()
