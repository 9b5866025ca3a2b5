"""
FastAPI 网关

- GET /v1/snapshot：最新快照
- GET /v1/health：各采集域状态
- WS  /v1/live：实时推送（订阅者连接/断开驱动推送循环）
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from . import __version__
from .agent import MetricsAgent
from .live_feed import LiveFeedPublisher
from .models import DomainOk, Snapshot

logger = logging.getLogger(__name__)


class ConnectionHub:
    """WebSocket 连接集合，提供 broadcast 原语"""

    def __init__(self):
        self._connections: Dict[int, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def add(self, websocket: WebSocket) -> int:
        async with self._lock:
            self._connections[id(websocket)] = websocket
        return id(websocket)

    async def remove(self, connection_id: int) -> None:
        async with self._lock:
            self._connections.pop(connection_id, None)

    async def broadcast(self, payload: Any) -> None:
        async with self._lock:
            connections = list(self._connections.items())
        for connection_id, websocket in connections:
            try:
                await websocket.send_json({"event": "metrics", "data": payload})
            except Exception as e:
                logger.warning(f"Failed to send to connection {connection_id}: {e}")


def create_app(agent: MetricsAgent, manage_agent: bool = True) -> FastAPI:
    """
    创建 FastAPI 应用实例

    Args:
        agent: 已构造的 Agent 上下文
        manage_agent: 是否在应用启动/关闭时启动/停止 Agent 任务
    """
    app = FastAPI(
        title="Metrics Agent",
        version=__version__,
        description="主机/容器资源监控代理",
    )

    hub = ConnectionHub()
    publisher = LiveFeedPublisher(
        get_snapshot=agent.get_latest_snapshot,
        broadcast=hub.broadcast,
        interval=agent.config.live_feed_seconds,
    )
    app.state.agent = agent
    app.state.hub = hub
    app.state.publisher = publisher

    @app.on_event("startup")
    async def _startup():
        if manage_agent:
            agent.start()

    @app.on_event("shutdown")
    async def _shutdown():
        await publisher.stop()
        if manage_agent:
            await agent.close()

    @app.get("/v1/snapshot", response_model=Snapshot)
    async def get_snapshot():
        """获取最新快照"""
        snapshot = await agent.get_latest_snapshot()
        if snapshot is None:
            raise HTTPException(status_code=503, detail="No snapshot collected yet")
        return snapshot

    @app.get("/v1/health")
    async def get_health():
        """
        健康检查端点

        根据最新快照给出各采集域状态
        """
        snapshot: Optional[Snapshot] = await agent.get_latest_snapshot()
        checks: Dict[str, str] = {}
        details: Dict[str, Optional[str]] = {}
        overall_status = "ok"

        if snapshot is None:
            overall_status = "starting"
        elif snapshot.error:
            overall_status = "error"
            details["snapshot"] = snapshot.error
        else:
            for domain, result in snapshot.domains.items():
                if isinstance(result, DomainOk):
                    checks[domain] = "ok"
                    details[domain] = result.source
                else:
                    checks[domain] = "error"
                    details[domain] = result.error
                    overall_status = "degraded"

        return {
            "status": overall_status,
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "checks": checks,
            "details": details,
            "buffered_points": len(agent.buffer),
            "live_feed": publisher.state,
        }

    @app.websocket("/v1/live")
    async def live(websocket: WebSocket):
        """实时推送：连接即订阅，断开即退订"""
        await websocket.accept()
        connection_id = await hub.add(websocket)
        await publisher.join(connection_id)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await hub.remove(connection_id)
            await publisher.leave(connection_id)

    return app
