"""
Websocket server API — FastAPI endpoints.

Keeps the task protected while websocket clients are connected:
- GET /            load balancer health check
- GET /protection  reconciler status and state
- WS  /ws          echo-style client channel (ping -> pong)
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from task_protection.agent.client import EcsAgentClient
from task_protection.api.connections import ConnectionTracker
from task_protection.config.settings import ServerSettings, load_settings
from task_protection.reconciler.loop import ProtectionReconciler


def create_app(
    settings: Optional[ServerSettings] = None,
    reconciler: Optional[ProtectionReconciler] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or load_settings(ServerSettings)
    agent: Optional[EcsAgentClient] = None
    if reconciler is None:
        agent = EcsAgentClient(
            settings.ecs_agent_uri,
            timeout_seconds=settings.agent_timeout_seconds,
            retries=settings.agent_retries,
        )
        reconciler = ProtectionReconciler(
            agent,
            settings.reconciler_config(),
            rejection_alert_threshold=settings.rejection_alert_threshold,
        )
    tracker = ConnectionTracker(reconciler)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reconciler.start()
        try:
            yield
        finally:
            # Stop refreshing protection and let the lease expire on its own
            reconciler.shutdown()
            await reconciler.wait_stopped()
            if agent is not None:
                await agent.aclose()

    app = FastAPI(
        title="Task Protection Websocket Server",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.reconciler = reconciler
    app.state.connections = tracker

    @app.get("/", response_class=PlainTextResponse)
    def health():
        """Load balancer health check."""
        return "Healthy"

    @app.get("/protection")
    def protection_status():
        """Reconciler status, protection state, and live connection count."""
        return {
            "status": reconciler.status,
            "state": reconciler.state.model_dump(mode="json"),
            "config": reconciler.config.model_dump(),
            "connections": tracker.count,
        }

    @app.websocket("/ws")
    async def client_socket(websocket: WebSocket):
        await websocket.accept()
        tracker.opened()
        try:
            await websocket.send_text(f"Welcome! There are {tracker.count} connections")
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None:
                    data = (message.get("bytes") or b"").decode("utf-8", errors="replace")
                if data == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            pass
        finally:
            tracker.closed()

    if settings.static_dir and Path(settings.static_dir).is_dir():
        app.mount("/client", StaticFiles(directory=settings.static_dir, html=True), name="client")

    return app
