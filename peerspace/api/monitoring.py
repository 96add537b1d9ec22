"""
Monitoring endpoints for the Peerspace server.
"""

from typing import Any

from fastapi import APIRouter, Request

from ..realtime.envelope import utc_now_z

monitoring_router = APIRouter(tags=["monitoring"])


@monitoring_router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Report liveness plus connection and peer counts."""
    state = request.app.state
    connection_manager = getattr(state, "connection_manager", None)
    registry = getattr(state, "peer_registry", None)
    scheduler = getattr(state, "broadcast_scheduler", None)
    task_registry = getattr(state, "task_registry", None)

    return {
        "status": "healthy" if connection_manager is not None else "starting",
        "timestamp": utc_now_z(),
        "connections": connection_manager.connection_count if connection_manager is not None else 0,
        "peers": len(registry) if registry is not None else 0,
        "broadcast_running": scheduler.is_running if scheduler is not None else False,
        "tasks": task_registry.get_registry_info() if task_registry is not None else {},
    }
