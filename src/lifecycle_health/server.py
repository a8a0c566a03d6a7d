"""
Probe API Server

FastAPI server exposing Kubernetes-style probes and Prometheus metrics for
the lifecycle controller.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel


class ProbeStatus(BaseModel):
    """Probe response body."""
    status: str
    since: Optional[datetime] = None


class ProbeState:
    """Readiness flag shared between the controller and the probe server."""

    def __init__(self):
        self._ready_since: Optional[datetime] = None
        self.started_at = datetime.now(timezone.utc)

    @property
    def ready(self) -> bool:
        return self._ready_since is not None

    @property
    def ready_since(self) -> Optional[datetime]:
        return self._ready_since

    def mark_ready(self) -> None:
        if self._ready_since is None:
            self._ready_since = datetime.now(timezone.utc)

    def mark_not_ready(self) -> None:
        self._ready_since = None


def create_app(state: ProbeState) -> FastAPI:
    """Build the probe app around a controller's probe state."""
    app = FastAPI(
        title="Cloud Lifecycle Controller",
        description="Health probes and metrics for the node lifecycle controller",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/healthz", response_model=ProbeStatus)
    async def liveness():
        """Kubernetes-style liveness probe."""
        return ProbeStatus(status="alive", since=state.started_at)

    @app.get("/readyz", response_model=ProbeStatus)
    async def readiness():
        """Ready once the node watch has completed its first list."""
        if not state.ready:
            raise HTTPException(status_code=503, detail="Node watch not synced")
        return ProbeStatus(status="ready", since=state.ready_since)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
