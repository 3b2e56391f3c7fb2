"""
Health endpoints for the valkey manager sidecar.

Two independent probes let the orchestrator tell "process up" apart from
"ready to serve":

- ``/healthz``: liveness, always OK while the process runs
- ``/readyz``: readiness, OK once the last reconciliation succeeded
"""

from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from valkey_manager.cluster.controller import ReconciliationState

logger = structlog.get_logger(__name__)


class HealthResponse(BaseModel):
    """Response model for health checks"""
    status: str
    member_index: Optional[int] = None


def create_health_app(state: ReconciliationState, member_index: Optional[int] = None) -> FastAPI:
    """Build the health app around the shared reconciliation state."""
    app = FastAPI(
        title="Valkey Manager Health",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def liveness():
        """
        Liveness probe - the manager process is running
        """
        return HealthResponse(status="alive", member_index=member_index)

    @app.get("/readyz", response_model=HealthResponse, tags=["Health"])
    async def readiness():
        """
        Readiness probe - the cluster was configured by the last reconciliation
        """
        if state.configured:
            return HealthResponse(status="ready", member_index=member_index)

        logger.debug("readiness_probe_failed", member_index=member_index)
        raise HTTPException(
            status_code=503,
            detail={"status": "not ready", "member_index": member_index},
        )

    return app
