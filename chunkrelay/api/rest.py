"""
REST API for Interactive Transfers

Design Decision: Step Endpoint
==============================

Some drivers (browser pages, serverless functions, request-scoped hosts)
cannot hold one connection open for a whole transfer. They drive it one
step per request instead:

    POST /step {"step_name": "sending", "auth_token": "..."}
      -> {"progress": 42.5, "message": "...", "next_step": "sending"}

The client keeps calling with the returned next_step until it is null.
Every call runs exactly one transition of the engine; all state lives in
the manifest between calls.

Endpoints are plain (sync) functions: the engine does blocking file and
network I/O, which FastAPI runs in its threadpool.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..errors import LeaseHeld, ManifestCorrupt
from ..transfer.engine import TransferEngine

logger = logging.getLogger(__name__)


# === Pydantic Models ===

class StepRequest(BaseModel):
    """Request to run one transfer step."""
    step_name: Optional[str] = None
    auth_token: str


class StepResponse(BaseModel):
    """Progress after the step."""
    progress: float
    message: str
    next_step: Optional[str] = None


class TransferStatusResponse(BaseModel):
    """Persisted progress of the transfer."""
    transfer_id: str
    sources: int
    state: str
    status: str
    chunk_size: int
    total_size: int
    acknowledged_bytes: int
    chunks_sent: int
    chunk_count: int
    pending_chunks: int
    percent_complete: float
    version: int
    updated_at: float


# === API Creation ===

def create_app(engine: TransferEngine, auth_token: str) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        engine: TransferEngine for the configured transfer
        auth_token: Shared secret every step request must carry

    Returns:
        FastAPI application
    """
    if not auth_token:
        raise ValueError("An auth token is required to expose the step API")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info(f"Step API starting for transfer {engine.transfer_id}")
        yield
        logger.info("Step API stopping...")

    app = FastAPI(
        title="Chunk Relay Step API",
        description="Drive a resumable chunked transfer one step at a time",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    def check_token(token: str):
        if not hmac.compare_digest(token.encode('utf-8'), auth_token.encode('utf-8')):
            raise HTTPException(status_code=403, detail="Invalid auth token")

    # === Endpoints ===

    @app.get("/", tags=["General"])
    def root():
        """API root - basic info."""
        return {
            "name": "Chunk Relay",
            "version": "1.0.0",
            "transfer_id": engine.transfer_id,
        }

    @app.post("/step", response_model=StepResponse, tags=["Transfer"])
    def run_step(request: StepRequest):
        """Run exactly one state transition."""
        check_token(request.auth_token)

        try:
            report = engine.step(request.step_name)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown step: {request.step_name}")
        except ManifestCorrupt as e:
            logger.error(f"Manifest corrupt: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if isinstance(report.error, LeaseHeld):
            raise HTTPException(status_code=409, detail=report.message)

        return StepResponse(**report.to_envelope())

    @app.get("/status", response_model=TransferStatusResponse, tags=["Transfer"])
    def get_status():
        """Get persisted transfer progress."""
        try:
            summary = engine.status()
        except ManifestCorrupt as e:
            raise HTTPException(status_code=500, detail=str(e))

        if summary is None:
            raise HTTPException(status_code=404, detail="No transfer in progress")

        return TransferStatusResponse(**summary)

    return app


def run_api_server(app: FastAPI, host: str = "127.0.0.1", port: int = 8080):
    """
    Run the API server.

    Args:
        app: Application from create_app
        host: Host to bind to
        port: Port to listen on
    """
    import uvicorn

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    server.run()
