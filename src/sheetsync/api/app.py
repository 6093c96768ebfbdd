"""
FastAPI status surface for sheetsync.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from ..core.config import load_config
from ..exceptions import BatchSyncError, SheetSyncException, UnitNotFoundError
from ..models.state import StatusSnapshot
from ..services.runtime import SyncRuntime
from ..version import __version__

logger = logging.getLogger(__name__)


def create_app(runtime: Optional[SyncRuntime] = None) -> FastAPI:
    """
    Build the application.

    Args:
        runtime: Runtime to serve; when None it is built from the environment
            on startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if app.state.runtime is None:
            app.state.runtime = SyncRuntime.from_config(load_config())
        await app.state.runtime.start()
        logger.info("Application startup complete")

        yield

        await app.state.runtime.stop()
        logger.info("Application shutdown")

    app = FastAPI(
        title="sheetsync",
        description="Synchronizes ledger records into Google Sheets",
        version=__version__,
        lifespan=lifespan
    )
    app.state.runtime = runtime

    allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
    allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def get_runtime(request: Request) -> SyncRuntime:
        current = request.app.state.runtime
        if current is None:
            raise HTTPException(status_code=500, detail="Runtime not initialized")
        return current

    @app.get("/health")
    async def health_check(request: Request):
        """Liveness check."""
        current = request.app.state.runtime
        return {
            "status": "healthy",
            "version": __version__,
            "runtime": current is not None and current.started,
        }

    @app.get("/api/status", response_model=StatusSnapshot)
    async def get_status(request: Request):
        """Per-sheet run state plus schedule and sink summary."""
        return get_runtime(request).orchestrator.get_status()

    @app.post("/api/sheets/{sheet_id}/run")
    async def run_sheet(sheet_id: str, request: Request):
        """Run one sheet and wait for it to finish."""
        orchestrator = get_runtime(request).orchestrator
        try:
            result = await orchestrator.trigger_unit(sheet_id)
        except UnitNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except SheetSyncException as e:
            raise HTTPException(status_code=500, detail=str(e))
        except Exception as e:
            logger.error(f"An unexpected error occurred while running sheet {sheet_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e) or "Sync failed")
        return {"ok": True, "skipped": result is None}

    @app.post("/api/run")
    async def run_all(request: Request):
        """Run every sheet and wait for the batch to finish."""
        orchestrator = get_runtime(request).orchestrator
        try:
            await orchestrator.trigger_all()
        except BatchSyncError as e:
            raise HTTPException(status_code=500, detail={"error": str(e), "failed": e.unit_ids})
        except Exception as e:
            logger.error(f"An unexpected error occurred while running all sheets: {e}")
            raise HTTPException(status_code=500, detail=str(e) or "Sync failed")
        return {"ok": True}

    return app


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("HTTP_PORT", 4020))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
