"""
HTTP routing layer for synchronous ingestion and event lookup.

Run with::

    uvicorn disaster_alerts.api:app
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import CONFIG, Config
from .errors import StorageError
from .ingestion import IngestionService
from .pipeline import DisasterPipeline
from .schemas import IngestRequest, error_messages
from .storage import EventStore


logger = logging.getLogger(__name__)


def build_pipeline(config: Config) -> DisasterPipeline:
    """Wire the default pipeline against the configured database."""
    return DisasterPipeline(EventStore(config.database_path), config=config)


def create_app(pipeline: DisasterPipeline | None = None, config: Config | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        pipeline: Pipeline to serve. Built from ``config`` at startup when omitted.
        config: Settings used to build the default pipeline.

    Returns:
        The configured application
    """
    config = config or CONFIG

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.pipeline is None:
            app.state.pipeline = build_pipeline(config)
            logger.info("Event store opened at %s", config.database_path)
        yield

    app = FastAPI(
        title="Disaster Alerts",
        description="Ingest social media posts and verify reported disasters",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    def _pipeline() -> DisasterPipeline:
        if app.state.pipeline is None:
            raise HTTPException(status_code=503, detail="Pipeline not initialised")
        return app.state.pipeline

    @app.get("/health")
    def health():
        """Simple health check endpoint."""
        return {"status": "ok", "events": _pipeline().store.count()}

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # Ingestion keeps its own 400 body; other routes use FastAPI's 422
        if request.url.path != "/ingest":
            return await request_validation_exception_handler(request, exc)
        return JSONResponse(
            status_code=400,
            content={"message": "Validation failed", "errors": error_messages(list(exc.errors()))},
        )

    @app.post("/ingest")
    async def ingest(payload: IngestRequest):
        """Validate and process a single post."""
        service = IngestionService(_pipeline())
        response = await run_in_threadpool(service.ingest, payload)
        return JSONResponse(status_code=response.status_code, content=response.body)

    @app.get("/events")
    def list_events(
        verified: bool = Query(True, description="Only return verified events"),
        limit: int = Query(100, ge=1, le=1000, description="Maximum number of events"),
    ):
        """Return the most recently processed events."""
        try:
            events = _pipeline().store.list_events(verified_only=verified, limit=limit)
        except StorageError as exc:
            logger.error("Error retrieving events: %s", exc)
            raise HTTPException(status_code=500, detail="Failed to retrieve events") from exc
        return {"events": [event.as_dict() for event in events], "count": len(events)}

    return app


app = create_app()
