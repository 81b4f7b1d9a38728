"""
Assistance Scheduler API Server

Entry point for the FastAPI application.
"""

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assistance.api.error_handlers import register_error_handlers
from assistance.api.v1 import router as api_v1_router
from assistance.core.config import Settings, get_settings
from assistance.core.database import Database
from assistance.core.identifiers import IdentifierCodec

log = structlog.get_logger()


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    database = database or Database(settings.database_url, echo=settings.debug)

    app = FastAPI(
        title="Assistance Scheduler",
        description="Assistance events with bounded seating, subscriptions and presence.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.database = database
    app.state.codec = IdentifierCodec(settings.identifier_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-User-Token"],
    )
    register_error_handlers(app)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Assistance Scheduler starting", database=database.engine.dialect.name)
        if settings.create_tables:
            await database.init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Assistance Scheduler shutting down")
        await database.dispose()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("assistance.main:app", host=settings.host, port=settings.port)
