"""FastAPI application entry point."""

from fastapi import FastAPI

from cadence import __version__
from cadence.api.exception_handlers import register_exception_handlers
from cadence.api.routers import api_router
from cadence.infrastructure.lifecycle import lifespan
from cadence.infrastructure.observability import RequestLoggingMiddleware


def create_app() -> FastAPI:
    """Build the application; lifespan wiring happens on startup."""
    app = FastAPI(
        title="cadence",
        description="Keeps a local media library in sync with an Ampache or Subsonic server",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
