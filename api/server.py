"""FastAPI server for the integration posting service.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, integrations
from core import __version__
from core.config import get_settings
from core.errors import IntegrationError
from core.observability.logging import configure_from_settings, get_logger


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_from_settings(get_settings())
    logger.info("Posting service API starting up...")

    yield

    logger.info("Posting service API shutting down...")


async def integration_error_handler(request: Request, exc: IntegrationError) -> JSONResponse:
    """Translate service errors to HTTP responses."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Integration Posting API",
        description="Connects tenants to accounting systems and posts documents through a durable retry queue",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(IntegrationError, integration_error_handler)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(integrations.router, prefix="/integrations", tags=["Integrations"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
