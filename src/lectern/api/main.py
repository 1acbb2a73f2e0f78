"""FastAPI application."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lectern import __version__
from lectern.api.routes import router
from lectern.resolver import ChapterResolver


def create_app(resolver: ChapterResolver | None = None) -> FastAPI:
    """Create the chapter API.

    Args:
        resolver: Resolver to serve from (default: process-wide resolver
                  built from environment settings on first request)
    """
    app = FastAPI(
        title="Lectern",
        description="Canonical chapter resolution across Bible editions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.resolver = resolver
    app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Lectern",
            "version": __version__,
            "docs": "/docs",
            "api": "/api/v1",
        }

    return app


app = create_app()
