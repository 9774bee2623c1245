"""
Main application module for the panel divider backend.

This file sets up the FastAPI application, configures CORS so that
modelling front-ends can make cross-origin requests, and exposes a
simple health check endpoint.  The panel and geometry routers are
included under the ``/api`` namespace.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes_geometry import router as geometry_router
from .api.routes_panels import router as panels_router
from .services.panels_store import init_db
from .services.tolerance import default_tolerance


def create_app() -> FastAPI:
    """Factory to create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    app = FastAPI(title="Panel divider")

    # The schema must exist before any request is processed; init_db is
    # idempotent.
    @app.on_event("startup")  # type: ignore[misc]
    async def startup_event() -> None:
        init_db()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "tolerance": str(default_tolerance())}

    app.include_router(panels_router, prefix="/api", tags=["panels"])
    app.include_router(geometry_router, prefix="/api", tags=["geometry"])

    return app


# Uvicorn imports this when running ``uvicorn divider.main:app`` from
# within ``backend``.
app = create_app()
