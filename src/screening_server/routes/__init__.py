"""Route registration — mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from screening_server.routes.answers import router as answers_router
from screening_server.routes.flows import router as flows_router
from screening_server.routes.sessions import router as sessions_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(sessions_router, prefix=API_PREFIX)
    app.include_router(answers_router, prefix=API_PREFIX)
    app.include_router(flows_router, prefix=API_PREFIX)
