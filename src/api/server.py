"""FastAPI server exposing tasks, comments and notifications."""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager

from taskboard.logging import configure_logging, format_component, get_logger
from taskboard.settings import settings

# Handlers must exist before the routers and clients below create their loggers
configure_logging(settings.log_level, force_rich=settings.rich_logs)

import logfire
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, notifications, tasks
from taskboard import __version__
from taskboard.backend import Backend, SupabaseBackend
from taskboard.exceptions import (
    AuthorizationError,
    StoreError,
    TaskboardError,
    TransportError,
    ValidationError,
)

# Spans go to Logfire only when LOGFIRE_TOKEN is set; locally this just wires instrumentation
logfire.configure(
    send_to_logfire="if-token-present",
    service_name="taskboard-api",
    token=os.environ.get("LOGFIRE_TOKEN"),
    environment=os.environ.get("ENVIRONMENT", "development"),
)
logfire.instrument_httpx()

logger = get_logger(__name__)

API_DESCRIPTION = """
Tasks, comments and in-app notifications on top of Supabase.

Send a Supabase access token with every `/api` call other than the health checks,
as `Authorization: Bearer <access_token>`. The notification WebSocket at
`/api/notifications/ws` takes the same token in its `token` query parameter.

Server configuration comes from `SUPABASE_URL` and `SUPABASE_ANON_KEY`, plus
`SUPABASE_SERVICE_ROLE_KEY` when the server should bypass row level security.
"""

# Most specific first; every StoreError subclass must precede StoreError
STATUS_BY_ERROR: tuple[tuple[type[TaskboardError], int], ...] = (
    (ValidationError, 422),
    (AuthorizationError, 403),
    (TransportError, 503),
    (StoreError, 502),
)


def _status_for(exc: TaskboardError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_app(backend: Backend | None = None) -> FastAPI:
    """Build the app. Pass ``backend`` to skip connecting to Supabase on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if backend is not None:
            app.state.backend = backend
        else:
            use_service_role = bool(settings.supabase_service_role_key)
            app.state.backend = await SupabaseBackend.connect(settings, service_role=use_service_role)
            logger.info(f"{format_component('API')} Connected to Supabase (service_role={use_service_role})")
        yield
        logger.info(f"{format_component('API')} Shutting down")

    app = FastAPI(
        title="Taskboard API",
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Liveness and backend reachability"},
            {"name": "Tasks", "description": "Tasks, comments and reference data"},
            {"name": "Notifications", "description": "In-app notifications and their realtime stream"},
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
    for module in (health, tasks, notifications):
        app.include_router(module.router)

    logfire.instrument_fastapi(app)

    @app.exception_handler(TaskboardError)
    async def taskboard_error_handler(request: Request, exc: TaskboardError):
        status_code = _status_for(exc)
        message = getattr(exc, "message", str(exc))
        if status_code >= 500:
            logger.error(f"{format_component('API')} {request.method} {request.url.path} -> {status_code}: {message}")
        content: dict = {"detail": message}
        if isinstance(exc, ValidationError):
            content["fields"] = exc.fields
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = ValidationError.from_pydantic(exc).fields
        logger.warning(f"{format_component('API')} {request.method} {request.url.path} rejected: {fields}")
        return JSONResponse(status_code=422, content={"detail": "Invalid input", "fields": fields})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"{format_component('API')} Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()


def _port() -> int:
    return int(os.environ.get("PORT", settings.port))


async def main_http() -> None:
    """Serve the app with uvicorn until interrupted."""
    port = _port()
    logger.info(f"{format_component('API')} Listening on http://0.0.0.0:{port}")
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level=settings.log_level.lower()))
    await server.serve()


def run_http() -> None:
    asyncio.run(main_http())


def run_dev() -> None:
    """Local development server with auto-reload."""
    uvicorn.run("api.server:app", host="127.0.0.1", port=_port(), reload=True, log_level="debug")


if __name__ == "__main__":
    run_http()
