"""
FastAPI application entry point.

This module instantiates the FastAPI app, registers API routers, maps
domain errors to HTTP responses and defines application startup hooks.
When run via ``uvicorn`` the app will be served as an ASGI application::

    uvicorn exchanger.api.main:create_app --factory
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import get_settings
from ..core.db import init_db_schema
from ..core.errors import ExchangerError
from ..core.utils.logger import configure_logging
from .routers import health as health_router
from .routers import listings as listings_router
from .routers import offers as offers_router
from .routers import users as users_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    """Application lifespan hook.

    On startup this hook creates the database schema outside of
    production. Production databases are expected to be provisioned
    ahead of time.
    """
    settings = get_settings()
    if settings.env in {"dev", "test"}:
        logger.info("Initialising database schema…")
        await init_db_schema()
    yield


async def handle_exchanger_error(request: Request, exc: ExchangerError) -> JSONResponse:
    """Render a domain error with the status code of its class."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


def create_app() -> FastAPI:
    """Factory for the FastAPI app."""
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Exchanger API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ExchangerError, handle_exchanger_error)
    app.include_router(health_router.router)
    app.include_router(listings_router.router)
    app.include_router(offers_router.router)
    app.include_router(users_router.router)
    return app
