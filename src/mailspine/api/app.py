"""
FastAPI application factory.

``create_app()`` wires the service, middleware, routers and error handlers
into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the composition root of the HTTP surface. Routers
    only see the service through :mod:`mailspine.api.deps`; the lifespan
    owns starting and stopping the scheduler and worker pool.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from mailspine import __version__
from mailspine.api.errors import (
    mailspine_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from mailspine.api.middleware import RequestIDMiddleware
from mailspine.core.errors import MailSpineError
from mailspine.core.logging import get_logger
from mailspine.core.settings import MailSpineSettings, get_settings
from mailspine.service import MailService

log = get_logger("mailspine.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start background dispatch on startup, drain it on shutdown."""
    settings: MailSpineSettings = app.state.settings
    service: MailService = app.state.service

    log.info("api_starting", version=app.version, run_background=settings.run_background)
    if settings.run_background:
        service.start()
    try:
        yield
    finally:
        log.info("api_shutting_down")
        service.stop()


def create_app(
    settings: MailSpineSettings | None = None,
    service: MailService | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : MailSpineSettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    service : MailService | None
        Pre-built service, e.g. one wired to an in-memory store.
    """
    settings = settings or (service.settings if service else get_settings())
    service = service or MailService.from_settings(settings)

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings
    app.state.service = service

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(MailSpineError, mailspine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from mailspine.api.routers import health, jobs, subscribers

    prefix = settings.api_prefix
    app.include_router(health.router, prefix=prefix, tags=["health"])
    app.include_router(jobs.router, prefix=prefix, tags=["jobs"])
    app.include_router(subscribers.router, prefix=prefix, tags=["subscribers"])

    return app
