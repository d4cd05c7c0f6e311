"""
FastAPI dependency injection — settings, the running service and its store.

Usage in routers::

    from mailspine.api.deps import Store

    @router.get("/jobs")
    def list_jobs(store: Store):
        ...

The service is created once by :func:`mailspine.api.app.create_app` and
kept on ``app.state``; routers never build their own store.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from mailspine.core.settings import MailSpineSettings
from mailspine.core.store import MailStore
from mailspine.service import MailService


def get_settings(request: Request) -> MailSpineSettings:
    return request.app.state.settings


def get_service(request: Request) -> MailService:
    return request.app.state.service


def get_store(service: Annotated[MailService, Depends(get_service)]) -> MailStore:
    return service.store


# ── Annotated aliases for router signatures ─────────────────────────────

Settings = Annotated[MailSpineSettings, Depends(get_settings)]
Service = Annotated[MailService, Depends(get_service)]
Store = Annotated[MailStore, Depends(get_store)]
