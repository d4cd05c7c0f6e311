"""
Health router.

GET /health
"""

from __future__ import annotations

from fastapi import APIRouter

from mailspine.api.deps import Service
from mailspine.api.schemas import HealthSchema

router = APIRouter()


@router.get("/health", response_model=HealthSchema)
def health(service: Service):
    """Liveness plus scheduler and worker pool state.

    ``status`` is ``ok`` whenever the process answers; ``healthy`` reflects
    whether the background scheduler and workers are running.
    """
    return HealthSchema(status="ok", **service.health())
