"""
API schemas — request bodies, response models and the RFC 7807 error envelope.

Error responses always use :class:`ProblemDetail`; success payloads are the
plain resource models below.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ErrorDetail(BaseModel):
    """Field-level error detail."""

    code: str = Field(description="Machine-readable error code (e.g. 'VALIDATION_FAILED')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Field path if error is field-specific")


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``VALIDATION_FAILED`` (400): Invalid input data
        - ``NOT_FOUND`` (404): Job does not exist
        - ``CONFLICT`` (409): Job is no longer pending
        - ``INTERNAL`` (500): Unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "Job not found: abc-123",
            "status": 404,
            "detail": "",
            "instance": "/api/v1/jobs/abc-123",
            "errors": []
        }
    """

    type: str = Field(default="about:blank")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="")
    instance: str = Field(default="", description="Path of the failing request")
    errors: list[ErrorDetail] = Field(default_factory=list)


# ── Jobs ────────────────────────────────────────────────────────────────


class CreateJobBody(BaseModel):
    subject: str = ""
    body: str = ""
    scheduled_at: int | str | None = Field(
        default=None,
        description="RFC 3339 timestamp or unix seconds; omitted means now",
    )


class JobCreatedSchema(BaseModel):
    id: str
    scheduled_at: str
    status: str


class JobSchema(BaseModel):
    id: str
    subject: str
    body: str
    scheduled_at: str
    status: str
    created_at: str
    completed_at: str | None = None
    dropped_count: int = 0


class SendSchema(BaseModel):
    id: str
    job_id: str
    subscriber_id: str
    email: str
    status: str
    attempts: int
    last_error: str | None = None
    created_at: str
    sent_at: str | None = None


class JobDetailSchema(JobSchema):
    send_counts: dict[str, int] = Field(default_factory=dict)
    total_sends: int = 0
    sends: list[SendSchema] | None = None


class JobTriggeredSchema(BaseModel):
    id: str
    status: str = "running"


# ── Subscribers ─────────────────────────────────────────────────────────


class SubscriberSchema(BaseModel):
    id: str
    email: str
    created_at: str


class ImportResultSchema(BaseModel):
    added: int
    skipped: int


# ── Health ──────────────────────────────────────────────────────────────


class HealthSchema(BaseModel):
    status: str = "ok"
    healthy: bool
    version: str
    scheduler: dict[str, Any] = Field(default_factory=dict)
    pool: dict[str, Any] = Field(default_factory=dict)
    completion: str = ""
    transport: str = ""
