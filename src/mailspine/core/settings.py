"""Runtime configuration for mail-spine.

Every knob the dispatch core consumes (worker count, queue capacity,
scheduler interval, completion cadence, deadlines) plus transport and
HTTP settings, loaded from ``MAILSPINE_*`` environment variables and an
optional ``.env`` file.

Fields
──────
database_path            : SQLite file (``:memory:`` for ephemeral runs)
uploads_dir              : Archive directory for uploaded CSV files (``None`` disables)
max_upload_bytes         : Largest accepted CSV upload (default 20 MiB)
worker_count             : Concurrent delivery workers
queue_capacity           : Bounded task queue size (submission blocks when full)
scheduler_interval       : Seconds between scheduler ticks
completion_mode          : ``countdown`` (event-driven) or ``polling``
completion_poll_interval : Seconds between completion checks in polling mode
send_timeout             : Per-send deadline in seconds (``None`` disables)
dispatch_deadline        : Overall wait bound per job in seconds (``None`` disables)
smtp_*                   : SMTP transport; no host means the mock transport

Examples:
    >>> from mailspine.core.settings import MailSpineSettings
    >>> s = MailSpineSettings(worker_count=8)
    >>> s.queue_capacity
    1000
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CompletionMode(str, Enum):
    COUNTDOWN = "countdown"
    POLLING = "polling"


class MailSpineSettings(BaseSettings):
    """Settings for the dispatch core, transports and HTTP surface.

    Order of precedence (highest → lowest):
        1. Constructor arguments
        2. Environment variables (``MAILSPINE_WORKER_COUNT``, etc.)
        3. ``.env`` file
        4. Defaults below
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: str = Field(default="mail_spine.db", description="SQLite database path")
    uploads_dir: str | None = Field(default="uploads", description="Keep a copy of each CSV upload here; None disables")
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, ge=1, description="Largest accepted CSV upload")

    # ── Dispatch core ────────────────────────────────────────────
    worker_count: int = Field(default=4, ge=1, description="Concurrent delivery workers")
    queue_capacity: int = Field(default=1000, ge=1, description="Bounded task queue size")
    scheduler_interval: float = Field(default=5.0, gt=0, description="Seconds between scheduler ticks")
    completion_mode: CompletionMode = Field(default=CompletionMode.COUNTDOWN)
    completion_poll_interval: float = Field(default=1.0, gt=0, description="Seconds between completion polls")
    send_timeout: float | None = Field(default=30.0, description="Per-send deadline (None or 0 disables)")
    dispatch_deadline: float | None = Field(default=3600.0, description="Per-job wait bound (None or 0 disables)")

    # ── SMTP transport ───────────────────────────────────────────
    smtp_host: str | None = Field(default=None, description="SMTP host; unset selects the mock transport")
    smtp_port: int = Field(default=587)
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_from: str = Field(default="no-reply@example.com")
    smtp_starttls: bool = True

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = Field(default=None, description="None = JSON when stderr is not a tty")

    # ── HTTP ─────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = "/api/v1"
    api_title: str = "mail-spine API"
    run_background: bool = Field(
        default=True,
        description="Start the scheduler and worker pool inside the API process",
    )

    @property
    def effective_send_timeout(self) -> float | None:
        return self.send_timeout if self.send_timeout and self.send_timeout > 0 else None

    @property
    def effective_dispatch_deadline(self) -> float | None:
        return self.dispatch_deadline if self.dispatch_deadline and self.dispatch_deadline > 0 else None


@lru_cache(maxsize=1)
def get_settings() -> MailSpineSettings:
    """Cached settings — loaded once per process."""
    return MailSpineSettings()
