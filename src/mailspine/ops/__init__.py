"""
Service-layer operations shared by the API and CLI.

Each function takes a :class:`MailStore` as its first argument and raises
:class:`MailSpineError` subclasses on invalid input or missing records.
"""

from mailspine.ops.jobs import JobDetail, get_job_detail, list_jobs, parse_scheduled_at, schedule_job
from mailspine.ops.subscribers import (
    ImportResult,
    archive_upload,
    decode_upload,
    import_subscribers,
    list_subscribers,
)

__all__ = [
    "JobDetail",
    "get_job_detail",
    "list_jobs",
    "parse_scheduled_at",
    "schedule_job",
    "ImportResult",
    "archive_upload",
    "decode_upload",
    "import_subscribers",
    "list_subscribers",
]
