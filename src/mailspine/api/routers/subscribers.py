"""
Subscriber router.

POST /subscribers/upload   (multipart, field ``file``)
GET  /subscribers
"""

from __future__ import annotations

import io

from fastapi import APIRouter, File, UploadFile
from starlette.concurrency import run_in_threadpool

from mailspine.api.deps import Settings, Store
from mailspine.api.schemas import ImportResultSchema, SubscriberSchema
from mailspine.ops import subscribers as subscriber_ops

router = APIRouter(prefix="/subscribers")


@router.post("/upload", response_model=ImportResultSchema)
async def upload_subscribers(store: Store, settings: Settings, file: UploadFile = File(...)):
    """Import subscribers from a CSV upload; the first column is the address.

    The file must be UTF-8 and at most ``max_upload_bytes``; otherwise the
    response is a 400 and nothing is imported. A copy is kept under
    ``uploads_dir`` when one is configured.

    Example:
        curl -F file=@subs.csv http://localhost:8080/api/v1/subscribers/upload

        Response:
        {"added": 120, "skipped": 3}
    """
    raw = await file.read(settings.max_upload_bytes + 1)
    text = io.StringIO(subscriber_ops.decode_upload(raw, max_bytes=settings.max_upload_bytes), newline="")
    if settings.uploads_dir:
        await run_in_threadpool(subscriber_ops.archive_upload, settings.uploads_dir, file.filename, raw)
    result = await run_in_threadpool(subscriber_ops.import_subscribers, store, text)
    return ImportResultSchema(**result.to_dict())


@router.get("", response_model=list[SubscriberSchema])
def list_subscribers(store: Store):
    return [SubscriberSchema(**s.to_dict()) for s in subscriber_ops.list_subscribers(store)]
