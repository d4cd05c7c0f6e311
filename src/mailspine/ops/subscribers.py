"""
Subscriber operations.

Bulk import from CSV (first column is the address), upload decoding and
archiving, and listing.
"""

from __future__ import annotations

import csv
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mailspine.core.errors import DuplicateSubscriberError, StoreError, ValidationError
from mailspine.core.logging import get_logger
from mailspine.core.models import Subscriber
from mailspine.core.store import MailStore

logger = get_logger(__name__)


@dataclass
class ImportResult:
    """Outcome of a CSV import."""

    added: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"added": self.added, "skipped": self.skipped}


def import_subscribers(store: MailStore, lines: Iterable[str]) -> ImportResult:
    """Add one subscriber per CSV row.

    Only the first column is read and trimmed. Blank rows and blank first
    cells are ignored; malformed rows, duplicates and rows the store rejects
    are counted as skipped. One bad row never aborts the import.

    Args:
        store: Target store.
        lines: A text stream or any iterable of CSV lines.
    """
    result = ImportResult()
    reader = csv.reader(lines)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as exc:
            result.skipped += 1
            logger.warning("csv_row_malformed", line=reader.line_num, error=str(exc))
            continue

        if not row:
            continue
        email = row[0].strip()
        if not email:
            continue
        try:
            store.add_subscriber(email)
        except DuplicateSubscriberError:
            result.skipped += 1
            logger.debug("subscriber_duplicate", email=email)
            continue
        except StoreError as exc:
            result.skipped += 1
            logger.warning("subscriber_insert_failed", email=email, error=str(exc))
            continue
        result.added += 1

    logger.info("subscribers_imported", **result.to_dict())
    return result


def list_subscribers(store: MailStore) -> list[Subscriber]:
    return store.list_subscribers()


def decode_upload(raw: bytes, *, max_bytes: int | None = None) -> str:
    """Decode an uploaded CSV as UTF-8 (a leading BOM is dropped).

    Raises:
        ValidationError: If the file is too large or not valid UTF-8.
    """
    if max_bytes is not None and len(raw) > max_bytes:
        raise ValidationError("file too large", field="file", value=len(raw))
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("file must be UTF-8", field="file", value=exc.start, cause=exc) from exc


def archive_upload(uploads_dir: str | Path, filename: str | None, raw: bytes) -> Path | None:
    """Keep a copy of an uploaded CSV as ``<unix-nanos>_<filename>``.

    Archiving is best effort: a write failure is logged and the import
    still goes ahead. Returns the archived path, or ``None``.
    """
    name = Path(filename or "upload.csv").name or "upload.csv"
    target = Path(uploads_dir) / f"{time.time_ns()}_{name}"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(raw)
    except OSError as exc:
        logger.warning("upload_archive_failed", path=str(target), error=str(exc))
        return None
    logger.debug("upload_archived", path=str(target), size=len(raw))
    return target
