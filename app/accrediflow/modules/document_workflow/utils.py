from __future__ import annotations

import hashlib
import uuid
from datetime import datetime

from werkzeug.utils import secure_filename

PDF_MAGIC = b"%PDF-"


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.pdf"


def is_pdf_upload(filename: str, content_type: str | None, data: bytes) -> bool:
    if not (filename or "").lower().endswith(".pdf"):
        return False
    if content_type and content_type not in ("application/pdf", "application/octet-stream"):
        return False
    return data.startswith(PDF_MAGIC)


def upload_storage_key(filename: str, *, now: datetime | None = None) -> str:
    ts = (now or datetime.utcnow()).strftime("%Y/%m")
    return f"uploads/{ts}/{uuid.uuid4().hex}-{sanitize_upload_filename(filename)}"


def file_digest(file_bytes: bytes) -> str:
    h = hashlib.sha256()
    h.update(file_bytes)
    return h.hexdigest()


def report_filename(body: str, ext: str) -> str:
    safe_body = secure_filename(body or "") or "report"
    return f"AccrediFlow-Report-{safe_body}.{ext}"
