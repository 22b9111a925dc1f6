"""
Accreditation report artifacts: a merged PDF booklet or a CSV index of the
approved documents of one institute and accreditation body.

Stored files are read concurrently (bounded by REPORT_MAX_WORKERS). A file
that cannot be read or parsed is skipped with a warning; it never fails the
whole report.
"""
from __future__ import annotations

import csv
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError

from app.accrediflow.storage import Storage, StorageError

from .models import Document

logger = logging.getLogger(__name__)


@dataclass
class SkippedFile:
    document_id: int
    file_path: str
    reason: str


@dataclass
class ReportBundle:
    included: list[Document] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)
    content: bytes = b""

    @property
    def included_ids(self) -> list[int]:
        return [d.id for d in self.included]


def fetch_files(
    storage: Storage,
    documents: list[Document],
    *,
    max_workers: int = 4,
) -> tuple[list[tuple[Document, bytes]], list[SkippedFile]]:
    """Read every document's file concurrently; results keep the order of `documents`."""
    if not documents:
        return [], []

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [(d, d.file_path, executor.submit(storage.get_bytes, d.file_path)) for d in documents]

        loaded: list[tuple[Document, bytes]] = []
        skipped: list[SkippedFile] = []
        for d, file_path, future in futures:
            try:
                loaded.append((d, future.result()))
            except StorageError as e:
                logger.warning("Report: skipping document %s, cannot read %s: %s", d.id, file_path, e)
                skipped.append(SkippedFile(document_id=d.id, file_path=file_path, reason=str(e)))
    return loaded, skipped


def merge_pdfs(blobs: list[tuple[Document, bytes]]) -> tuple[bytes, list[Document], list[SkippedFile]]:
    writer = PdfWriter()
    merged: list[Document] = []
    skipped: list[SkippedFile] = []
    for d, data in blobs:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except (PdfReadError, ValueError) as e:
            logger.warning("Report: skipping document %s, not a readable PDF: %s", d.id, e)
            skipped.append(SkippedFile(document_id=d.id, file_path=d.file_path, reason=f"Unreadable PDF: {e}"))
            continue
        for page in pages:
            writer.add_page(page)
        merged.append(d)

    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue(), merged, skipped


def build_pdf_report(storage: Storage, documents: list[Document], *, max_workers: int = 4) -> ReportBundle:
    loaded, skipped = fetch_files(storage, documents, max_workers=max_workers)
    content, merged, unreadable = merge_pdfs(loaded)
    return ReportBundle(included=merged, skipped=skipped + unreadable, content=content)


def build_csv_report(documents: list[Document]) -> ReportBundle:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Category", "Title", "Owner", "Owner Role", "Approved At", "File Path"])
    for d in documents:
        w.writerow(
            [
                d.category,
                d.title,
                d.owner.name if d.owner else "",
                d.owner.role if d.owner else "",
                d.updated_at.strftime("%Y-%m-%d %H:%M:%S") if d.updated_at else "",
                d.file_path,
            ]
        )
    return ReportBundle(included=list(documents), content=out.getvalue().encode("utf-8"))
