"""
Document workflow routes (JSON).

Every mutating action goes through the service layer, which owns the state
machine, the per-document history and the generic audit trail.
"""
from __future__ import annotations

from io import BytesIO

from flask import Blueprint, current_app, g, request, send_file
from sqlalchemy.exc import SQLAlchemyError

from app.accrediflow.audit import record_event
from app.accrediflow.constants import ACCREDITATION_BODIES, ROLE_ADMIN, ROLE_COORDINATOR, ROLE_HOD
from app.accrediflow.db import db_session
from app.accrediflow.errors import DependencyError, NotFoundError, ValidationError
from app.accrediflow.models import User
from app.accrediflow.rbac import require_login, require_role
from app.accrediflow.storage import StorageError, StorageNotFound, storage_from_config

from . import reports
from .service import (
    add_comment,
    apply_decision,
    check_document_fields,
    coordinator_review_queue,
    create_document,
    get_document_for_user,
    hod_review_queue,
    list_documents_for,
    report_documents,
    task_progress,
)
from .utils import file_digest, is_pdf_upload, report_filename, sanitize_upload_filename, upload_storage_key
from .workflow import AWAITING_ROLE, can_decide

bp = Blueprint("documents", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _store_upload() -> tuple[str, dict]:
    f = request.files.get("document") or request.files.get("file")
    if not f or not f.filename:
        raise ValidationError("Choose a file to upload.", field="document")

    filename = sanitize_upload_filename(f.filename)
    data = f.read()
    if not is_pdf_upload(filename, f.mimetype, data):
        raise ValidationError("Only PDF files are allowed.", field="document")

    key = upload_storage_key(filename)
    storage = storage_from_config(current_app.config)
    try:
        file_path = storage.put_bytes(key, data, content_type="application/pdf")
    except StorageError as e:
        current_app.logger.error("Upload storage failed (request_id=%s): %s", getattr(g, "request_id", None), e)
        raise DependencyError("File storage is unavailable.") from e
    return file_path, {"filename": filename, "sha256": file_digest(data), "size_bytes": len(data)}


@bp.post("/documents/upload")
@require_login
def upload_file():
    s = db_session()
    u = _current_user()
    file_path, meta = _store_upload()
    record_event(s, actor=u, action="document.upload", entity_type="File", entity_id=file_path, metadata=meta)
    s.commit()
    return {"message": "File uploaded successfully", "filePath": file_path}, 201


@bp.post("/documents")
@require_login
def create_document_post():
    s = db_session()
    u = _current_user()
    data = _payload()
    enforce = bool(current_app.config.get("ENFORCE_CATEGORY_WHITELIST"))

    file_path = data.get("filePath")
    if request.files:
        # Reject bad metadata before anything lands in storage.
        check_document_fields(
            u, title=data.get("title"), category=data.get("category"), enforce_category_whitelist=enforce
        )
        file_path, _meta = _store_upload()

    d = create_document(
        s,
        user=u,
        title=data.get("title"),
        category=data.get("category"),
        file_path=file_path,
        enforce_category_whitelist=enforce,
    )
    return d.to_dict(include_history=True), 201


@bp.get("/documents")
@require_login
def list_documents():
    s = db_session()
    docs = list_documents_for(s, _current_user())
    return {"documents": [d.to_dict() for d in docs]}


@bp.get("/documents/tasks")
@require_login
def tasks():
    s = db_session()
    return task_progress(s, _current_user())


@bp.get("/documents/review/hod")
@require_role(ROLE_HOD)
def review_queue_hod():
    s = db_session()
    docs = hod_review_queue(s, _current_user())
    return {"documents": [d.to_dict() for d in docs]}


@bp.get("/documents/review/coordinator")
@require_role(ROLE_COORDINATOR)
def review_queue_coordinator():
    s = db_session()
    docs = coordinator_review_queue(s, _current_user())
    return {"documents": [d.to_dict() for d in docs]}


@bp.get("/documents/<int:doc_id>")
@require_login
def document_detail(doc_id: int):
    s = db_session()
    u = _current_user()
    d = get_document_for_user(s, doc_id, u)
    out = d.to_dict(include_history=True)
    out["awaitingRole"] = AWAITING_ROLE.get(d.status)
    out["canDecide"] = d.institute_name == u.institute_name and can_decide(d.status, u.role)
    return out


@bp.post("/documents/<int:doc_id>/decision")
@require_role(ROLE_HOD, ROLE_COORDINATOR)
def document_decision(doc_id: int):
    s = db_session()
    u = _current_user()
    data = _payload()
    d = get_document_for_user(s, doc_id, u)
    apply_decision(s, d, user=u, decision=data.get("decision") or data.get("status"), comment=data.get("comment"))
    return d.to_dict(include_history=True)


@bp.post("/documents/<int:doc_id>/comments")
@require_login
def document_comment(doc_id: int):
    s = db_session()
    u = _current_user()
    d = get_document_for_user(s, doc_id, u)
    entry = add_comment(s, d, user=u, comment=_payload().get("comment"))
    return entry.to_dict(), 201


@bp.get("/documents/<int:doc_id>/file")
@require_login
def download_file(doc_id: int):
    s = db_session()
    u = _current_user()
    d = get_document_for_user(s, doc_id, u)

    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(d.file_path)
    except StorageNotFound as e:
        raise NotFoundError("Stored file is missing.") from e
    except StorageError as e:
        raise DependencyError("File storage is unavailable.") from e

    record_event(
        s,
        actor=u,
        action="document.download",
        entity_type="Document",
        entity_id=str(d.id),
        metadata={"file_path": d.file_path},
    )
    try:
        s.commit()
    except SQLAlchemyError as e:
        fobj.close()
        s.rollback()
        raise DependencyError("Could not record the download.") from e
    return send_file(
        fobj,
        mimetype="application/pdf",
        as_attachment=True,
        download_name=d.file_path.rsplit("/", 1)[-1],
        max_age=0,
    )


# ---------------------------------------------------------------------------
# Reports (institute admin)
# ---------------------------------------------------------------------------


def _accreditation_body(body: str | None) -> str:
    b = (body or "").strip().upper()
    if b not in ACCREDITATION_BODIES:
        raise ValidationError(
            f"Unknown accreditation body {body!r}; expected one of: {', '.join(ACCREDITATION_BODIES)}.",
            field="body",
        )
    return b


@bp.get("/reports")
@require_role(ROLE_ADMIN)
def report_data():
    s = db_session()
    u = _current_user()
    body = request.args.get("body")
    if body:
        body = _accreditation_body(body)
    docs = report_documents(s, institute_name=u.institute_name or "", body=body)
    return {"body": body, "documents": [d.to_dict() for d in docs]}


@bp.get("/reports/<body>/<fmt>")
@require_role(ROLE_ADMIN)
def report_artifact(body: str, fmt: str):
    s = db_session()
    u = _current_user()
    body = _accreditation_body(body)
    fmt = fmt.lower()
    if fmt not in ("pdf", "csv"):
        raise NotFoundError(f"Unknown report format {fmt!r}.")

    docs = report_documents(s, institute_name=u.institute_name or "", body=body)
    if not docs:
        raise NotFoundError(f"No approved {body} documents to report.")

    if fmt == "pdf":
        bundle = reports.build_pdf_report(
            storage_from_config(current_app.config),
            docs,
            max_workers=int(current_app.config.get("REPORT_MAX_WORKERS") or 4),
        )
        if not bundle.included:
            raise DependencyError(f"None of the approved {body} documents could be read.")
        mimetype = "application/pdf"
    else:
        bundle = reports.build_csv_report(docs)
        mimetype = "text/csv"

    record_event(
        s,
        actor=u,
        action="report.generate",
        entity_type="Report",
        entity_id=f"{body}.{fmt}",
        metadata={
            "institute": u.institute_name,
            "included": bundle.included_ids,
            "skipped": [sk.document_id for sk in bundle.skipped],
        },
    )
    s.commit()

    resp = send_file(
        BytesIO(bundle.content),
        mimetype=mimetype,
        as_attachment=True,
        download_name=report_filename(body, fmt),
        max_age=0,
    )
    if bundle.skipped:
        resp.headers["X-Report-Skipped"] = ",".join(str(sk.document_id) for sk in bundle.skipped)
    return resp
