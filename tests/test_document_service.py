"""Tests for the document workflow service layer (creation, decisions, role-scoped views)."""
import pytest
from sqlalchemy.exc import OperationalError
from werkzeug.security import generate_password_hash

from app.accrediflow import create_app
from app.accrediflow.db import session_scope
from app.accrediflow.errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from app.accrediflow.models import AuditEvent, Base, User
from app.accrediflow.modules.document_workflow import service
from app.accrediflow.modules.document_workflow.models import Document
from app.accrediflow.modules.document_workflow.workflow import (
    STATUS_APPROVED,
    STATUS_PENDING_COORDINATOR,
    STATUS_PENDING_HOD,
    STATUS_REJECTED,
)

SEED_USERS = [
    # (name, email, role, institute)
    ("Faculty F", "faculty@x.edu", "faculty", "Institute X"),
    ("Faculty G", "faculty2@x.edu", "faculty", "Institute X"),
    ("HOD H", "hod@x.edu", "hod", "Institute X"),
    ("HOD H2", "hod2@x.edu", "hod", "Institute X"),
    ("Coordinator C", "coord@x.edu", "coordinator", "Institute X"),
    ("Admin A", "admin@x.edu", "admin", "Institute X"),
    ("Faculty Y", "faculty@y.edu", "faculty", "Institute Y"),
    ("HOD Y", "hod@y.edu", "hod", "Institute Y"),
    ("Coordinator Y", "coord@y.edu", "coordinator", "Institute Y"),
]


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        for name, email, role, institute in SEED_USERS:
            s.add(
                User(
                    name=name,
                    email=email,
                    password_hash=generate_password_hash("pw-secret"),
                    role=role,
                    approved=True,
                    is_active=True,
                    institute_name=institute,
                )
            )
    return app


def _user(s, email: str) -> User:
    return s.query(User).filter(User.email == email).one()


def _create(s, email: str, *, title: str = "Evidence", category: str = "NAAC: Faculty CVs", file_path: str = "uploads/x.pdf"):
    return service.create_document(s, user=_user(s, email), title=title, category=category, file_path=file_path)


def _approve_fully(s, doc: Document) -> Document:
    if doc.status == STATUS_PENDING_HOD:
        service.apply_decision(s, doc, user=_user(s, "hod@x.edu"), decision="Approved")
    service.apply_decision(s, doc, user=_user(s, "coord@x.edu"), decision="Approved")
    return doc


def test_initial_status_depends_on_creator_role(app):
    with session_scope(app) as s:
        f_doc = _create(s, "faculty@x.edu")
        h_doc = _create(s, "hod@x.edu", category="NBA: Placement Statistics")
        c_doc = _create(s, "coord@x.edu", category="NIRF: Quantity of Research")

        assert f_doc.status == STATUS_PENDING_HOD
        assert h_doc.status == STATUS_PENDING_COORDINATOR
        assert c_doc.status == STATUS_PENDING_COORDINATOR

        faculty = _user(s, "faculty@x.edu")
        assert f_doc.owner_user_id == faculty.id
        assert f_doc.institute_name == "Institute X"
        assert [h.action for h in f_doc.history] == ["Uploaded"]
        assert f_doc.history[0].by_user_id == faculty.id


def test_create_requires_title_category_and_file_path(app):
    with session_scope(app) as s:
        for kwargs in (
            {"title": "", "category": "NAAC: Faculty CVs", "file_path": "a.pdf"},
            {"title": "CV", "category": "   ", "file_path": "a.pdf"},
            {"title": "CV", "category": "NAAC: Faculty CVs", "file_path": None},
        ):
            with pytest.raises(ValidationError):
                service.create_document(s, user=_user(s, "faculty@x.edu"), **kwargs)
        assert s.query(Document).count() == 0


def test_category_whitelist_is_opt_in(app):
    with session_scope(app) as s:
        faculty = _user(s, "faculty@x.edu")
        with pytest.raises(ValidationError) as exc:
            service.create_document(
                s,
                user=faculty,
                title="Ratio",
                category="NIRF: Quantity of Research",
                file_path="a.pdf",
                enforce_category_whitelist=True,
            )
        assert exc.value.field == "category"

        d = service.create_document(
            s, user=faculty, title="Ratio", category="NIRF: Quantity of Research", file_path="a.pdf"
        )
        assert d.id is not None


def test_hod_then_coordinator_approval_round_trip(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        hod = _user(s, "hod@x.edu")
        coord = _user(s, "coord@x.edu")

        service.apply_decision(s, d, user=hod, decision="Approved")
        assert d.status == STATUS_PENDING_COORDINATOR
        assert d.history[-1].comment == "Status updated to PendingCoordinatorApproval by hod"

        service.apply_decision(s, d, user=coord, decision="Approved", comment="Looks complete")
        doc_id = d.id

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        assert d.status == STATUS_APPROVED
        assert [h.action for h in d.history] == ["Uploaded", "Approved", "Approved"]
        assert d.history[-1].by_user_id == _user(s, "coord@x.edu").id
        assert d.history[-1].comment == "Looks complete"
        assert d.version == 3


def test_hod_rejection_removes_document_from_hod_queue(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu", category="NAAC: Faculty CVs")
        hod = _user(s, "hod@x.edu")
        assert d.status == STATUS_PENDING_HOD
        assert d.id in [x.id for x in service.hod_review_queue(s, hod)]

        service.apply_decision(s, d, user=hod, decision="Rejected")

        assert d.status == STATUS_REJECTED
        assert [h.action for h in d.history] == ["Uploaded", "Rejected"]
        assert d.id not in [x.id for x in service.hod_review_queue(s, hod)]


def test_repeating_a_decision_fails_once_the_stage_has_passed(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        hod = _user(s, "hod@x.edu")
        service.apply_decision(s, d, user=hod, decision="Approved")

        with pytest.raises(AuthorizationError):
            service.apply_decision(s, d, user=hod, decision="Approved")
        assert len(d.history) == 2


def test_terminal_documents_accept_no_decisions(app):
    with session_scope(app) as s:
        d = _approve_fully(s, _create(s, "faculty@x.edu"))
        for email in ("hod@x.edu", "coord@x.edu"):
            for decision in ("Approved", "Rejected"):
                with pytest.raises(AuthorizationError):
                    service.apply_decision(s, d, user=_user(s, email), decision=decision)
        assert d.status == STATUS_APPROVED
        assert len(d.history) == 3


@pytest.mark.parametrize("email", ["faculty@x.edu", "faculty2@x.edu", "coord@x.edu", "admin@x.edu"])
@pytest.mark.parametrize("decision", ["Approved", "Rejected"])
def test_illegal_role_for_stage_leaves_document_unchanged(app, email, decision):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        doc_id = d.id
        with pytest.raises(AuthorizationError):
            service.apply_decision(s, d, user=_user(s, email), decision=decision)

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        assert d.status == STATUS_PENDING_HOD
        assert d.version == 1
        assert [h.action for h in d.history] == ["Uploaded"]


def test_hod_cannot_decide_on_coordinator_stage(app):
    with session_scope(app) as s:
        d = _create(s, "hod@x.edu", category="NBA: Placement Statistics")
        with pytest.raises(AuthorizationError):
            service.apply_decision(s, d, user=_user(s, "hod2@x.edu"), decision="Approved")
        assert d.status == STATUS_PENDING_COORDINATOR


def test_reviewer_from_another_institute_is_refused(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        with pytest.raises(AuthorizationError):
            service.apply_decision(s, d, user=_user(s, "hod@y.edu"), decision="Approved")
        assert d.status == STATUS_PENDING_HOD


def test_invalid_decision_is_a_validation_error(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        with pytest.raises(ValidationError):
            service.apply_decision(s, d, user=_user(s, "hod@x.edu"), decision="Maybe")
        assert len(d.history) == 1


def test_unknown_document_is_not_found(app):
    with session_scope(app) as s:
        with pytest.raises(NotFoundError):
            service.get_document(s, 9999)


def test_faculty_cannot_view_a_colleagues_document(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        with pytest.raises(AuthorizationError):
            service.get_document_for_user(s, d.id, _user(s, "faculty2@x.edu"))
        assert service.get_document_for_user(s, d.id, _user(s, "hod@x.edu")).id == d.id
        with pytest.raises(AuthorizationError):
            service.get_document_for_user(s, d.id, _user(s, "hod@y.edu"))


def test_concurrent_decisions_only_one_wins(app):
    with session_scope(app) as s:
        doc_id = _create(s, "faculty@x.edu").id

    sm = app.extensions["sqlalchemy_sessionmaker"]
    s1, s2 = sm(), sm()
    try:
        # Both reviewers read the same PendingHODApproval snapshot.
        d1 = s1.get(Document, doc_id)
        d2 = s2.get(Document, doc_id)
        hod1 = _user(s1, "hod@x.edu")
        hod2 = _user(s2, "hod2@x.edu")
        assert d1.status == d2.status == STATUS_PENDING_HOD

        service.apply_decision(s1, d1, user=hod1, decision="Approved")
        with pytest.raises(ConflictError):
            service.apply_decision(s2, d2, user=hod2, decision="Rejected")
    finally:
        s1.close()
        s2.close()

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        assert d.status == STATUS_PENDING_COORDINATOR
        assert [h.action for h in d.history] == ["Uploaded", "Approved"]
        assert d.history[-1].by_user_id == _user(s, "hod@x.edu").id


def test_persistence_failure_writes_nothing(app):
    with session_scope(app) as s:
        doc_id = _create(s, "faculty@x.edu").id

    def _fail_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        hod = _user(s, "hod@x.edu")

        real_commit = s.commit
        s.commit = _fail_commit
        try:
            with pytest.raises(DependencyError):
                service.apply_decision(s, d, user=hod, decision="Approved")
        finally:
            s.commit = real_commit

    with session_scope(app) as s:
        d = s.get(Document, doc_id)
        assert d.status == STATUS_PENDING_HOD
        assert len(d.history) == 1


def test_comments_append_history_without_changing_status(app):
    with session_scope(app) as s:
        d = _create(s, "faculty@x.edu")
        entry = service.add_comment(s, d, user=_user(s, "hod@x.edu"), comment="Please add the 2024 CV")
        assert entry.action == "Commented"
        assert d.status == STATUS_PENDING_HOD
        assert [h.action for h in d.history] == ["Uploaded", "Commented"]

        with pytest.raises(ValidationError):
            service.add_comment(s, d, user=_user(s, "hod@x.edu"), comment="  ")
        with pytest.raises(AuthorizationError):
            service.add_comment(s, d, user=_user(s, "faculty2@x.edu"), comment="me too")


def test_owner_and_institute_views(app):
    with session_scope(app) as s:
        mine = _create(s, "faculty@x.edu", title="Mine")
        _create(s, "faculty2@x.edu", title="Colleague")
        _create(s, "faculty@y.edu", title="Other institute")

        owner_view = service.list_documents_for(s, _user(s, "faculty@x.edu"))
        assert [d.id for d in owner_view] == [mine.id]

        admin_view = service.list_documents_for(s, _user(s, "admin@x.edu"))
        assert sorted(d.title for d in admin_view) == ["Colleague", "Mine"]


def test_review_queues_are_scoped_by_role_stage_and_institute(app):
    with session_scope(app) as s:
        f1 = _create(s, "faculty@x.edu", title="F1")
        f2 = _create(s, "faculty2@x.edu", title="F2")
        hod_doc = _create(s, "hod@x.edu", title="H1", category="NBA: Placement Statistics")
        _create(s, "faculty@y.edu", title="Y1")
        service.apply_decision(s, f2, user=_user(s, "hod@x.edu"), decision="Approved")

        hod_queue = service.hod_review_queue(s, _user(s, "hod@x.edu"))
        assert [d.title for d in hod_queue] == ["F1"]

        coord_queue = service.coordinator_review_queue(s, _user(s, "coord@x.edu"))
        assert sorted(d.title for d in coord_queue) == ["F2", "H1"]
        assert f1.id not in [d.id for d in coord_queue]
        assert hod_doc.id in [d.id for d in coord_queue]

        assert [d.title for d in service.hod_review_queue(s, _user(s, "hod@y.edu"))] == ["Y1"]


def test_report_view_filters_by_body_prefix_and_orders_by_category(app):
    with session_scope(app) as s:
        for title, category in (
            ("Awards", "naac: Certificates of Awards"),
            ("CVs", "NAAC: Faculty CVs"),
            ("Feedback", "NAAC: Student Feedback Reports"),
            ("Placements", "NBA: Placement Statistics"),
        ):
            _approve_fully(s, _create(s, "faculty@x.edu", title=title, category=category))

        _create(s, "faculty@x.edu", title="Pending", category="NAAC: Faculty CVs")
        rejected = _create(s, "faculty@x.edu", title="Rejected", category="NAAC: Faculty CVs")
        service.apply_decision(s, rejected, user=_user(s, "hod@x.edu"), decision="Rejected")

        y_doc = _create(s, "faculty@y.edu", title="Other", category="NAAC: Faculty CVs")
        service.apply_decision(s, y_doc, user=_user(s, "hod@y.edu"), decision="Approved")
        service.apply_decision(s, y_doc, user=_user(s, "coord@y.edu"), decision="Approved")

        report = service.report_documents(s, institute_name="Institute X", body="NAAC")
        assert sorted(d.title for d in report) == ["Awards", "CVs", "Feedback"]
        assert all(d.status == STATUS_APPROVED for d in report)
        categories = [d.category for d in report]
        assert categories == sorted(categories)

        assert len(service.report_documents(s, institute_name="Institute X", body="nba")) == 1
        assert len(service.report_documents(s, institute_name="Institute X")) == 4


def test_task_progress_tracks_required_categories(app):
    with session_scope(app) as s:
        _create(s, "faculty@x.edu", title="CV", category="NAAC: Faculty CVs")
        progress = service.task_progress(s, _user(s, "faculty@x.edu"))

        assert progress["total"] == 3
        assert progress["completed"] == 1
        assert progress["percentage"] == 33
        cv = next(t for t in progress["tasks"] if t["category"] == "NAAC: Faculty CVs")
        assert cv["uploaded"] is True
        assert cv["status"] == STATUS_PENDING_HOD

        assert service.task_progress(s, _user(s, "admin@x.edu"))["total"] == 0


def test_create_and_decisions_are_audited(app):
    with session_scope(app) as s:
        _approve_fully(s, _create(s, "faculty@x.edu"))
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id.asc()).all()]
        assert actions == ["document.create", "document.decision", "document.decision"]
