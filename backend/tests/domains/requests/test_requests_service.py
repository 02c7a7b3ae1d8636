"""Tests for service requests to the maintenance deputy and the sysadmin."""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from schoolcrm.core.database import get_db
from schoolcrm.core.exceptions import Forbidden, InvalidState, NotFound, ValidationFailed
from schoolcrm.core.security import TokenPayload, verify_token
from schoolcrm.domains.requests.models import Request, RequestMessage, RequestStatus, RequestTarget
from schoolcrm.domains.requests.schemas import CloseOutcome, RequestCreate
from schoolcrm.domains.requests.service import RequestsService
from schoolcrm.main import app


@pytest.fixture
def service(db, permissions):
    return RequestsService(db, permissions)


@pytest.fixture
def teacher(make_user):
    return make_user(role="teacher", name="Teacher")


@pytest.fixture
def sysadmin(make_user):
    return make_user(role="sysadmin", name="Admin")


@pytest.fixture
def opened(service, teacher):
    return service.create_request(
        teacher.id, RequestCreate(target=RequestTarget.SYSADMIN, title=" Projector ", body="Room 12 projector is dead")
    )


class TestCreate:
    def test_creates_with_first_message(self, service, opened, teacher):
        assert opened.title == "Projector"
        assert opened.status == RequestStatus.NEW.value
        detail = service.get_detail(teacher.id, opened.id)
        assert [m.body for m in detail.messages] == ["Room 12 projector is dead"]

    def test_empty_body_adds_no_message(self, db, service, teacher):
        service.create_request(teacher.id, RequestCreate(target=RequestTarget.DEPUTY_AXH, title="Chairs"))
        assert db.execute(select(func.count()).select_from(RequestMessage)).scalar_one() == 0

    def test_user_without_role_cannot_create(self, service, make_user):
        with pytest.raises(Forbidden):
            service.create_request(
                make_user(role=None).id, RequestCreate(target=RequestTarget.SYSADMIN, title="Wi-Fi")
            )


class TestVisibility:
    def test_lists(self, service, opened, teacher, sysadmin, make_user):
        axh = make_user(role="deputy_axh")

        assert [r["id"] for r in service.list_requests(teacher.id)] == [opened.id]
        assert [r["id"] for r in service.list_requests(sysadmin.id)] == [opened.id]
        assert service.list_requests(sysadmin.id, mine_only=True) == []
        assert service.list_requests(axh.id) == []
        assert service.list_requests(sysadmin.id, status="done") == []
        assert service.list_requests(teacher.id)[0]["author_name"] == "Teacher"

    def test_outsider_is_forbidden(self, service, opened, make_user):
        with pytest.raises(Forbidden):
            service.get_request(make_user(role="teacher").id, opened.id)
        assert service.get_request(make_user(role="director").id, opened.id).id == opened.id
        with pytest.raises(NotFound):
            service.get_request(make_user().id, uuid4())


class TestConversation:
    def test_reply_moves_the_request_up(self, service, opened, sysadmin):
        before = opened.last_message_at
        message = service.reply(sysadmin.id, opened.id, "  On my way ")
        assert message.body == "On my way"
        assert opened.last_message_at >= before

    def test_blank_reply(self, service, opened, teacher):
        with pytest.raises(ValidationFailed):
            service.reply(teacher.id, opened.id, "   ")


class TestClosing:
    def test_done_then_reopen_by_author(self, service, opened, teacher, sysadmin):
        closed = service.close(sysadmin.id, opened.id, CloseOutcome.DONE)
        assert closed.status == RequestStatus.DONE.value
        assert closed.processed_by_id == sysadmin.id
        assert closed.closed_at is not None

        with pytest.raises(InvalidState):
            service.close(sysadmin.id, opened.id, CloseOutcome.DONE)
        with pytest.raises(Forbidden):
            service.reopen(sysadmin.id, opened.id)

        reopened = service.reopen(teacher.id, opened.id)
        assert reopened.status == RequestStatus.IN_PROGRESS.value
        assert reopened.closed_at is None

    def test_reject_needs_reason(self, service, opened, sysadmin, teacher):
        with pytest.raises(ValidationFailed):
            service.close(sysadmin.id, opened.id, CloseOutcome.REJECTED, " ")
        rejected = service.close(sysadmin.id, opened.id, CloseOutcome.REJECTED, "Not our equipment")
        assert rejected.rejected_reason == "Not our equipment"

        with pytest.raises(InvalidState):
            service.reopen(teacher.id, opened.id)

    def test_only_target_role_closes(self, service, opened, teacher, make_user):
        with pytest.raises(Forbidden):
            service.close(teacher.id, opened.id, CloseOutcome.DONE)
        with pytest.raises(Forbidden):
            service.close(make_user(role="deputy_axh").id, opened.id, CloseOutcome.DONE)


class TestDelete:
    def test_author_or_processor_deletes(self, db, service, opened, teacher, make_user):
        request_id = opened.id
        with pytest.raises(Forbidden):
            service.delete_request(make_user(role="director").id, request_id)

        service.delete_request(make_user(role="deputy_axh").id, request_id)
        db.expire_all()
        assert db.get(Request, request_id) is None
        assert db.execute(select(func.count()).select_from(RequestMessage)).scalar_one() == 0


class TestRequestsEndpoints:
    @pytest.fixture
    def login_as(self, db):
        app.dependency_overrides[get_db] = lambda: db

        def _login(user) -> TestClient:
            app.dependency_overrides[verify_token] = lambda: TokenPayload(
                sub=str(user.id), exp=datetime.now(timezone.utc) + timedelta(hours=1), name=user.name, role=user.role
            )
            return TestClient(app)

        yield _login
        app.dependency_overrides.clear()

    def test_create_close_and_filter(self, login_as, teacher, sysadmin):
        response = login_as(teacher).post(
            "/api/v1/requests", json={"target": "sysadmin", "title": "Printer", "body": "Jammed"}
        )
        assert response.status_code == 201
        request_id = response.json()["id"]

        admin = login_as(sysadmin)
        response = admin.post(f"/api/v1/requests/{request_id}/close", json={"outcome": "rejected"})
        assert response.status_code == 400
        assert response.json()["code"] == "validation_failed"

        assert admin.post(f"/api/v1/requests/{request_id}/close", json={"outcome": "done"}).json()["status"] == "done"
        assert [r["id"] for r in admin.get("/api/v1/requests", params={"status": "done"}).json()] == [request_id]
        assert admin.get("/api/v1/requests", params={"status": "new"}).json() == []

    def test_unknown_target_is_422(self, login_as, teacher):
        response = login_as(teacher).post("/api/v1/requests", json={"target": "director", "title": "Raise"})
        assert response.status_code == 422
