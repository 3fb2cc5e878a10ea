import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.websockets import WebSocketDisconnect

from helpdesk.config import Settings
from helpdesk.main import create_app
from helpdesk.notifications.application import ChatDispatcher
from helpdesk.notifications.domain import ChatMessageFormatter
from helpdesk.notifications.infrastructure import GoogleChatClient
from helpdesk.sla.interfaces.controllers import get_sla_service
from helpdesk.tickets.infrastructure import ChatSubscriptionRegistry, InProcessChatTransport
from helpdesk.tickets.interfaces.controllers import (
    get_attachment_manager,
    get_audit_logger,
    get_chat_registry,
    get_lifecycle_service,
    get_notification_store,
    get_template_service,
    get_ticket_exists,
    get_user_directory,
)


def chat_ok(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/spaces/findDirectMessage"):
        return httpx.Response(200, json={"name": "spaces/dm-1"})
    return httpx.Response(200, json={})


@pytest.fixture
def app(world):
    settings = Settings()
    app = create_app(settings)
    app.state.dispatcher = ChatDispatcher(
        GoogleChatClient(settings.google_chat_api_url, "k", "t", transport=httpx.MockTransport(chat_ok)),
        settings.category_webhooks,
        ChatMessageFormatter(settings.app_base_url)
    )
    app.dependency_overrides[get_lifecycle_service] = lambda: world.service
    app.dependency_overrides[get_attachment_manager] = lambda: world.attachment_manager
    app.dependency_overrides[get_audit_logger] = lambda: world.audit
    app.dependency_overrides[get_notification_store] = lambda: world.store
    app.dependency_overrides[get_user_directory] = lambda: world.directory
    app.dependency_overrides[get_template_service] = lambda: world.template_service

    async def ticket_exists(ticket_id):
        return await world.tickets.get(ticket_id) is not None

    app.dependency_overrides[get_ticket_exists] = lambda: ticket_exists
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def create_ticket(client, **overrides):
    body = {
        "subject": "VPN down",
        "description": "Cannot reach the VPN",
        "category": "IT Infrastructure",
        "priority": "Critical",
        "employee_email": "jane.doe@example.com",
    }
    body.update(overrides)
    return client.post("/tickets", json=body)


# ========== dispatch endpoint ==========

DISPATCH_BODY = {
    "ticket_id": "T-42",
    "subject": "VPN down",
    "status": "Closed",
    "employee_email": "jane.doe@example.com",
    "category": "IT Infrastructure",
}


def test_dispatch_requires_bearer_token(client):
    response = client.post("/notifications/dispatch", json=DISPATCH_BODY)
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}

    wrong = client.post(
        "/notifications/dispatch", json=DISPATCH_BODY, headers={"Authorization": "Bearer nope"}
    )
    assert wrong.status_code == 401


def test_dispatch_checks_token_before_body(client):
    response = client.post("/notifications/dispatch", json={"subject": "x"})
    assert response.status_code == 401


def test_dispatch_rejects_chat_message_without_content(client):
    body = dict(DISPATCH_BODY, status="Notification")
    response = client.post(
        "/notifications/dispatch", json=body, headers={"Authorization": "Bearer s3cret"}
    )
    assert response.status_code == 400
    assert "message_content and sender_role are required" in response.json()["error"]


def test_dispatch_rejects_bad_hr_email(client):
    body = dict(DISPATCH_BODY, status="Escalated", hr_emails=["not-an-email"])
    response = client.post(
        "/notifications/dispatch", json=body, headers={"Authorization": "Bearer s3cret"}
    )
    assert response.status_code == 400


def test_dispatch_reports_deliveries(client):
    response = client.post(
        "/notifications/dispatch", json=DISPATCH_BODY, headers={"Authorization": "Bearer s3cret"}
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "results": {"dmSent": ["jane.doe@example.com"], "webhookSent": True}
    }


# ========== tickets ==========

def test_create_and_fetch_ticket(client, world):
    response = create_ticket(client)
    assert response.status_code == 201
    created = response.json()
    assert created["warnings"] == []
    ticket = created["ticket"]
    assert ticket["assigned_to"] == "it.lead@example.com"
    assert ticket["version"] == 1

    fetched = client.get(f"/tickets/{ticket['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["messages"] == []
    assert response.headers["X-Correlation-ID"]


def test_create_rejects_unknown_category_with_error_body(client):
    response = create_ticket(client, category="Facilities")
    assert response.status_code == 400
    assert set(response.json()) == {"error"}


def test_unknown_ticket_is_404(client):
    response = client.get("/tickets/missing")
    assert response.status_code == 404
    assert response.json()["error"] == "Ticket with id 'missing' not found"


def test_patch_with_stale_version_is_409(client):
    ticket = create_ticket(client).json()["ticket"]
    first = client.patch(
        f"/tickets/{ticket['id']}",
        json={"priority": "High", "performed_by": "boss@example.com", "expected_version": 1}
    )
    assert first.status_code == 200
    assert first.json()["ticket"]["version"] == 2

    stale = client.patch(
        f"/tickets/{ticket['id']}",
        json={"priority": "Low", "performed_by": "boss@example.com", "expected_version": 1}
    )
    assert stale.status_code == 409


def test_list_tickets_filters_by_status(client):
    create_ticket(client)
    response = client.get("/tickets", params={"status": "Open", "page_size": 5})
    body = response.json()
    assert body["total_count"] == 1
    assert body["page_size"] == 5

    closed = client.get("/tickets", params={"status": "Closed"})
    assert closed.json()["tickets"] == []


def test_escalate_and_audit_stats(client):
    ticket = create_ticket(client).json()["ticket"]
    response = client.post(
        f"/tickets/{ticket['id']}/escalate",
        json={"reason": "Nobody answered", "performed_by": "jane.doe@example.com"}
    )
    assert response.status_code == 200
    assert response.json()["ticket"]["status"] == "Escalated"

    stats = client.get(f"/tickets/{ticket['id']}/audit/stats").json()
    assert stats["action_counts"]["escalated"] == 1
    assert stats["total"] == stats["today"]

    trail = client.get(f"/tickets/{ticket['id']}/audit", params={"date_filter": "today"}).json()
    assert len(trail) == stats["total"]


def test_chat_message_and_notifications(client):
    ticket = create_ticket(client).json()["ticket"]
    response = client.post(
        f"/tickets/{ticket['id']}/messages",
        json={
            "sender_id": "jane.doe@example.com",
            "sender_name": "Jane Doe",
            "sender_role": "employee",
            "message": "Any news?"
        }
    )
    assert response.status_code == 201

    notes = client.get("/users/it.lead@example.com/notifications").json()
    assert notes[0]["title"] == "New Chat Message"

    marked = client.post(f"/notifications/{notes[0]['id']}/read")
    assert marked.json()["read"] is True


def test_attachment_upload_rejects_disallowed_type(client, world):
    ticket = create_ticket(client).json()["ticket"]
    response = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("tool.exe", b"MZ", "application/x-msdownload")},
        data={"uploaded_by": "jane.doe@example.com"}
    )
    assert response.status_code == 400
    assert world.storage.blobs == {}


def test_attachment_upload_and_list(client):
    ticket = create_ticket(client).json()["ticket"]
    response = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"uploaded_by": "jane.doe@example.com"}
    )
    assert response.status_code == 201
    assert response.json()["attachment"]["file_size"] == 5

    listed = client.get(f"/tickets/{ticket['id']}/attachments").json()
    assert [a["file_name"] for a in listed] == ["notes.txt"]


# ========== SLA configuration ==========

def test_sla_config_put_then_list(app, client, world):
    app.dependency_overrides[get_sla_service] = lambda: world.sla

    saved = client.put("/sla/configs", json={
        "category": "Accounts",
        "priority": "High",
        "response_time_hours": 2,
        "resolution_time_hours": 12
    })
    assert saved.status_code == 200
    assert saved.json()["resolution_time_hours"] == 12

    listed = client.get("/sla/configs").json()["configs"]
    assert [(c["category"], c["priority"]) for c in listed] == [("Accounts", "High")]

    ticket = create_ticket(client, category="Accounts", priority="High").json()["ticket"]
    assert ticket["assigned_to"] == "boss@example.com"


def test_sla_config_rejects_non_positive_hours(app, client, world):
    app.dependency_overrides[get_sla_service] = lambda: world.sla
    response = client.put("/sla/configs", json={
        "category": "HR", "priority": "Low", "response_time_hours": 0, "resolution_time_hours": 4
    })
    assert response.status_code == 400


def test_attachment_upload_rejects_oversized_file_without_buffering_it(client, world, monkeypatch):
    reads = []
    original_read = StarletteUploadFile.read

    async def recording_read(self, size=-1):
        reads.append(size)
        return await original_read(self, size)

    monkeypatch.setattr(StarletteUploadFile, "read", recording_read)
    ticket = create_ticket(client).json()["ticket"]
    response = client.post(
        f"/tickets/{ticket['id']}/attachments",
        files={"file": ("big.txt", b"x" * (10 * 1024 * 1024 + 1), "text/plain")},
        data={"uploaded_by": "jane.doe@example.com"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "File size exceeds 10MB limit"
    assert all(0 <= size <= 10 * 1024 * 1024 + 1 for size in reads)
    assert world.storage.blobs == {}


# ========== users and templates ==========

def test_change_role_then_new_tickets_follow_it(client):
    response = client.put(
        "/users/IT.Lead@example.com/role",
        json={"role": "employee", "updated_by": "boss@example.com"}
    )
    assert response.status_code == 200
    assert (response.json()["role"], response.json()["department"]) == ("employee", "General")

    ticket = create_ticket(client).json()["ticket"]
    assert ticket["assigned_to"] == "boss@example.com"


def test_change_role_errors(client, world):
    bad_role = client.put(
        "/users/jane.doe@example.com/role", json={"role": "superuser", "updated_by": "boss@example.com"}
    )
    assert bad_role.status_code == 400

    missing = client.put(
        "/users/ghost@example.com/role", json={"role": "hr_owner", "updated_by": "boss@example.com"}
    )
    assert missing.status_code == 404
    assert [context for _, context in world.error_logs.records] == [
        "update_role: email=ghost@example.com, role=hr_owner"
    ]


def test_list_users_pages(client):
    first = client.get("/users", params={"page": 1, "page_size": 2}).json()
    assert [u["email"] for u in first] == ["boss@example.com", "hr.deputy@example.com"]
    assert client.get("/users", params={"page_size": 101}).status_code == 400


def test_templates_endpoints(client):
    body = {
        "name": "Payslip",
        "category": "HR",
        "subject": "Payslip missing",
        "description": "Which month?",
        "priority": "Medium",
        "created_by": "hr.lead@example.com",
    }
    created = client.post("/templates", json=body)
    assert created.status_code == 201
    assert created.json()["created_by"] == "hr.lead@example.com"

    denied = client.post("/templates", json={**body, "created_by": "it.lead@example.com"})
    assert denied.status_code == 403

    assert [t["name"] for t in client.get("/templates").json()] == ["Payslip"]
    assert [t["name"] for t in client.get("/templates/category/HR").json()] == ["Payslip"]
    assert client.get("/templates/category/Accounts").json() == []
    assert client.get("/templates/category/Facilities").status_code == 400


# ========== chat stream ==========

@pytest.fixture
def chat_registry(app, world):
    transport = InProcessChatTransport()
    registry = ChatSubscriptionRegistry(transport)
    world.publisher.forward_to = transport
    app.dependency_overrides[get_chat_registry] = lambda: registry
    return registry


def post_message(client, ticket_id, text):
    response = client.post(
        f"/tickets/{ticket_id}/messages",
        json={
            "sender_id": "jane.doe@example.com",
            "sender_name": "Jane Doe",
            "sender_role": "employee",
            "message": text
        }
    )
    assert response.status_code == 201


def test_chat_stream_for_unknown_ticket_closes_with_4404(client, chat_registry):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/tickets/missing/messages/ws"):
            pass
    assert exc.value.code == 4404
    assert len(chat_registry) == 0


def test_chat_stream_delivers_posted_messages(client, chat_registry):
    ticket = create_ticket(client).json()["ticket"]

    with client.websocket_connect(f"/tickets/{ticket['id']}/messages/ws") as ws:
        post_message(client, ticket["id"], "Any news?")
        received = ws.receive_json()

    assert received["ticket_id"] == ticket["id"]
    assert received["message"] == "Any news?"
    assert received["sender_id"] == "jane.doe@example.com"


def test_second_chat_stream_replaces_and_closes_the_first(client, chat_registry):
    ticket = create_ticket(client).json()["ticket"]
    url = f"/tickets/{ticket['id']}/messages/ws"

    with client.websocket_connect(url) as first:
        with client.websocket_connect(url) as second:
            with pytest.raises(WebSocketDisconnect):
                first.receive_json()

            post_message(client, ticket["id"], "Still there?")
            assert second.receive_json()["message"] == "Still there?"
            assert len(chat_registry) == 1
