from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from helpdesk.config import Role
from helpdesk.core import ConflictException, ResourceNotFoundException
from helpdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from helpdesk.sla.application import SLAService
from helpdesk.sla.domain import SLAConfig
from helpdesk.sla.infrastructure import SQLAlchemySLAConfigRepository, YAMLSLASeedLoader
from helpdesk.tickets.application import TicketFilter
from helpdesk.tickets.domain import AuditLog, ChatMessage, Notification, Ticket, TicketTemplate, User
from helpdesk.tickets.infrastructure import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyChatMessageRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTicketTemplateRepository,
    SQLAlchemyUserRepository,
)

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}")
    await create_tables()
    async with get_session_context() as session:
        yield session
    await close_database()


def new_ticket(created_at: datetime = T0, **overrides) -> Ticket:
    values = dict(
        id=None,
        subject="VPN down",
        description="Cannot connect",
        category="IT Infrastructure",
        priority="Critical",
        status="Open",
        employee_email="jane.doe@example.com",
        employee_name="Jane Doe",
        sla_due_date=created_at + timedelta(hours=4),
        created_at=created_at,
        updated_at=created_at,
    )
    values.update(overrides)
    return Ticket(**values)


async def test_users_by_role_in_creation_order(session):
    users = SQLAlchemyUserRepository(session)
    await users.create(User(id=None, email="Second@example.com", name="Second", role=Role.HR_OWNER,
                            created_at=T0 + timedelta(minutes=1)))
    await users.create(User(id=None, email="first@example.com", name="First", role=Role.HR_OWNER,
                            created_at=T0))
    await users.create(User(id=None, email="it@example.com", name="IT", role=Role.IT_OWNER, created_at=T0))

    hr = await users.list_by_role(Role.HR_OWNER)
    assert [u.email for u in hr] == ["first@example.com", "second@example.com"]

    found = await users.get_by_email("SECOND@example.com")
    assert found.name == "Second"
    assert (await users.get_by_id(found.id)).email == "second@example.com"
    assert await users.get_by_id("not-a-uuid") is None


async def test_users_page_by_email_and_change_role(session):
    users = SQLAlchemyUserRepository(session)
    for email in ("carol@example.com", "alice@example.com", "bob@example.com"):
        await users.create(User(id=None, email=email, name=email, role=Role.EMPLOYEE, department="Finance"))

    assert [u.email for u in await users.list(0, 2)] == ["alice@example.com", "bob@example.com"]
    assert [u.email for u in await users.list(2, 2)] == ["carol@example.com"]

    updated = await users.update_role("Bob@example.com", Role.HR_OWNER, "HR")
    assert (updated.role, updated.department) == ("hr_owner", "HR")
    assert [u.email for u in await users.list_by_role(Role.HR_OWNER)] == ["bob@example.com"]
    assert await users.update_role("nobody@example.com", Role.HR_OWNER, "HR") is None


async def test_ticket_update_is_compare_and_swap(session):
    tickets = SQLAlchemyTicketRepository(session)
    created = await tickets.create(new_ticket())
    assert created.version == 1
    assert created.created_at == T0

    updated = await tickets.update(created.id, {"priority": "High"}, expected_version=1)
    assert (updated.priority, updated.version) == ("High", 2)

    with pytest.raises(ConflictException):
        await tickets.update(created.id, {"priority": "Low"}, expected_version=1)
    assert (await tickets.get(created.id)).priority == "High"

    unconditional = await tickets.update(created.id, {"status": "Closed"})
    assert unconditional.version == 3


async def test_update_of_missing_ticket(session):
    tickets = SQLAlchemyTicketRepository(session)
    with pytest.raises(ResourceNotFoundException):
        await tickets.update("7d0c5d58-3f0a-4b53-8a5e-2f0b8c9e1a11", {"priority": "Low"})
    assert await tickets.get("garbage") is None


async def test_list_filters_pages_and_counts(session):
    tickets = SQLAlchemyTicketRepository(session)
    await tickets.create(new_ticket(T0, subject="older"))
    await tickets.create(new_ticket(T0 + timedelta(hours=1), subject="newer"))
    await tickets.create(new_ticket(T0, subject="hr", category="HR"))

    it_filter = TicketFilter(category="IT Infrastructure")
    listed = await tickets.list(it_filter, offset=0, limit=10)
    assert [t.subject for t in listed] == ["newer", "older"]
    assert await tickets.count(it_filter) == 2
    assert [t.subject for t in await tickets.list(it_filter, offset=1, limit=1)] == ["older"]
    assert await tickets.count(TicketFilter(employee_email="JANE.DOE@example.com")) == 3


async def test_list_overdue_skips_closed_and_flagged(session):
    tickets = SQLAlchemyTicketRepository(session)
    due = await tickets.create(new_ticket(subject="due"))
    closed = await tickets.create(new_ticket(subject="closed"))
    flagged = await tickets.create(new_ticket(subject="flagged"))
    await tickets.create(new_ticket(subject="later", priority="Low", sla_due_date=T0 + timedelta(days=3)))
    await tickets.update(closed.id, {"status": "Closed"})
    await tickets.update(flagged.id, {"sla_violated": True})

    overdue = await tickets.list_overdue(T0 + timedelta(hours=5))
    assert [t.id for t in overdue] == [due.id]


async def test_delete_created_before_removes_children(session):
    tickets = SQLAlchemyTicketRepository(session)
    messages = SQLAlchemyChatMessageRepository(session)
    audit = SQLAlchemyAuditLogRepository(session)

    old = await tickets.create(new_ticket(T0, subject="old"))
    recent = await tickets.create(new_ticket(T0 + timedelta(days=100), subject="recent"))
    await messages.add(ChatMessage(id=None, ticket_id=old.id, sender_id="jane.doe@example.com",
                                   sender_name="Jane", sender_role="employee", message="hi", timestamp=T0))
    await audit.add(AuditLog(id=None, ticket_id=old.id, action="created", details="Ticket created: old",
                             performed_by="jane.doe@example.com", performed_at=T0))

    deleted = await tickets.delete_created_before(T0 + timedelta(days=1))

    assert deleted == 1
    assert await tickets.get(old.id) is None
    assert await tickets.get(recent.id) is not None
    assert await messages.list_for_ticket(old.id) == []
    assert await audit.count(old.id) == 0


async def test_ticket_created_exactly_at_cutoff_is_kept(session):
    tickets = SQLAlchemyTicketRepository(session)
    boundary = await tickets.create(new_ticket(T0, subject="boundary"))
    older = await tickets.create(new_ticket(T0 - timedelta(seconds=1), subject="older"))

    assert await tickets.delete_created_before(T0) == 1
    assert await tickets.get(boundary.id) is not None
    assert await tickets.get(older.id) is None


async def test_audit_counts_and_windows(session):
    audit = SQLAlchemyAuditLogRepository(session)
    for offset, action in ((0, "created"), (1, "updated"), (2, "updated")):
        await audit.add(AuditLog(id=None, ticket_id="t-1", action=action, details=action,
                                 performed_by="boss@example.com", performed_at=T0 + timedelta(days=offset)))

    assert await audit.count("t-1") == 3
    assert await audit.count("t-1", since=T0 + timedelta(days=1)) == 2
    assert await audit.count_by_action("t-1") == {"created": 1, "updated": 2}
    newest = await audit.list(ticket_id="t-1", limit=1)
    assert newest[0].performed_at == T0 + timedelta(days=2)


async def test_notifications_newest_first_and_mark_read(session):
    notifications = SQLAlchemyNotificationRepository(session)
    first = await notifications.add(Notification(id=None, user_id="jane.doe@example.com", title="A",
                                                 message="a", type="info", created_at=T0))
    await notifications.add(Notification(id=None, user_id="jane.doe@example.com", title="B",
                                         message="b", type="info", created_at=T0 + timedelta(minutes=1)))

    listed = await notifications.list_for_user("Jane.Doe@example.com", 10)
    assert [n.title for n in listed] == ["B", "A"]

    marked = await notifications.mark_read(first.id)
    assert marked.read is True
    assert await notifications.mark_read("nope") is None


async def test_sla_upsert_keeps_one_row_per_key(session):
    service = SLAService(SQLAlchemySLAConfigRepository(session))
    await service.upsert_config(SLAConfig(category="HR", priority="High", response_time_hours=2, resolution_time_hours=8))
    saved = await service.upsert_config(
        SLAConfig(category="HR", priority="High", response_time_hours=1, resolution_time_hours=6)
    )

    configs = await service.list_configs()
    assert len(configs) == 1
    assert saved.resolution_time_hours == 6
    assert await service.calculate_due_date("HR", "High", T0) == T0 + timedelta(hours=6)
    assert await service.calculate_due_date("HR", "Low", T0) == T0 + timedelta(hours=72)


async def test_seed_leaves_existing_rows_alone(session, tmp_path):
    seed_file = tmp_path / "sla.yaml"
    seed_file.write_text(
        "sla_configs:\n"
        "  - {category: HR, priority: High, response_time_hours: 4, resolution_time_hours: 16}\n"
        "  - {category: Accounts, priority: Low, response_time_hours: 8, resolution_time_hours: 96}\n"
    )
    service = SLAService(SQLAlchemySLAConfigRepository(session))
    await service.upsert_config(SLAConfig(category="HR", priority="High", response_time_hours=1, resolution_time_hours=5))

    inserted = await service.seed(YAMLSLASeedLoader(seed_file).load())

    assert inserted == 1
    assert (await service.get_config("HR", "High")).resolution_time_hours == 5
    assert (await service.get_config("Accounts", "Low")).resolution_time_hours == 96


def test_seed_loader_tolerates_missing_file(tmp_path):
    assert YAMLSLASeedLoader(tmp_path / "absent.yaml").load() == []


async def test_templates_newest_first_and_by_category(session):
    await SQLAlchemyUserRepository(session).create(
        User(id=None, email="hr.lead@example.com", name="HR Lead", role=Role.HR_OWNER)
    )
    templates = SQLAlchemyTicketTemplateRepository(session)
    for offset, (name, category) in enumerate((("Leave", "HR"), ("Laptop", "IT Infrastructure"), ("Payslip", "HR"))):
        await templates.add(TicketTemplate(
            id=None, name=name, category=category, subject=name, description="details",
            priority="Low", created_by="HR.Lead@example.com", created_at=T0 + timedelta(minutes=offset)
        ))

    assert [t.name for t in await templates.list(0, 2)] == ["Payslip", "Laptop"]
    assert [t.name for t in await templates.list(2, 2)] == ["Leave"]
    hr = await templates.list_by_category("HR")
    assert [t.name for t in hr] == ["Payslip", "Leave"]
    assert hr[0].created_by == "hr.lead@example.com"
    assert hr[0].created_at == T0 + timedelta(minutes=2)
