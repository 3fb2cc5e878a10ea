import os
from types import SimpleNamespace

import pytest
import pytest_asyncio

# Required settings for anything that builds Settings from the environment
os.environ.setdefault("APP_BASE_URL", "https://helpdesk.example.com")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CHAT_API_KEY", "test-key")
os.environ.setdefault("GOOGLE_CHAT_TOKEN", "test-token")
os.environ.setdefault("GOOGLE_CHAT_HR_WEBHOOK", "https://chat.example.com/hooks/hr")
os.environ.setdefault("GOOGLE_CHAT_IT_WEBHOOK", "https://chat.example.com/hooks/it")
os.environ.setdefault("GOOGLE_CHAT_ADMIN_WEBHOOK", "https://chat.example.com/hooks/admin")
os.environ.setdefault("GOOGLE_CHAT_ACCOUNTS_WEBHOOK", "https://chat.example.com/hooks/accounts")
os.environ.setdefault("DISPATCH_SECRET", "s3cret")
os.environ.setdefault("ENVIRONMENT", "test")

from helpdesk.config import SYSTEM_USER_EMAIL, Role  # noqa: E402
from helpdesk.sla.application import SLAService  # noqa: E402
from helpdesk.tickets.application import (  # noqa: E402
    AttachmentManager,
    AuditLogger,
    NotificationStore,
    TemplateService,
    TicketLifecycleService,
    UserDirectory,
)

from tests.fakes import (  # noqa: E402
    FixedClock,
    InMemoryAttachmentRepository,
    InMemoryAuditLogRepository,
    InMemoryBlobStorage,
    InMemoryChatMessageRepository,
    InMemoryErrorLogRepository,
    InMemoryEscalationRepository,
    InMemoryNotificationRepository,
    InMemorySLAConfigRepository,
    InMemoryTicketRepository,
    InMemoryTicketTemplateRepository,
    InMemoryUserRepository,
    RecordingGateway,
    RecordingPublisher,
)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def world(clock):
    """Every fake wired into the lifecycle service and attachment manager."""
    w = SimpleNamespace(
        clock=clock,
        users=InMemoryUserRepository(),
        tickets=InMemoryTicketRepository(),
        audit_logs=InMemoryAuditLogRepository(),
        error_logs=InMemoryErrorLogRepository(),
        notifications=InMemoryNotificationRepository(),
        escalations=InMemoryEscalationRepository(),
        messages=InMemoryChatMessageRepository(),
        attachments=InMemoryAttachmentRepository(),
        storage=InMemoryBlobStorage(),
        sla_configs=InMemorySLAConfigRepository(),
        templates=InMemoryTicketTemplateRepository(),
        gateway=RecordingGateway(),
        publisher=RecordingPublisher(),
    )
    w.users.seed(SYSTEM_USER_EMAIL, Role.EMPLOYEE, name="System")
    w.employee = w.users.seed("jane.doe@example.com", Role.EMPLOYEE, name="Jane Doe", department="Finance")
    w.it_owner = w.users.seed("it.lead@example.com", Role.IT_OWNER, name="IT Lead")
    w.hr_owner = w.users.seed("hr.lead@example.com", Role.HR_OWNER, name="HR Lead")
    w.hr_deputy = w.users.seed("hr.deputy@example.com", Role.HR_OWNER, name="HR Deputy")
    w.owner = w.users.seed("boss@example.com", Role.OWNER, name="Boss")

    w.audit = AuditLogger(w.audit_logs, w.users, w.error_logs, clock)
    w.store = NotificationStore(w.notifications, clock)
    w.sla = SLAService(w.sla_configs, clock)
    w.service = TicketLifecycleService(
        ticket_repository=w.tickets,
        user_repository=w.users,
        message_repository=w.messages,
        attachment_repository=w.attachments,
        escalation_repository=w.escalations,
        error_log_repository=w.error_logs,
        audit=w.audit,
        notifications=w.store,
        sla=w.sla,
        gateway=w.gateway,
        publisher=w.publisher,
        clock=clock,
        retention_days=90
    )
    w.attachment_manager = AttachmentManager(
        w.attachments, w.tickets, w.users, w.storage, w.audit, clock
    )
    w.directory = UserDirectory(w.users, w.error_logs, clock)
    w.template_service = TemplateService(w.templates, w.users, w.error_logs, clock)
    return w


@pytest_asyncio.fixture
async def it_ticket(world):
    """A Critical IT Infrastructure ticket raised by Jane."""
    outcome = await world.service.create(
        subject="VPN down",
        description="Cannot reach the VPN since 8am",
        category="IT Infrastructure",
        priority="Critical",
        employee_email="jane.doe@example.com"
    )
    return outcome.value
