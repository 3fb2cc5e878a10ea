"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle: tickets, chat, attachments,
audit trail, users, ticket templates and in-app notifications.

Controllers are thin - they delegate to application services.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Query,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import Outcome, ValidationException
from helpdesk.infrastructure.database import get_session, get_session_context
from helpdesk.sla.application import SLAService
from helpdesk.sla.infrastructure import SQLAlchemySLAConfigRepository
from helpdesk.tickets.application import (
    AttachmentManager,
    AuditLogger,
    IBlobStorage,
    IMessagePublisher,
    INotificationGateway,
    NotificationStore,
    TemplateService,
    TicketFilter,
    TicketLifecycleService,
    UserDirectory,
)
from helpdesk.tickets.application.dto import (
    AttachmentMutationResponse,
    AttachmentResponse,
    AuditLogResponse,
    AuditStatsResponse,
    CategoryStr,
    ChatMessageMutationResponse,
    ChatMessageRequest,
    ChatMessageResponse,
    DateFilterStr,
    EscalationRequest,
    NotificationResponse,
    PriorityStr,
    RatingRequest,
    StatusStr,
    TicketCreateRequest,
    TicketListResponse,
    TicketMutationResponse,
    TicketResponse,
    TicketTemplateCreateRequest,
    TicketTemplateResponse,
    TicketUpdateRequest,
    UserCreateRequest,
    UserResponse,
    UserRoleUpdateRequest,
    WarningResponse,
)
from helpdesk.tickets.domain import AttachmentPolicy, UploadedFile
from helpdesk.tickets.infrastructure import (
    ChatSubscriptionRegistry,
    SQLAlchemyAttachmentRepository,
    SQLAlchemyAuditLogRepository,
    SQLAlchemyChatMessageRepository,
    SQLAlchemyErrorLogRepository,
    SQLAlchemyEscalationRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTicketTemplateRepository,
    SQLAlchemyUserRepository,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "subject": "VPN drops every few minutes",
    "description": "Since this morning the VPN disconnects every 5-10 minutes.",
    "category": "IT Infrastructure",
    "priority": "High",
    "employee_email": "jane.doe@example.com"
}


# ========== Service builders ==========

def build_audit_logger(session: AsyncSession) -> AuditLogger:
    return AuditLogger(
        SQLAlchemyAuditLogRepository(session),
        SQLAlchemyUserRepository(session),
        SQLAlchemyErrorLogRepository(session)
    )


def build_lifecycle_service(
    session: AsyncSession,
    gateway: INotificationGateway,
    publisher: Optional[IMessagePublisher] = None,
    retention_days: int = 90
) -> TicketLifecycleService:
    """Wire the lifecycle service onto one database session."""
    return TicketLifecycleService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        user_repository=SQLAlchemyUserRepository(session),
        message_repository=SQLAlchemyChatMessageRepository(session),
        attachment_repository=SQLAlchemyAttachmentRepository(session),
        escalation_repository=SQLAlchemyEscalationRepository(session),
        error_log_repository=SQLAlchemyErrorLogRepository(session),
        audit=build_audit_logger(session),
        notifications=NotificationStore(SQLAlchemyNotificationRepository(session)),
        sla=SLAService(SQLAlchemySLAConfigRepository(session)),
        gateway=gateway,
        publisher=publisher,
        retention_days=retention_days
    )


def build_attachment_manager(session: AsyncSession, storage: IBlobStorage) -> AttachmentManager:
    return AttachmentManager(
        SQLAlchemyAttachmentRepository(session),
        SQLAlchemyTicketRepository(session),
        SQLAlchemyUserRepository(session),
        storage,
        build_audit_logger(session)
    )


# ========== Dependencies ==========

async def get_lifecycle_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> TicketLifecycleService:
    """Get lifecycle service instance."""
    state = request.app.state
    return build_lifecycle_service(
        session,
        state.gateway,
        state.chat_transport,
        state.settings.data_retention_days
    )


async def get_attachment_manager(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> AttachmentManager:
    return build_attachment_manager(session, request.app.state.storage)


async def get_audit_logger(session: AsyncSession = Depends(get_session)) -> AuditLogger:
    return build_audit_logger(session)


async def get_notification_store(session: AsyncSession = Depends(get_session)) -> NotificationStore:
    return NotificationStore(SQLAlchemyNotificationRepository(session))


async def get_user_directory(session: AsyncSession = Depends(get_session)) -> UserDirectory:
    return UserDirectory(SQLAlchemyUserRepository(session), SQLAlchemyErrorLogRepository(session))


async def get_template_service(session: AsyncSession = Depends(get_session)) -> TemplateService:
    return TemplateService(
        SQLAlchemyTicketTemplateRepository(session),
        SQLAlchemyUserRepository(session),
        SQLAlchemyErrorLogRepository(session)
    )


TicketExists = Callable[[str], Awaitable[bool]]


async def _ticket_exists(ticket_id: str) -> bool:
    async with get_session_context() as session:
        return await SQLAlchemyTicketRepository(session).get(ticket_id) is not None


async def get_ticket_exists() -> TicketExists:
    """Ticket lookup for chat streams; each call opens and closes its own session."""
    return _ticket_exists


async def get_chat_registry(connection: HTTPConnection) -> ChatSubscriptionRegistry:
    return connection.app.state.chat_registry


def _warnings(outcome: Outcome) -> List[WarningResponse]:
    return [WarningResponse.from_domain(w) for w in outcome.warnings]


def _ticket_mutation(outcome: Outcome) -> TicketMutationResponse:
    return TicketMutationResponse(
        ticket=TicketResponse.from_domain(outcome.value),
        warnings=_warnings(outcome)
    )


# ========== Tickets ==========

@router.post(
    "/tickets",
    response_model=TicketMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket",
    description="""
    Creates a ticket for a known requester.

    - SLA due date comes from the (category, priority) configuration,
      falling back to Critical 4h, High 8h, Medium 24h, Low 72h
    - The ticket is assigned to the first owner permitted for the category
    - Audit entry, in-app notifications and chat notifications follow the
      write; their failures are reported in `warnings`
    """,
    responses={
        201: {"description": "Ticket created"},
        400: {"description": "Invalid category, priority or subject"},
        404: {"description": "Requester is not a known user"}
    }
)
async def create_ticket(
    request: TicketCreateRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    outcome = await service.create(**request.model_dump())
    return _ticket_mutation(outcome)


@router.get(
    "/tickets",
    response_model=TicketListResponse,
    summary="List tickets",
    description="Newest first. Filters combine with AND."
)
async def list_tickets(
    status_filter: Optional[StatusStr] = Query(None, alias="status"),
    category: Optional[CategoryStr] = Query(None),
    priority: Optional[PriorityStr] = Query(None),
    assigned_to: Optional[str] = Query(None),
    employee_email: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    filters = TicketFilter(
        status=status_filter,
        category=category,
        priority=priority,
        assigned_to=assigned_to,
        employee_email=employee_email
    )
    tickets, total = await service.list_tickets(filters, page, page_size)
    return TicketListResponse(
        tickets=[TicketResponse.from_domain(t) for t in tickets],
        total_count=total,
        page=page,
        page_size=page_size
    )


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket with its attachments and messages"
)
async def get_ticket(
    ticket_id: str,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    return TicketResponse.from_domain(await service.get_ticket(ticket_id))


@router.patch(
    "/tickets/{ticket_id}",
    response_model=TicketMutationResponse,
    summary="Update ticket fields",
    description="""
    Applies the fields present in the body. Fields equal to their current
    value are ignored; each real change gets an audit entry and a requester
    notification.

    Send `expected_version` to get a 409 instead of overwriting a newer
    version of the ticket.
    """,
    responses={
        404: {"description": "Ticket not found"},
        409: {"description": "Ticket was modified since `expected_version`"}
    }
)
async def update_ticket(
    ticket_id: str,
    request: TicketUpdateRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    outcome = await service.update(
        ticket_id,
        request.to_changes(),
        performed_by=request.performed_by,
        expected_version=request.expected_version
    )
    return _ticket_mutation(outcome)


@router.post(
    "/tickets/{ticket_id}/escalate",
    response_model=TicketMutationResponse,
    summary="Escalate a ticket",
    description="Records an escalation, moves the ticket to Escalated and notifies HR owners."
)
async def escalate_ticket(
    ticket_id: str,
    request: EscalationRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    outcome = await service.escalate(
        ticket_id,
        request.reason,
        description=request.description,
        timeline=request.timeline,
        performed_by=request.performed_by
    )
    return _ticket_mutation(outcome)


@router.post(
    "/tickets/{ticket_id}/rating",
    response_model=TicketMutationResponse,
    summary="Rate a ticket (1-5)"
)
async def rate_ticket(
    ticket_id: str,
    request: RatingRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    outcome = await service.rate_ticket(ticket_id, request.rating, request.performed_by)
    return _ticket_mutation(outcome)


# ========== Chat ==========

@router.get(
    "/tickets/{ticket_id}/messages",
    response_model=List[ChatMessageResponse],
    summary="List chat messages, oldest first"
)
async def list_messages(
    ticket_id: str,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    messages = await service.list_chat_messages(ticket_id)
    return [ChatMessageResponse.from_domain(m) for m in messages]


@router.post(
    "/tickets/{ticket_id}/messages",
    response_model=ChatMessageMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a chat message"
)
async def add_message(
    ticket_id: str,
    request: ChatMessageRequest,
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    outcome = await service.add_chat_message(
        ticket_id,
        request.sender_id,
        request.sender_name,
        request.sender_role,
        request.message
    )
    return ChatMessageMutationResponse(
        message=ChatMessageResponse.from_domain(outcome.value),
        warnings=_warnings(outcome)
    )


@router.websocket("/tickets/{ticket_id}/messages/ws")
async def stream_messages(
    websocket: WebSocket,
    ticket_id: str,
    ticket_exists: TicketExists = Depends(get_ticket_exists),
    registry: ChatSubscriptionRegistry = Depends(get_chat_registry)
):
    """
    Pushes each new chat message of a ticket as JSON.

    One live subscriber per ticket: a newer connection replaces this one,
    which is then closed.
    """
    if not await ticket_exists(ticket_id):
        await websocket.close(code=4404)
        return

    # Publishers may run on another thread or loop
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    # Subscribe before accepting so nothing posted after the handshake is missed
    subscription = registry.subscribe(
        ticket_id,
        lambda message: loop.call_soon_threadsafe(queue.put_nowait, message),
        on_close=lambda: loop.call_soon_threadsafe(queue.put_nowait, None)
    )
    try:
        await websocket.accept()
    except Exception:
        subscription.unsubscribe()
        raise
    logger.info("Chat stream opened", extra={"ticket_id": ticket_id})

    async def forward() -> None:
        while True:
            message = await queue.get()
            if message is None:
                return
            await websocket.send_json(ChatMessageResponse.from_domain(message).model_dump(mode="json"))

    async def drain() -> None:
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            return

    tasks = [asyncio.create_task(forward()), asyncio.create_task(drain())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        replaced = tasks[0] in done and tasks[0].exception() is None
    finally:
        subscription.unsubscribe()
        for task in tasks:
            task.cancel()

    if replaced:
        try:
            await websocket.close()
        except RuntimeError:
            pass
    logger.info("Chat stream closed", extra={"ticket_id": ticket_id, "replaced": replaced})


# ========== Attachments ==========

@router.get(
    "/tickets/{ticket_id}/attachments",
    response_model=List[AttachmentResponse],
    summary="List attachments, newest first"
)
async def list_attachments(
    ticket_id: str,
    manager: AttachmentManager = Depends(get_attachment_manager)
):
    return [AttachmentResponse.from_domain(a) for a in await manager.list(ticket_id)]


@router.post(
    "/tickets/{ticket_id}/attachments",
    response_model=AttachmentMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload an attachment",
    description="""
    Multipart upload. At most 10 MB; allowed types: JPEG, PNG, PDF, DOCX,
    XLSX, TXT.
    """,
    responses={400: {"description": "File too large or type not allowed"}}
)
async def upload_attachment(
    ticket_id: str,
    file: UploadFile = File(...),
    uploaded_by: str = Form(...),
    manager: AttachmentManager = Depends(get_attachment_manager)
):
    if not file.filename:
        raise ValidationException("File name is required")
    # Never buffer more than one byte past the limit
    if file.size is not None:
        AttachmentPolicy.check_size(file.filename, file.size)
    content = await file.read(AttachmentPolicy.MAX_FILE_SIZE + 1)
    AttachmentPolicy.check_size(file.filename, len(content))
    uploaded = UploadedFile(
        file_name=file.filename,
        content_type=file.content_type or "application/octet-stream",
        content=content
    )
    outcome = await manager.upload(uploaded, ticket_id, uploaded_by)
    return AttachmentMutationResponse(
        attachment=AttachmentResponse.from_domain(outcome.value),
        warnings=_warnings(outcome)
    )


@router.delete(
    "/attachments/{attachment_id}",
    response_model=AttachmentMutationResponse,
    summary="Delete an attachment"
)
async def delete_attachment(
    attachment_id: str,
    performed_by: str = Query(...),
    manager: AttachmentManager = Depends(get_attachment_manager)
):
    outcome = await manager.delete(attachment_id, performed_by)
    return AttachmentMutationResponse(
        attachment=AttachmentResponse.from_domain(outcome.value),
        warnings=_warnings(outcome)
    )


# ========== Audit ==========

@router.get(
    "/tickets/{ticket_id}/audit",
    response_model=List[AuditLogResponse],
    summary="Audit trail of a ticket, newest first"
)
async def ticket_audit(
    ticket_id: str,
    date_filter: DateFilterStr = Query("all"),
    limit: Optional[int] = Query(None, ge=1),
    audit: AuditLogger = Depends(get_audit_logger)
):
    entries = await audit.query(ticket_id, date_filter, limit)
    return [AuditLogResponse.from_domain(e) for e in entries]


@router.get(
    "/tickets/{ticket_id}/audit/stats",
    response_model=AuditStatsResponse,
    summary="Audit counts per date window and per action"
)
async def ticket_audit_stats(
    ticket_id: str,
    audit: AuditLogger = Depends(get_audit_logger)
):
    return AuditStatsResponse.from_domain(await audit.stats(ticket_id))


@router.get(
    "/audit",
    response_model=List[AuditLogResponse],
    summary="Audit trail across all tickets, newest first"
)
async def all_audit(
    date_filter: DateFilterStr = Query("all"),
    limit: Optional[int] = Query(100, ge=1, le=1000),
    audit: AuditLogger = Depends(get_audit_logger)
):
    entries = await audit.query_all(date_filter, limit)
    return [AuditLogResponse.from_domain(e) for e in entries]


# ========== Users & notifications ==========

@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user"
)
async def create_user(
    request: UserCreateRequest,
    directory: UserDirectory = Depends(get_user_directory)
):
    return UserResponse.from_domain(await directory.register(request.to_domain()))


@router.get(
    "/users",
    response_model=List[UserResponse],
    summary="List users ordered by email"
)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    directory: UserDirectory = Depends(get_user_directory)
):
    return [UserResponse.from_domain(u) for u in await directory.list_users(page, page_size)]


@router.get(
    "/users/{email}",
    response_model=UserResponse,
    summary="Get a user by email"
)
async def get_user(
    email: str,
    directory: UserDirectory = Depends(get_user_directory)
):
    return UserResponse.from_domain(await directory.get(email))


@router.put(
    "/users/{email}/role",
    response_model=UserResponse,
    summary="Change a user's role",
    description="""
    Sets the role and the department that goes with it. The new role takes
    effect for assignee selection and category notifications of tickets
    created or re-categorised afterwards.
    """,
    responses={404: {"description": "User or updater is unknown"}}
)
async def update_user_role(
    email: str,
    request: UserRoleUpdateRequest,
    directory: UserDirectory = Depends(get_user_directory)
):
    user = await directory.update_role(email, request.role, request.updated_by)
    return UserResponse.from_domain(user)


@router.get(
    "/users/{email}/notifications",
    response_model=List[NotificationResponse],
    summary="In-app notifications of a user, newest first"
)
async def list_notifications(
    email: str,
    limit: int = Query(50, ge=1, le=200),
    store: NotificationStore = Depends(get_notification_store)
):
    notifications = await store.list_for_user(email, limit)
    return [NotificationResponse.from_domain(n) for n in notifications]


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read"
)
async def mark_notification_read(
    notification_id: str,
    store: NotificationStore = Depends(get_notification_store)
):
    return NotificationResponse.from_domain(await store.mark_read(notification_id))


# ========== Ticket templates ==========

@router.post(
    "/templates",
    response_model=TicketTemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket template",
    responses={403: {"description": "Creator's role may not manage templates"}}
)
async def create_template(
    request: TicketTemplateCreateRequest,
    service: TemplateService = Depends(get_template_service)
):
    template = await service.create(
        request.name,
        request.category,
        request.subject,
        request.description,
        request.priority,
        request.created_by
    )
    return TicketTemplateResponse.from_domain(template)


@router.get(
    "/templates",
    response_model=List[TicketTemplateResponse],
    summary="List ticket templates, newest first"
)
async def list_templates(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: TemplateService = Depends(get_template_service)
):
    return [TicketTemplateResponse.from_domain(t) for t in await service.list_templates(page, page_size)]


@router.get(
    "/templates/category/{category}",
    response_model=List[TicketTemplateResponse],
    summary="Ticket templates of one category"
)
async def list_templates_by_category(
    category: str,
    service: TemplateService = Depends(get_template_service)
):
    return [TicketTemplateResponse.from_domain(t) for t in await service.list_by_category(category)]
