"""
Helpdesk Ticketing - Main Application
=====================================

Ticket lifecycle and notification service.

Modules:
- Tickets: lifecycle, chat, attachments, audit trail, in-app notifications
- SLA: due dates and SLA configuration
- Notifications: Google Chat direct messages and category webhooks

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, blob storage, chat provider clients
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

# Configuration and Core
from helpdesk.config import Role, Settings, SYSTEM_USER_EMAIL, get_settings
from helpdesk.core import ApplicationException

# Infrastructure
from helpdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)

# SLA Module
from helpdesk.sla.application import SLAService
from helpdesk.sla.infrastructure import SQLAlchemySLAConfigRepository, YAMLSLASeedLoader

# Ticket Module
from helpdesk.tickets.domain import User
from helpdesk.tickets.infrastructure import (
    ChatSubscriptionRegistry,
    InProcessChatTransport,
    LocalBlobStorage,
    SQLAlchemyErrorLogRepository,
    SQLAlchemyUserRepository,
)

# Notifications Module
from helpdesk.notifications.application import (
    ChatDispatcher,
    ChatNotificationGateway,
    LocalDispatchTransport,
)
from helpdesk.notifications.domain import ChatMessageFormatter
from helpdesk.notifications.infrastructure import DispatchRelayClient, GoogleChatClient

# Module Routers
from helpdesk.notifications.interfaces import notifications_router
from helpdesk.sla.interfaces import sla_router
from helpdesk.tickets.interfaces import build_lifecycle_service, tickets_router

# Shared
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
    request_validation_handler,
)
from helpdesk.shared.infrastructure.logging import get_logger, log_latency, setup_logging
from helpdesk.shared.infrastructure.scheduler import JobScheduler

logger = get_logger(__name__)


async def ensure_system_user() -> None:
    """The retention job audits as the system user, so it must exist."""
    async with get_session_context() as session:
        users = SQLAlchemyUserRepository(session)
        if await users.get_by_email(SYSTEM_USER_EMAIL) is None:
            await users.create(User(id=None, email=SYSTEM_USER_EMAIL, name="System", role=Role.EMPLOYEE))
            logger.info("System user created", extra={"email": SYSTEM_USER_EMAIL})


async def seed_sla_configs(settings: Settings) -> None:
    configs = YAMLSLASeedLoader(settings.sla_config_path).load()
    async with get_session_context() as session:
        await SLAService(SQLAlchemySLAConfigRepository(session)).seed(configs)


async def record_dispatch_error(message: str, context: str) -> None:
    async with get_session_context() as session:
        await SQLAlchemyErrorLogRepository(session).record(message, context)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Ensure the system user, seed SLA configuration
    4. Build chat clients, dispatcher and notification gateway
    5. Create the chat subscription registry and blob storage
    6. Start background jobs (retention cleanup, SLA sweep)

    SHUTDOWN:
    1. Stop background jobs
    2. Release chat subscriptions
    3. Close chat clients
    4. Close database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Helpdesk Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database(
        settings.database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow
    )
    # Development convenience; production schemas come from migrations
    await create_tables()

    await ensure_system_user()
    logger.info("Loading SLA configuration")
    await seed_sla_configs(settings)

    # Chat notifications
    chat_client = GoogleChatClient(
        settings.google_chat_api_url,
        settings.google_chat_api_key,
        settings.google_chat_token,
        timeout=settings.chat_timeout_seconds
    )
    dispatcher = ChatDispatcher(
        chat_client,
        settings.category_webhooks,
        ChatMessageFormatter(settings.app_base_url),
        max_attempts=settings.chat_max_attempts,
        backoff_seconds=settings.chat_backoff_seconds,
        error_recorder=record_dispatch_error
    )
    relay: Optional[DispatchRelayClient] = None
    if settings.dispatch_relay_url:
        relay = DispatchRelayClient(settings.dispatch_relay_url, settings.dispatch_secret)
        gateway = ChatNotificationGateway(relay)
        logger.info("Chat notifications relayed", extra={"relay_url": settings.dispatch_relay_url})
    else:
        gateway = ChatNotificationGateway(LocalDispatchTransport(dispatcher))

    chat_transport = InProcessChatTransport()
    chat_registry = ChatSubscriptionRegistry(chat_transport)

    # Store services in app state for dependency injection
    app.state.dispatcher = dispatcher
    app.state.gateway = gateway
    app.state.chat_transport = chat_transport
    app.state.chat_registry = chat_registry
    settings.upload_folder.mkdir(parents=True, exist_ok=True)
    app.state.storage = LocalBlobStorage(settings.upload_folder, settings.attachment_base_url)

    # Background jobs
    async def retention_cleanup_job() -> int:
        async with get_session_context() as session:
            service = build_lifecycle_service(
                session, gateway, chat_transport, settings.data_retention_days
            )
            with log_latency(logger, "retention_cleanup"):
                outcome = await service.cleanup_old_tickets()
        return outcome.value

    async def sla_sweep_job() -> int:
        async with get_session_context() as session:
            service = build_lifecycle_service(session, gateway, chat_transport)
            with log_latency(logger, "sla_sweep"):
                outcome = await service.mark_sla_violations()
        return outcome.value

    scheduler = JobScheduler()
    scheduler.add_interval_job("retention_cleanup", retention_cleanup_job, settings.cleanup_interval_hours * 3600)
    scheduler.add_interval_job("sla_sweep", sla_sweep_job, settings.sla_sweep_interval_seconds)
    await scheduler.start()
    app.state.scheduler = scheduler

    logger.info("Helpdesk Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk Service")

    await scheduler.stop()
    chat_registry.close()
    await chat_client.close()
    if relay is not None:
        await relay.close()
    await close_database()

    logger.info("Helpdesk Service shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application. Missing required settings fail here."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Helpdesk Ticketing API",
        description="""
    ## Ticket Lifecycle & Notification Service

    ### 🎫 Tickets
    - `POST /tickets`, `GET /tickets`, `GET|PATCH /tickets/{id}`
    - `POST /tickets/{id}/escalate`, `POST /tickets/{id}/rating`
    - `GET|POST /tickets/{id}/messages`, `WS /tickets/{id}/messages/ws`
    - `GET|POST /tickets/{id}/attachments`, `DELETE /attachments/{id}`
    - `GET /tickets/{id}/audit`, `GET /tickets/{id}/audit/stats`, `GET /audit`
    - `POST /users`, `GET /users/{email}`, `GET /users/{email}/notifications`,
      `POST /notifications/{id}/read`

    ### ⏱️ SLA
    - `GET|PUT /sla/configs`

    **Default resolution times:** Critical 4h, High 8h, Medium 24h, Low 72h

    ### 💬 Chat Notifications
    - `POST /notifications/dispatch` (bearer token)
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(tickets_router)
    app.include_router(sla_router)
    app.include_router(notifications_router)

    # Stored attachment blobs
    app.mount(
        settings.attachment_base_url,
        StaticFiles(directory=settings.upload_folder, check_dir=False),
        name="files"
    )

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "database": "connected",
                            "scheduler": "running",
                            "chat_subscriptions": 0
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Returns database connectivity, scheduler state and the number of
        live chat subscriptions.
        """
        state = request.app.state
        checks = {"database": "connected"}
        try:
            async with get_session_context() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            checks["database"] = f"error: {e}"

        scheduler = getattr(state, "scheduler", None)
        checks["scheduler"] = "running" if scheduler and scheduler.is_running else "stopped"
        registry = getattr(state, "chat_registry", None)
        checks["chat_subscriptions"] = len(registry) if registry is not None else 0

        return {
            "status": "healthy" if checks["database"] == "connected" else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "helpdesk.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.environment == "development",
        log_level="info"
    )
