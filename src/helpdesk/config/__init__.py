"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Chat provider credentials, webhook URLs, the application base URL and the
database URL are required; a missing value fails at startup.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    app_base_url: str = Field(..., description="Base URL used for ticket deep links")

    # ========== Database ==========
    database_url: str = Field(..., description="SQLAlchemy async connection URL")
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="YAML file with SLA rows seeded at startup"
    )
    sla_sweep_interval_seconds: int = Field(
        default=300,
        description="Seconds between SLA violation sweeps (0 disables)",
        ge=0
    )

    # ========== Retention ==========
    data_retention_days: int = Field(
        default=90,
        description="Tickets older than this are removed by the cleanup job",
        ge=1
    )
    cleanup_interval_hours: int = Field(
        default=24,
        description="Hours between retention cleanups (0 disables)",
        ge=0
    )

    # ========== Attachments ==========
    upload_folder: Path = Field(
        default=Path("instance/uploads"),
        description="Root folder for attachment blobs"
    )
    attachment_base_url: str = Field(
        default="/files",
        description="URL prefix under which stored blobs are served"
    )

    # ========== Google Chat ==========
    google_chat_api_key: str = Field(..., description="Google Chat API key")
    google_chat_token: str = Field(..., description="Google Chat API token")
    google_chat_api_url: str = Field(
        default="https://chat.googleapis.com/v1",
        description="Google Chat REST base URL"
    )
    google_chat_hr_webhook: str = Field(..., description="Webhook for HR (and Others)")
    google_chat_it_webhook: str = Field(..., description="Webhook for IT Infrastructure")
    google_chat_admin_webhook: str = Field(..., description="Webhook for Administration")
    google_chat_accounts_webhook: str = Field(..., description="Webhook for Accounts")
    chat_timeout_seconds: float = Field(
        default=5.0,
        description="Per-call timeout for chat provider requests",
        ge=0.1,
        le=30
    )
    chat_max_attempts: int = Field(
        default=3,
        description="Direct message attempts on rate limiting",
        ge=1,
        le=10
    )
    chat_backoff_seconds: float = Field(
        default=2.0,
        description="Backoff unit; delay = attempt x unit",
        ge=0
    )

    # ========== Notification dispatch ==========
    dispatch_secret: str = Field(..., description="Bearer secret of the dispatch endpoint")
    dispatch_relay_url: Optional[str] = Field(
        default=None,
        description="When set, chat notifications are relayed to this dispatch endpoint"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("app_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def category_webhooks(self) -> Dict[str, str]:
        """Webhook URL per ticket category. Others shares the HR channel."""
        return {
            TicketCategory.HR: self.google_chat_hr_webhook,
            TicketCategory.IT_INFRASTRUCTURE: self.google_chat_it_webhook,
            TicketCategory.ADMINISTRATION: self.google_chat_admin_webhook,
            TicketCategory.ACCOUNTS: self.google_chat_accounts_webhook,
            TicketCategory.OTHERS: self.google_chat_hr_webhook,
        }


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketCategory(str):
    """Ticket categories."""
    IT_INFRASTRUCTURE = "IT Infrastructure"
    HR = "HR"
    ADMINISTRATION = "Administration"
    ACCOUNTS = "Accounts"
    OTHERS = "Others"


class Priority(str):
    """Ticket priority levels."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    ESCALATED = "Escalated"
    CLOSED = "Closed"


class Role(str):
    """User roles."""
    EMPLOYEE = "employee"
    IT_OWNER = "it_owner"
    HR_OWNER = "hr_owner"
    ADMIN_OWNER = "admin_owner"
    ACCOUNTS_OWNER = "accounts_owner"
    OWNER = "owner"


class NotificationType(str):
    """Severity of an internal notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class AuditAction(str):
    """Audit log action tags."""
    CREATED = "created"
    UPDATED = "updated"
    ASSIGNED = "assigned"
    ESCALATED = "escalated"
    CLOSED = "closed"
    MESSAGE_ADDED = "message_added"
    ATTACHMENT_ADDED = "attachment_added"
    ATTACHMENT_DELETED = "attachment_deleted"


class DateFilter(str):
    """Audit log date windows."""
    ALL = "all"
    TODAY = "today"
    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"


# Sentinel status selecting the chat-message path of the dispatch endpoint
NOTIFICATION_STATUS = "Notification"

SYSTEM_USER_EMAIL = "system@support-ticket-system.com"
RETENTION_AUDIT_TICKET_ID = "00000000-0000-0000-0000-000000000000"


# ========== Lists for validation ==========

VALID_CATEGORIES = [
    TicketCategory.IT_INFRASTRUCTURE, TicketCategory.HR,
    TicketCategory.ADMINISTRATION, TicketCategory.ACCOUNTS,
    TicketCategory.OTHERS
]
VALID_PRIORITIES = [
    Priority.LOW, Priority.MEDIUM,
    Priority.HIGH, Priority.CRITICAL
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.ESCALATED, TicketStatus.CLOSED
]
VALID_ROLES = [
    Role.EMPLOYEE, Role.IT_OWNER, Role.HR_OWNER,
    Role.ADMIN_OWNER, Role.ACCOUNTS_OWNER, Role.OWNER
]

# Department recorded on a user when their role changes
ROLE_DEPARTMENTS = {
    Role.EMPLOYEE: "General",
    Role.IT_OWNER: "IT",
    Role.HR_OWNER: "HR",
    Role.ADMIN_OWNER: "Administration",
    Role.ACCOUNTS_OWNER: "Accounts",
    Role.OWNER: "Management",
}
# Roles allowed to create ticket templates
TEMPLATE_MANAGER_ROLES = [Role.HR_OWNER, Role.ADMIN_OWNER, Role.OWNER]

VALID_NOTIFICATION_TYPES = [
    NotificationType.INFO, NotificationType.SUCCESS,
    NotificationType.WARNING, NotificationType.ERROR
]
VALID_DATE_FILTERS = [
    DateFilter.ALL, DateFilter.TODAY,
    DateFilter.LAST_7_DAYS, DateFilter.LAST_30_DAYS
]
