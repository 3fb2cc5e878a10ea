"""
Audit Logger
============

Appends immutable change records for tickets and serves the filtered read
path and statistics used by the ticket history views.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from helpdesk.config import DateFilter, VALID_DATE_FILTERS
from helpdesk.core import ResourceNotFoundException, ValidationException
from helpdesk.core.clock import Clock, utcnow
from helpdesk.tickets.application.interfaces import (
    IAuditLogRepository,
    IErrorLogRepository,
    IUserRepository,
)
from helpdesk.tickets.domain import AuditLog
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AuditStats:
    total: int
    today: int
    last_7_days: int
    last_30_days: int
    action_counts: Dict[str, int] = field(default_factory=dict)


def window_start(date_filter: str, now: datetime) -> Optional[datetime]:
    """
    First instant inside a date window.

    `today` starts at UTC midnight; the day windows are rolling.
    """
    if date_filter == DateFilter.TODAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_filter == DateFilter.LAST_7_DAYS:
        return now - timedelta(days=7)
    if date_filter == DateFilter.LAST_30_DAYS:
        return now - timedelta(days=30)
    return None


class AuditLogger:
    """Writes and reads the audit trail."""

    def __init__(
        self,
        audit_repository: IAuditLogRepository,
        user_repository: IUserRepository,
        error_log_repository: IErrorLogRepository,
        clock: Clock = utcnow
    ):
        self._audit_repo = audit_repository
        self._user_repo = user_repository
        self._error_log = error_log_repository
        self._clock = clock

    async def append(
        self,
        ticket_id: str,
        action: str,
        details: str,
        performed_by: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None
    ) -> AuditLog:
        """
        Append one entry.

        The performer must be a known user. Any failure is written to the
        error log before it propagates.

        Raises:
            ResourceNotFoundException: Performer is unknown
            RepositoryException: Insert failed
        """
        performer = performed_by.lower()
        try:
            if await self._user_repo.get_by_email(performer) is None:
                raise ResourceNotFoundException("User", performer)

            return await self._audit_repo.add(AuditLog(
                id=None,
                ticket_id=ticket_id,
                action=action,
                details=details,
                performed_by=performer,
                old_value=old_value,
                new_value=new_value,
                performed_at=self._clock()
            ))
        except Exception as e:
            await self._record_error(str(e), f"append: ticket_id={ticket_id}, performed_by={performer}")
            raise

    async def query(
        self,
        ticket_id: str,
        date_filter: str = DateFilter.ALL,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        """Entries for one ticket, newest first; limit applies after ordering."""
        since = self._since(date_filter)
        return await self._audit_repo.list(ticket_id=ticket_id, since=since, limit=limit)

    async def query_all(
        self,
        date_filter: str = DateFilter.ALL,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        """Entries across all tickets, newest first."""
        return await self._audit_repo.list(since=self._since(date_filter), limit=limit)

    async def stats(self, ticket_id: str) -> AuditStats:
        """Totals per date window plus an action histogram."""
        now = self._clock()
        return AuditStats(
            total=await self._audit_repo.count(ticket_id),
            today=await self._audit_repo.count(ticket_id, window_start(DateFilter.TODAY, now)),
            last_7_days=await self._audit_repo.count(ticket_id, window_start(DateFilter.LAST_7_DAYS, now)),
            last_30_days=await self._audit_repo.count(ticket_id, window_start(DateFilter.LAST_30_DAYS, now)),
            action_counts=await self._audit_repo.count_by_action(ticket_id)
        )

    def _since(self, date_filter: str) -> Optional[datetime]:
        if date_filter not in VALID_DATE_FILTERS:
            raise ValidationException(
                f"date_filter must be one of {VALID_DATE_FILTERS}",
                {"date_filter": date_filter}
            )
        return window_start(date_filter, self._clock())

    async def _record_error(self, message: str, context: str) -> None:
        try:
            await self._error_log.record(message, context)
        except Exception as e:
            logger.warning("Could not write error log", extra={"context": context, "error": str(e)})
