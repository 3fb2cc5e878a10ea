"""
Ticket Templates
================

Reusable subject, description and priority presets per category. Any user
may read them; HR, administration and management owners create them.
"""

from typing import List

from helpdesk.config import TEMPLATE_MANAGER_ROLES, VALID_CATEGORIES, VALID_PRIORITIES
from helpdesk.core import PermissionDeniedException, ResourceNotFoundException, ValidationException
from helpdesk.core.clock import Clock, utcnow
from helpdesk.tickets.application.interfaces import (
    IErrorLogRepository,
    ITicketTemplateRepository,
    IUserRepository,
)
from helpdesk.tickets.domain import TicketTemplate
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class TemplateService:
    """Creates and lists ticket templates."""

    def __init__(
        self,
        template_repository: ITicketTemplateRepository,
        user_repository: IUserRepository,
        error_log_repository: IErrorLogRepository,
        clock: Clock = utcnow
    ):
        self._template_repo = template_repository
        self._user_repo = user_repository
        self._error_log = error_log_repository
        self._clock = clock

    async def create(
        self,
        name: str,
        category: str,
        subject: str,
        description: str,
        priority: str,
        created_by: str
    ) -> TicketTemplate:
        """
        Raises:
            ValidationException: Blank name or subject, unknown category or priority
            ResourceNotFoundException: Creator is unknown
            PermissionDeniedException: Creator's role may not manage templates
        """
        _check_category(category)
        if priority not in VALID_PRIORITIES:
            raise ValidationException(f"priority must be one of {VALID_PRIORITIES}", {"priority": priority})
        if not name.strip() or not subject.strip():
            raise ValidationException("Template name and subject are required")

        creator = created_by.lower()
        try:
            user = await self._user_repo.get_by_email(creator)
            if user is None:
                raise ResourceNotFoundException("User", creator)
            if user.role not in TEMPLATE_MANAGER_ROLES:
                raise PermissionDeniedException(
                    f"Role {user.role} may not create ticket templates",
                    {"created_by": creator}
                )
            template = await self._template_repo.add(TicketTemplate(
                id=None,
                name=name.strip(),
                category=category,
                subject=subject,
                description=description,
                priority=priority,
                created_by=creator,
                created_at=self._clock()
            ))
        except Exception as e:
            await self._record_error(str(e), f"create_template: name={name}")
            raise

        logger.info(
            "Ticket template created",
            extra={"template_id": template.id, "category": category, "created_by": creator}
        )
        return template

    async def list_templates(self, page: int = 1, page_size: int = 20) -> List[TicketTemplate]:
        """Newest first."""
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationException(
                f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}",
                {"page": page, "page_size": page_size}
            )
        return await self._template_repo.list((page - 1) * page_size, page_size)

    async def list_by_category(self, category: str) -> List[TicketTemplate]:
        _check_category(category)
        return await self._template_repo.list_by_category(category)

    async def _record_error(self, message: str, context: str) -> None:
        try:
            await self._error_log.record(message, context)
        except Exception as e:
            logger.warning("Could not write error log", extra={"context": context, "error": str(e)})


def _check_category(category: str) -> None:
    if category not in VALID_CATEGORIES:
        raise ValidationException(f"category must be one of {VALID_CATEGORIES}", {"category": category})
