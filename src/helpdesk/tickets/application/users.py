"""
User Directory
==============

Registration, lookup, paging and role changes for helpdesk users.

A role decides which categories a user owns, so a role change moves them in
or out of assignee selection and category fan-out for new tickets.
"""

from typing import List

from helpdesk.config import ROLE_DEPARTMENTS, VALID_ROLES
from helpdesk.core import ResourceNotFoundException, ValidationException
from helpdesk.core.clock import Clock, utcnow
from helpdesk.tickets.application.interfaces import IErrorLogRepository, IUserRepository
from helpdesk.tickets.domain import User
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class UserDirectory:
    """Reads and maintains the user table."""

    def __init__(
        self,
        user_repository: IUserRepository,
        error_log_repository: IErrorLogRepository,
        clock: Clock = utcnow
    ):
        self._user_repo = user_repository
        self._error_log = error_log_repository
        self._clock = clock

    async def register(self, user: User) -> User:
        """
        Raises:
            ValidationException: Unknown role or the email is taken
        """
        self._check_role(user.role)
        if await self._user_repo.get_by_email(user.email) is not None:
            raise ValidationException(f"User already exists: {user.email}")
        if user.created_at is None:
            user.created_at = self._clock()
        saved = await self._user_repo.create(user)
        logger.info("User registered", extra={"user_id": saved.id, "role": saved.role})
        return saved

    async def get(self, email: str) -> User:
        user = await self._user_repo.get_by_email(email)
        if user is None:
            raise ResourceNotFoundException("User", email.lower())
        return user

    async def list_users(self, page: int = 1, page_size: int = 20) -> List[User]:
        """One page of users ordered by email."""
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationException(
                f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}",
                {"page": page, "page_size": page_size}
            )
        return await self._user_repo.list((page - 1) * page_size, page_size)

    async def update_role(self, email: str, role: str, updated_by: str) -> User:
        """
        Give a user a new role and the department that goes with it.

        Lookup and write failures are written to the error log before they
        propagate.

        Raises:
            ValidationException: Unknown role
            ResourceNotFoundException: User or updater is unknown
            RepositoryException: Update failed
        """
        self._check_role(role)
        email = email.lower()
        updater = updated_by.lower()
        try:
            if await self._user_repo.get_by_email(updater) is None:
                raise ResourceNotFoundException("User", updater)
            user = await self._user_repo.update_role(email, role, ROLE_DEPARTMENTS.get(role))
            if user is None:
                raise ResourceNotFoundException("User", email)
        except Exception as e:
            await self._record_error(str(e), f"update_role: email={email}, role={role}")
            raise

        logger.info(
            "User role updated",
            extra={"user_id": user.id, "role": role, "updated_by": updater}
        )
        return user

    @staticmethod
    def _check_role(role: str) -> None:
        if role not in VALID_ROLES:
            raise ValidationException(f"role must be one of {VALID_ROLES}", {"role": role})

    async def _record_error(self, message: str, context: str) -> None:
        try:
            await self._error_log.record(message, context)
        except Exception as e:
            logger.warning("Could not write error log", extra={"context": context, "error": str(e)})
