"""
Ticket Domain Value Objects
===========================

Immutable value objects and pure policies for the ticket lifecycle:
- CategoryPermissions: role to category ownership table
- AttachmentPolicy: size/type rules for uploaded files
- FieldChange / diff_fields: field-level change detection for updates
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from helpdesk.config import Role, TicketCategory, VALID_CATEGORIES, VALID_ROLES
from helpdesk.core import ValidationException


class CategoryPermissions:
    """
    Which roles may own tickets of which category.

    Consulted by assignee selection and by notification fan-out; role order
    follows VALID_ROLES so specific owners are enumerated before `owner`.
    """

    TABLE: Mapping[str, FrozenSet[str]] = {
        Role.HR_OWNER: frozenset({TicketCategory.HR, TicketCategory.OTHERS}),
        Role.IT_OWNER: frozenset({TicketCategory.IT_INFRASTRUCTURE}),
        Role.ADMIN_OWNER: frozenset({TicketCategory.ADMINISTRATION}),
        Role.ACCOUNTS_OWNER: frozenset({TicketCategory.ACCOUNTS}),
        Role.OWNER: frozenset(VALID_CATEGORIES),
    }

    @classmethod
    def categories_for(cls, role: str) -> FrozenSet[str]:
        return cls.TABLE.get(role, frozenset())

    @classmethod
    def can_own(cls, role: str, category: str) -> bool:
        return category in cls.categories_for(role)

    @classmethod
    def roles_for(cls, category: str) -> List[str]:
        """Roles permitted to own `category`, in role-table order."""
        return [role for role in VALID_ROLES if cls.can_own(role, category)]


@dataclass(frozen=True)
class UploadedFile:
    """A file received for upload, held in memory."""
    file_name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class AttachmentPolicy:
    """Size and MIME type rules for ticket attachments."""

    MAX_FILE_SIZE = 10 * 1024 * 1024

    ALLOWED_TYPES: Tuple[str, ...] = (
        "image/jpeg",
        "image/png",
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/plain",
    )

    _UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")

    @classmethod
    def check_size(cls, file_name: str, size: int) -> None:
        if size > cls.MAX_FILE_SIZE:
            raise ValidationException(
                "File size exceeds 10MB limit",
                {"file_name": file_name, "file_size": size}
            )

    @classmethod
    def validate(cls, file: UploadedFile) -> None:
        """Raise ValidationException when the file breaks the policy."""
        cls.check_size(file.file_name, file.size)
        if file.content_type not in cls.ALLOWED_TYPES:
            raise ValidationException(
                "File type not allowed. Allowed types: JPEG, PNG, PDF, DOCX, XLSX, TXT",
                {"file_name": file.file_name, "content_type": file.content_type}
            )

    @classmethod
    def storage_path(cls, ticket_id: str, file_name: str, now: datetime) -> str:
        """`<ticket_id>/<epoch_ms>_<sanitised name>`"""
        safe_name = cls._UNSAFE_CHARS.sub("_", file_name)
        return f"{ticket_id}/{int(now.timestamp() * 1000)}_{safe_name}"


# Fields a caller may change through update, in the order their changes
# are audited and notified.
UPDATABLE_FIELDS: Tuple[str, ...] = (
    "subject",
    "description",
    "category",
    "priority",
    "status",
    "assigned_to",
    "rating",
    "escalation_reason",
    "escalation_date",
    "sla_violated",
)

# Fields stamped by the lifecycle itself; persisted but never audited on
# their own.
DERIVED_FIELDS: Tuple[str, ...] = ("response_time", "resolution_time")


@dataclass(frozen=True)
class FieldChange:
    """One field whose value actually changed."""
    field: str
    old: Any
    new: Any

    @staticmethod
    def render(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    @property
    def old_text(self) -> Optional[str]:
        return self.render(self.old)

    @property
    def new_text(self) -> Optional[str]:
        return self.render(self.new)

    def describe(self) -> str:
        return f"{self.field} changed from {self.old_text or 'none'} to {self.new_text or 'none'}"


def diff_fields(
    current: Mapping[str, Any],
    changes: Mapping[str, Any],
    order: Iterable[str] = UPDATABLE_FIELDS
) -> List[FieldChange]:
    """
    Changes whose value differs from the current one, in `order`.

    Fields equal to their previous value are dropped.
    """
    return [
        FieldChange(field=name, old=current.get(name), new=changes[name])
        for name in order
        if name in changes and changes[name] != current.get(name)
    ]


def reject_unknown_fields(changes: Dict[str, Any]) -> None:
    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationException(
            f"Fields cannot be updated: {', '.join(unknown)}",
            {"fields": unknown}
        )
