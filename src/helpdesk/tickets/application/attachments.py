"""
Attachment Manager
==================

Validates uploaded files against the attachment policy, stores blobs under
the owning ticket and keeps the metadata and audit trail in step.
"""

from typing import List

from helpdesk.config import AuditAction
from helpdesk.core import Outcome, ResourceNotFoundException, StorageException
from helpdesk.core.clock import Clock, utcnow
from helpdesk.tickets.application.audit import AuditLogger
from helpdesk.tickets.application.interfaces import (
    IAttachmentRepository,
    IBlobStorage,
    ITicketRepository,
    IUserRepository,
)
from helpdesk.tickets.domain import Attachment, AttachmentPolicy, UploadedFile
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class AttachmentManager:
    """Upload, delete and list ticket attachments."""

    def __init__(
        self,
        attachment_repository: IAttachmentRepository,
        ticket_repository: ITicketRepository,
        user_repository: IUserRepository,
        storage: IBlobStorage,
        audit: AuditLogger,
        clock: Clock = utcnow
    ):
        self._attachment_repo = attachment_repository
        self._ticket_repo = ticket_repository
        self._user_repo = user_repository
        self._storage = storage
        self._audit = audit
        self._clock = clock

    @staticmethod
    def validate(file: UploadedFile) -> None:
        """Raise ValidationException for oversized files or disallowed types."""
        AttachmentPolicy.validate(file)

    async def upload(self, file: UploadedFile, ticket_id: str, uploaded_by: str) -> Outcome[Attachment]:
        """
        Store a file against a ticket.

        Nothing is stored when validation fails. If the metadata insert
        fails the stored blob is removed again before the error propagates.

        Raises:
            ValidationException: File breaks the attachment policy
            ResourceNotFoundException: Ticket or uploader is unknown
            StorageException: Blob could not be stored
            RepositoryException: Metadata could not be saved
        """
        self.validate(file)
        uploader = uploaded_by.lower()

        if await self._ticket_repo.get(ticket_id) is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if await self._user_repo.get_by_email(uploader) is None:
            raise ResourceNotFoundException("User", uploader)

        now = self._clock()
        path = AttachmentPolicy.storage_path(ticket_id, file.file_name, now)
        url = await self._storage.save(path, file.content, file.content_type)

        try:
            attachment = await self._attachment_repo.add(Attachment(
                id=None,
                ticket_id=ticket_id,
                file_name=file.file_name,
                file_size=file.size,
                file_type=file.content_type,
                uploaded_by=uploader,
                file_url=url,
                storage_path=path,
                uploaded_at=now
            ))
        except Exception:
            await self._remove_blob(path)
            raise

        logger.info(
            "Attachment uploaded",
            extra={"ticket_id": ticket_id, "attachment_id": attachment.id, "file_size": file.size}
        )

        outcome = Outcome(attachment)
        try:
            await self._audit.append(
                ticket_id,
                AuditAction.ATTACHMENT_ADDED,
                f"File uploaded: {file.file_name} ({file.size / 1024:.1f} KB)",
                uploader
            )
        except Exception as e:
            logger.warning("Attachment audit failed", extra={"ticket_id": ticket_id, "error": str(e)})
            outcome.warn("audit", e, ticket_id=ticket_id)
        return outcome

    async def delete(self, attachment_id: str, performed_by: str) -> Outcome[Attachment]:
        """
        Delete an attachment.

        Blob removal is best-effort; the metadata is deleted regardless.
        """
        attachment = await self._attachment_repo.get(attachment_id)
        if attachment is None:
            raise ResourceNotFoundException("Attachment", attachment_id)

        outcome = Outcome(attachment)
        try:
            await self._storage.remove(attachment.storage_path)
        except StorageException as e:
            logger.warning(
                "Failed to delete blob",
                extra={"attachment_id": attachment_id, "path": attachment.storage_path, "error": str(e)}
            )
            outcome.warn("storage", e, attachment_id=attachment_id)

        await self._attachment_repo.delete(attachment_id)

        try:
            await self._audit.append(
                attachment.ticket_id,
                AuditAction.ATTACHMENT_DELETED,
                f"File deleted: {attachment.file_name}",
                performed_by
            )
        except Exception as e:
            logger.warning("Attachment audit failed", extra={"attachment_id": attachment_id, "error": str(e)})
            outcome.warn("audit", e, attachment_id=attachment_id)
        return outcome

    async def list(self, ticket_id: str) -> List[Attachment]:
        """Attachments of a ticket, newest first."""
        return await self._attachment_repo.list_for_ticket(ticket_id)

    async def _remove_blob(self, path: str) -> None:
        try:
            await self._storage.remove(path)
        except StorageException as e:
            logger.error("Compensating blob removal failed", extra={"path": path, "error": str(e)})
