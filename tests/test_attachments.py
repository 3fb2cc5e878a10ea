import pytest

from helpdesk.core import RepositoryException, ResourceNotFoundException, ValidationException
from helpdesk.tickets.domain import AttachmentPolicy, UploadedFile


def pdf(size: int = 2048, name: str = "payslip march.pdf") -> UploadedFile:
    return UploadedFile(file_name=name, content_type="application/pdf", content=b"%" * size)


def test_storage_path_sanitises_name(clock):
    path = AttachmentPolicy.storage_path("t-1", "my report (final).pdf", clock())
    assert path == f"t-1/{int(clock().timestamp() * 1000)}_my_report__final_.pdf"


async def test_upload_stores_blob_metadata_and_audit(world, it_ticket):
    outcome = await world.attachment_manager.upload(pdf(), it_ticket.id, "Jane.Doe@example.com")

    attachment = outcome.value
    assert outcome.ok
    assert attachment.uploaded_by == "jane.doe@example.com"
    assert attachment.file_size == 2048
    assert attachment.storage_path in world.storage.blobs
    assert attachment.file_url == f"/files/{attachment.storage_path}"
    audit = [e for e in world.audit_logs.for_ticket(it_ticket.id) if e.action == "attachment_added"]
    assert audit[0].details == "File uploaded: payslip march.pdf (2.0 KB)"


async def test_oversized_file_is_rejected_without_persistence(world, it_ticket):
    with pytest.raises(ValidationException) as exc:
        await world.attachment_manager.upload(
            pdf(size=AttachmentPolicy.MAX_FILE_SIZE + 1), it_ticket.id, "jane.doe@example.com"
        )
    assert exc.value.message == "File size exceeds 10MB limit"
    assert world.storage.blobs == {}
    assert world.attachments.attachments == {}


async def test_file_at_the_limit_is_accepted(world, it_ticket):
    outcome = await world.attachment_manager.upload(
        pdf(size=AttachmentPolicy.MAX_FILE_SIZE), it_ticket.id, "jane.doe@example.com"
    )
    assert outcome.value.file_size == AttachmentPolicy.MAX_FILE_SIZE


async def test_disallowed_type_is_rejected_without_persistence(world, it_ticket):
    exe = UploadedFile(file_name="setup.exe", content_type="application/x-msdownload", content=b"MZ")
    with pytest.raises(ValidationException):
        await world.attachment_manager.upload(exe, it_ticket.id, "jane.doe@example.com")
    assert world.storage.blobs == {}
    assert world.attachments.attachments == {}


async def test_unknown_ticket_or_uploader(world, it_ticket):
    with pytest.raises(ResourceNotFoundException):
        await world.attachment_manager.upload(pdf(), "missing", "jane.doe@example.com")
    with pytest.raises(ResourceNotFoundException):
        await world.attachment_manager.upload(pdf(), it_ticket.id, "ghost@example.com")
    assert world.storage.blobs == {}


async def test_metadata_failure_removes_blob(world, it_ticket):
    world.attachments.fail = True
    with pytest.raises(RepositoryException):
        await world.attachment_manager.upload(pdf(), it_ticket.id, "jane.doe@example.com")
    assert world.storage.blobs == {}


async def test_delete_removes_blob_and_metadata(world, it_ticket):
    uploaded = await world.attachment_manager.upload(pdf(), it_ticket.id, "jane.doe@example.com")

    outcome = await world.attachment_manager.delete(uploaded.value.id, "it.lead@example.com")

    assert outcome.ok
    assert world.storage.blobs == {}
    assert await world.attachment_manager.list(it_ticket.id) == []
    deleted = [e for e in world.audit_logs.for_ticket(it_ticket.id) if e.action == "attachment_deleted"]
    assert deleted[0].details == "File deleted: payslip march.pdf"


async def test_delete_survives_blob_failure(world, it_ticket):
    uploaded = await world.attachment_manager.upload(pdf(), it_ticket.id, "jane.doe@example.com")
    world.storage.fail_remove = True

    outcome = await world.attachment_manager.delete(uploaded.value.id, "it.lead@example.com")

    assert [w.step for w in outcome.warnings] == ["storage"]
    assert world.attachments.attachments == {}


async def test_delete_unknown_attachment(world):
    with pytest.raises(ResourceNotFoundException):
        await world.attachment_manager.delete("missing", "boss@example.com")


async def test_list_is_newest_first(world, clock, it_ticket):
    await world.attachment_manager.upload(pdf(name="first.pdf"), it_ticket.id, "jane.doe@example.com")
    clock.advance(minutes=1)
    await world.attachment_manager.upload(pdf(name="second.pdf"), it_ticket.id, "jane.doe@example.com")

    names = [a.file_name for a in await world.attachment_manager.list(it_ticket.id)]
    assert names == ["second.pdf", "first.pdf"]
