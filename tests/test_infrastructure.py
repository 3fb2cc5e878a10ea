import json
import logging

import pytest

from helpdesk.config import Settings
from helpdesk.core import StorageException
from helpdesk.shared.infrastructure.logging import CustomJsonFormatter
from helpdesk.shared.infrastructure.scheduler import JobScheduler
from helpdesk.tickets.infrastructure import LocalBlobStorage


# ========== blob storage ==========

async def test_local_storage_round_trip(tmp_path):
    storage = LocalBlobStorage(tmp_path, "/files/")

    url = await storage.save("t-1/1700000000000_notes.txt", b"hello", "text/plain")

    assert url == "/files/t-1/1700000000000_notes.txt"
    assert (tmp_path / "t-1" / "1700000000000_notes.txt").read_bytes() == b"hello"

    await storage.remove("t-1/1700000000000_notes.txt")
    assert not (tmp_path / "t-1" / "1700000000000_notes.txt").exists()


async def test_local_storage_refuses_overwrite_and_escape(tmp_path):
    storage = LocalBlobStorage(tmp_path)
    await storage.save("t-1/a.txt", b"a", "text/plain")

    with pytest.raises(StorageException):
        await storage.save("t-1/a.txt", b"b", "text/plain")
    with pytest.raises(StorageException):
        await storage.save("../outside.txt", b"x", "text/plain")


async def test_removing_missing_blob_raises(tmp_path):
    with pytest.raises(StorageException):
        await LocalBlobStorage(tmp_path).remove("t-1/missing.txt")


# ========== logging ==========

def test_json_formatter_redacts_secrets():
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
    record = logging.LogRecord("helpdesk", logging.INFO, __file__, 1, "Dispatch relayed", None, None)
    record.dispatch_secret = "s3cret"
    record.google_chat_token = "abc"
    record.ticket_id = "T-42"

    output = json.loads(formatter.format(record))

    assert output["dispatch_secret"] == "***REDACTED***"
    assert output["google_chat_token"] == "***REDACTED***"
    assert output["ticket_id"] == "T-42"
    assert output["environment"] == "test"
    assert output["timestamp"]


# ========== scheduler ==========

async def test_scheduler_skips_disabled_jobs():
    scheduler = JobScheduler()

    async def job():
        return 0

    scheduler.add_interval_job("sla_sweep", job, 0)
    await scheduler.start()

    assert scheduler.is_running is False


async def test_scheduler_starts_and_stops():
    scheduler = JobScheduler()

    async def job():
        return 0

    scheduler.add_interval_job("retention_cleanup", job, 3600)
    await scheduler.start()
    assert scheduler.is_running is True

    await scheduler.stop()
    assert scheduler.is_running is False


async def test_failing_job_is_logged_not_raised(caplog):
    async def job():
        raise RuntimeError("database unavailable")

    wrapped = JobScheduler._wrap("sla_sweep", job)
    with caplog.at_level(logging.ERROR):
        await wrapped()

    assert "Background job failed" in caplog.text


# ========== settings ==========

def test_others_category_shares_hr_webhook():
    webhooks = Settings().category_webhooks
    assert webhooks["Others"] == webhooks["HR"] == "https://chat.example.com/hooks/hr"
    assert webhooks["IT Infrastructure"] == "https://chat.example.com/hooks/it"
