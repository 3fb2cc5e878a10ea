"""
Attachment Blob Storage
=======================

Local filesystem storage for attachment blobs. Files live under the upload
folder at `<ticket_id>/<epoch_ms>_<name>` and are served from a URL prefix.
"""

import asyncio
from pathlib import Path

from helpdesk.core import StorageException
from helpdesk.tickets.application.interfaces import IBlobStorage
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class LocalBlobStorage(IBlobStorage):
    """Stores blobs on the local filesystem."""

    def __init__(self, root: Path, base_url: str = "/files"):
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root.resolve() not in target.parents:
            raise StorageException(f"Path escapes storage root: {path}", {"path": path})
        return target

    async def save(self, path: str, content: bytes, content_type: str) -> str:
        target = self._resolve(path)
        if target.exists():
            raise StorageException(f"Blob already exists: {path}", {"path": path})

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise StorageException(f"Could not store {path}: {e}", {"path": path}) from e

        logger.debug("Blob stored", extra={"path": path, "content_type": content_type, "size": len(content)})
        return f"{self._base_url}/{path}"

    async def remove(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except OSError as e:
            raise StorageException(f"Could not remove {path}: {e}", {"path": path}) from e
