"""
Document Store Adapter

Opaque blob storage for uploaded documents. The service only needs
``put``, ``get`` and ``delete``; the default implementation writes to a
local directory, running blocking file I/O in a worker thread.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Protocol
from uuid import UUID

from admissions.core.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class DocumentStoreError(Exception):
    """Raised when the underlying storage fails."""


class DocumentStore(Protocol):
    async def put(self, key: str, content: bytes, content_type: str) -> str: ...

    async def get(self, ref: str) -> bytes: ...

    async def delete(self, ref: str) -> None: ...


def build_storage_key(enrollment_id: UUID, kind: str, file_name: str) -> str:
    """
    Build the storage key for an uploaded document.

    Layout: ``enrollments/{enrollment_id}/{kind}_{file_name}`` with the file
    name reduced to a safe character set.
    """
    safe_name = _UNSAFE_CHARS.sub("_", Path(file_name).name).strip("._") or "file"
    return f"enrollments/{enrollment_id}/{kind}_{safe_name}"


class LocalDocumentStore:
    """Stores documents under a root directory on the local filesystem."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _path_for(self, ref: str) -> Path:
        path = (self.root / ref).resolve()
        if not path.is_relative_to(self.root):
            raise DocumentStoreError(f"Storage reference escapes the store root: {ref}")
        return path

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            raise DocumentStoreError(f"Failed to store {key}: {e}") from e
        logger.info(f"Stored document {key} ({len(content)} bytes, {content_type})")
        return key

    async def get(self, ref: str) -> bytes:
        path = self._path_for(ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise DocumentStoreError(f"Failed to read {ref}: {e}") from e

    async def delete(self, ref: str) -> None:
        path = self._path_for(ref)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise DocumentStoreError(f"Failed to delete {ref}: {e}") from e
        logger.info(f"Deleted document {ref}")


_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Return the process-wide document store (local filesystem by default)."""
    global _store
    if _store is None:
        _store = LocalDocumentStore(settings.document_storage_path)
    return _store


def set_document_store(store: DocumentStore | None) -> None:
    """Replace the process-wide document store (``None`` resets to the default)."""
    global _store
    _store = store
