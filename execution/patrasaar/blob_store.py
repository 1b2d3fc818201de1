"""
Blob storage for uploaded document files.

Files are addressed by ``"{owner_id}/{document_id}.{ext}"``.
"""

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


def storage_path(owner_id: str, document_id: str, extension: str) -> str:
    return f"{owner_id}/{document_id}.{extension.lstrip('.').lower()}"


class BlobStore(Protocol):
    def put(self, path: str, data: bytes) -> None: ...

    def get(self, path: str) -> bytes: ...

    def delete(self, path: str) -> bool: ...


class LocalBlobStore:
    """Stores blobs as files under a root directory (``DOCUMENT_STORAGE_DIR``)."""

    def __init__(self, root: str = "document_files"):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if self.root.resolve() not in resolved.parents:
            raise ValueError(f"Blob path escapes storage root: {path}")
        return resolved

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"Stored {len(data)} bytes at {path}")

    def get(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        target.unlink()
        return True
