"""Blob storage for synthesized audio files."""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


def audio_blob_name(tour_id: str, index: int) -> str:
    """Blob file name for a unit; index -1 is the intro."""
    if index < 0:
        return f"{tour_id}_intro.mp3"
    return f"{tour_id}_stop_{index}.mp3"


class BlobStore(Protocol):
    async def store(self, name: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        """Store a blob and return its public URL."""
        ...


class InMemoryBlobStore:
    """Blob store keeping bytes in a dict (tests and local runs)."""

    def __init__(self, public_base_url: str = "memory://audio") -> None:
        self.public_base_url = public_base_url.rstrip("/")
        self.blobs: dict[str, bytes] = {}

    async def store(self, name: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        self.blobs[name] = data
        return f"{self.public_base_url}/{name}"


class LocalBlobStore:
    """Filesystem blob store served under a public base URL.

    Writes go through a worker thread so the event loop is not blocked.
    Overwriting an existing blob is allowed (re-runs are idempotent).
    """

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    async def store(self, name: str, data: bytes, content_type: str = "audio/mpeg") -> str:
        path = self.root / name
        await asyncio.to_thread(self._write, path, data)
        logger.info("Stored %s (%d bytes, %s)", path, len(data), content_type)
        return f"{self.public_base_url}/{name}"

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
