"""Local filesystem storage for generated images."""

from __future__ import annotations

import asyncio
import mimetypes
import time
from pathlib import Path

from ..config import StorageConfig

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}


def extension_for(mime_type: str) -> str:
    if mime_type in _EXTENSIONS:
        return _EXTENSIONS[mime_type]
    guessed = mimetypes.guess_extension(mime_type or "")
    return guessed.lstrip(".") if guessed else "png"


class LocalResultStorage:
    """Write results under ``root/{execution_id}/`` and build their public URLs."""

    def __init__(self, root: str | Path, public_base_url: str = "/results") -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: StorageConfig) -> "LocalResultStorage":
        return cls(config.directory, config.public_base_url)

    def _resolve(self, storage_path: str) -> Path:
        path = (self.root / storage_path).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Path escapes storage root: {storage_path}")
        return path

    def _write(self, storage_path: str, data: bytes) -> None:
        path = self._resolve(storage_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(
        self, execution_id: str, index: int, data: bytes, mime_type: str = "image/png"
    ) -> tuple[str, str]:
        """Store one image and return ``(storage_path, public_url)``."""
        timestamp = int(time.time() * 1000)
        storage_path = f"{execution_id}/{index}_{timestamp}.{extension_for(mime_type)}"
        await asyncio.to_thread(self._write, storage_path, data)
        return storage_path, f"{self.public_base_url}/{storage_path}"

    async def read(self, storage_path: str) -> bytes:
        return await asyncio.to_thread(self._resolve(storage_path).read_bytes)
