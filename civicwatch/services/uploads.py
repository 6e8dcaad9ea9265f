# civicwatch/services/uploads.py
from __future__ import annotations

import uuid
from pathlib import Path
from typing import Protocol

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

MAX_IMAGE_BYTES = 5 * 1024 * 1024


class UploadService(Protocol):
    """Stores raw bytes and returns a stable URL. Content is not inspected."""

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        ...


class LocalUploadService:
    def __init__(self, directory: str, base_url: str):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    def store(self, data: bytes, filename: str, content_type: str) -> str:
        ext = ALLOWED_IMAGE_TYPES.get(content_type) or Path(filename or "").suffix.lower() or ".bin"
        name = f"{uuid.uuid4().hex}{ext}"
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / name).write_bytes(data)
        return f"{self.base_url}/{name}"
