"""Object-storage backends that receive exported plan artifacts."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from ...config import settings
from ...errors import ExternalServiceError
from ...persistence.filesystem import FileStorage

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    """Stores a blob under ``folder/name`` and returns a URL it can be downloaded from."""

    @abstractmethod
    def upload(self, folder: str, name: str, payload: bytes, content_type: str) -> str:
        ...


class LocalObjectStorage(ObjectStorage):
    """Writes artifacts below ``<data_root>/outputs`` and serves them from the exports router."""

    def __init__(self, storage: FileStorage | None = None, public_base_url: str | None = None) -> None:
        self.storage = storage or FileStorage()
        self.public_base_url = (public_base_url or settings.export_public_base_url).rstrip("/")

    def upload(self, folder: str, name: str, payload: bytes, content_type: str) -> str:
        try:
            self.storage.write_bytes(self.storage.output_root / folder / name, payload)
        except OSError as exc:
            raise ExternalServiceError("object-storage", f"Failed to write {name}: {exc}") from exc
        return f"{self.public_base_url}/{folder}/{name}"


class SupabaseObjectStorage(ObjectStorage):
    def __init__(self, client: Any, bucket: str | None = None) -> None:
        self.client = client
        self.bucket = bucket or settings.export_bucket

    def upload(self, folder: str, name: str, payload: bytes, content_type: str) -> str:
        path = f"{folder}/{name}"
        try:
            bucket = self.client.storage.from_(self.bucket)
            bucket.upload(path, payload, {"content-type": content_type, "upsert": "true"})
            return bucket.get_public_url(path)
        except Exception as exc:
            logger.error(f"Upload of {path} to bucket '{self.bucket}' failed: {exc}")
            raise ExternalServiceError("object-storage", f"Failed to upload {name}: {exc}") from exc


def build_object_storage(backend: str | None = None) -> ObjectStorage:
    backend = backend or settings.export_backend
    if backend == "supabase":
        from ...db.supabase import get_supabase_client

        client = get_supabase_client()
        if client is not None:
            return SupabaseObjectStorage(client)
        logger.warning("Supabase export backend requested but not configured - writing exports locally")
    return LocalObjectStorage()
