from __future__ import annotations

import hashlib
import logging
import threading
from pathlib import Path
from typing import Protocol

from solarflow.config import settings

logger = logging.getLogger("solarflow.backup")


class ContentStoreError(RuntimeError):
    pass


class ContentStore(Protocol):
    def upload(self, tenant_id: str, key: str, content: bytes) -> str: ...

    def download(self, key: str) -> bytes: ...

    def delete(self, key: str) -> bool: ...

    def storage_path(self, key: str) -> str: ...

    def key_for(self, storage_path: str) -> str: ...


def _clean_key(key: str) -> str:
    k = str(key or "").strip().lstrip("/")
    if not k or any(part in {"", ".", ".."} for part in k.split("/")):
        raise ContentStoreError(f"Invalid storage key: {key!r}")
    return k


class MockContentStore:
    """Deterministic in-memory store used when no real store is configured."""

    scheme = "mock"

    def __init__(self, bucket: str | None = None) -> None:
        self.bucket = bucket or settings.content_store_bucket
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def storage_path(self, key: str) -> str:
        return f"{self.scheme}://{self.bucket}/{_clean_key(key)}"

    def key_for(self, storage_path: str) -> str:
        prefix = f"{self.scheme}://{self.bucket}/"
        if not storage_path.startswith(prefix):
            raise ContentStoreError(f"Path {storage_path!r} is not in bucket {self.bucket!r}")
        return storage_path[len(prefix):]

    def upload(self, tenant_id: str, key: str, content: bytes) -> str:
        k = _clean_key(key)
        with self._lock:
            self._objects[k] = bytes(content)
        logger.debug("content_uploaded", extra={"tenant_id": tenant_id, "key": k, "size_bytes": len(content)})
        return self.storage_path(k)

    def download(self, key: str) -> bytes:
        k = _clean_key(key)
        with self._lock:
            try:
                return self._objects[k]
            except KeyError:
                raise ContentStoreError(f"Object not found: {k}") from None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._objects.pop(_clean_key(key), None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)

    def clear(self) -> None:
        with self._lock:
            self._objects.clear()


class FilesystemContentStore:
    """Objects as files under the storage root; writes go through a tmp file + rename."""

    scheme = "file"

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or storage_root()).resolve()

    def _path(self, key: str) -> Path:
        target = (self.root / _clean_key(key)).resolve()
        if not target.is_relative_to(self.root):
            raise ContentStoreError("Invalid object path")
        return target

    def storage_path(self, key: str) -> str:
        return f"{self.scheme}://{self._path(key).as_posix()}"

    def key_for(self, storage_path: str) -> str:
        prefix = f"{self.scheme}://"
        if not storage_path.startswith(prefix):
            raise ContentStoreError(f"Not a filesystem path: {storage_path!r}")
        path = Path(storage_path[len(prefix):]).resolve()
        if not path.is_relative_to(self.root):
            raise ContentStoreError("Path is outside the storage root")
        return path.relative_to(self.root).as_posix()

    def upload(self, tenant_id: str, key: str, content: bytes) -> str:
        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + ".tmp")
        tmp_path.write_bytes(content)
        tmp_path.replace(target)
        logger.debug(
            "content_uploaded",
            extra={
                "tenant_id": tenant_id,
                "key": key,
                "size_bytes": len(content),
                "checksum_sha256": hashlib.sha256(content).hexdigest(),
            },
        )
        return self.storage_path(key)

    def download(self, key: str) -> bytes:
        target = self._path(key)
        if not target.exists():
            raise ContentStoreError(f"Object not found: {key}")
        return target.read_bytes()

    def delete(self, key: str) -> bool:
        target = self._path(key)
        if not target.exists():
            return False
        target.unlink()
        return True


def storage_root() -> Path:
    """Return the absolute storage root for this backend instance."""

    root = Path(settings.storage_dir)
    if root.is_absolute():
        return root

    # backend/solarflow/services/... -> backend/
    backend_root = Path(__file__).resolve().parents[2]
    return (backend_root / root).resolve()


_store: ContentStore | None = None


def get_content_store() -> ContentStore:
    global _store
    if _store is None:
        if settings.content_store_backend == "filesystem":
            _store = FilesystemContentStore()
        else:
            _store = MockContentStore()
    return _store


def set_content_store(store: ContentStore | None) -> None:
    global _store
    _store = store
