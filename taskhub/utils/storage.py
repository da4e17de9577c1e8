import logging
import re
from pathlib import Path
from typing import Iterable, List

from ..core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


class StorageError(Exception):
    """Raised when an attachment object cannot be stored or removed."""


def safe_filename(filename: str) -> str:
    name = Path(filename or "file").name
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "file"


class AttachmentStorage:
    """Object store for task attachments, backed by a local directory"""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root != target and self.root not in target.parents:
            raise StorageError(f"Invalid storage path: {path}")
        return target

    @staticmethod
    def build_path(task_id: int, timestamp: int, index: int, filename: str) -> str:
        return f"tasks/{task_id}/{timestamp}-{index}-{safe_filename(filename)}"

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"Stored attachment {path} ({len(data)} bytes)")
        return path

    def remove(self, paths: Iterable[str]) -> List[str]:
        removed = []
        for path in paths:
            target = self._resolve(path)
            if target.exists():
                target.unlink()
                removed.append(path)
            else:
                logger.warning(f"Attachment {path} already missing from storage")
        return removed

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def local_path(self, path: str) -> Path:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Object not found: {path}")
        return target

    def size_of_prefix(self, prefix: str) -> int:
        base = self._resolve(prefix)
        if not base.exists():
            return 0
        return sum(f.stat().st_size for f in base.rglob("*") if f.is_file())


_storage = None


def get_storage() -> AttachmentStorage:
    global _storage
    if _storage is None:
        _storage = AttachmentStorage(settings.attachment_dir)
    return _storage


def set_storage(storage: AttachmentStorage) -> None:
    global _storage
    _storage = storage
