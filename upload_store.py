import time
from pathlib import Path
from typing import Iterable, Union

from constants import UPLOAD_CLEANUP_INTERVAL_MS, UPLOAD_KEEP_FILES
from logging_config import get_logger
from tasks import PeriodicTask

logger = get_logger(__name__)


class UploadStore:
    """Flat directory of uploaded images, named by upload time."""

    def __init__(self, directory: Union[str, Path], keep: Iterable[str] = UPLOAD_KEEP_FILES):
        self.directory = Path(directory)
        self.keep = frozenset(keep)

    def ensure_dir(self):
        if not self.directory.exists():
            self.directory.mkdir(parents=True)
            logger.info(f"Created upload directory {self.directory}")

    def _next_name(self, original_filename: str) -> str:
        suffix = Path(original_filename or "").suffix.lower()
        stem = str(int(time.time() * 1000))
        name = f"{stem}{suffix}"
        counter = 1
        while (self.directory / name).exists():
            name = f"{stem}-{counter}{suffix}"
            counter += 1
        return name

    def save(self, original_filename: str, data: bytes) -> str:
        """Write ``data`` and return the stored file name."""
        self.ensure_dir()
        name = self._next_name(original_filename)
        (self.directory / name).write_bytes(data)
        logger.info(f"Stored upload {name} ({len(data)} bytes)")
        return name

    def clear(self) -> int:
        """Delete every stored file except the keep list. Returns how many were removed."""
        try:
            entries = list(self.directory.iterdir())
        except OSError as e:
            logger.error(f"Failed to read uploads directory {self.directory}: {e}")
            return 0

        removed = 0
        for path in entries:
            if path.name in self.keep or not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.error(f"Failed to delete file {path}: {e}")
        return removed


class UploadCleaner(PeriodicTask):
    name = "upload cleanup"

    def __init__(self, store: UploadStore, interval_ms: int = UPLOAD_CLEANUP_INTERVAL_MS):
        super().__init__(interval_ms)
        self.store = store

    async def run_once(self):
        logger.info(f"Running cleanup job: Clearing {self.store.directory} directory...")
        removed = self.store.clear()
        logger.debug(f"Cleanup removed {removed} file(s)")
