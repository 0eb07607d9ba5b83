import logging
import shutil

import aiofiles
from pathlib import Path

from photobatch.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class LocalStorage:
    """
    Local file storage for generated images.
    Served by the app under ``public_base_url``.
    """

    def __init__(self, base_path: Path | None = None, public_base_url: str | None = None):
        self.base_path = Path(base_path or settings.storage_path)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self._ensure_base_path()

    def _ensure_base_path(self) -> None:
        """Ensure the base storage directory exists."""
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, path: str) -> Path:
        """Get the full filesystem path for a storage path, refusing escapes."""
        full_path = (self.base_path / path).resolve()
        if not full_path.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Storage path escapes base directory: {path}")
        return full_path

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str = "image/jpeg",
    ) -> str:
        """Write an object (overwriting) and return its public URL."""
        full_path = self._get_full_path(path)

        # Ensure parent directories exist
        full_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(full_path, "wb") as f:
            await f.write(data)

        return self.get_url(path)

    async def read_object(self, path: str) -> bytes:
        full_path = self._get_full_path(path)

        if not full_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        async with aiofiles.open(full_path, "rb") as f:
            return await f.read()

    def get_url(self, path: str) -> str:
        return f"{self.public_base_url}/{path}"

    async def delete_object(self, path: str) -> bool:
        """Delete an object; False when it was already gone or could not be removed."""
        try:
            full_path = self._get_full_path(path)
            if not full_path.exists():
                return False
            full_path.unlink()
            return True
        except (OSError, ValueError) as e:
            logger.warning("Failed to delete storage object %s: %s", path, e)
            return False

    async def delete_prefix(self, prefix: str) -> int:
        """Remove everything under a directory prefix, returning the file count."""
        full_path = self._get_full_path(prefix)
        if not full_path.is_dir():
            return 0
        count = sum(1 for p in full_path.rglob("*") if p.is_file())
        shutil.rmtree(full_path, ignore_errors=True)
        return count

    async def ensure_storage_exists(self) -> None:
        """Ensure storage is ready (create directories)."""
        self._ensure_base_path()
        (self.base_path / "generations").mkdir(exist_ok=True)


# Singleton instance
storage = LocalStorage()


def get_storage() -> LocalStorage:
    """FastAPI dependency for object storage."""
    return storage
