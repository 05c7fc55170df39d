"""
Storage Abstraction Layer - The Bridge Pattern

Turns raw uploaded bytes into a public URL the inference provider can fetch.
LocalStorage writes to disk and relies on the app serving /static/storage;
CloudinaryStorage pushes to Cloudinary with the official SDK.
"""

import io
import uuid
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from datetime import datetime

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from fastapi.concurrency import run_in_threadpool

from src.core.config import settings, Settings
from src.core.exceptions import UploadError
from src.core.logging import get_logger
from src.core.metrics import record_upload

logger = get_logger(__name__)


class IStorage(ABC):
    """Interface for storage operations - The Bridge"""

    backend_name = "abstract"

    @abstractmethod
    async def upload(
        self,
        file_data: bytes,
        content_type: str = "image/png",
        folder: str = "uploads"
    ) -> str:
        """
        Upload a file and return a public URL for it.

        Args:
            file_data: Raw bytes of the file
            content_type: MIME type of the file
            folder: Subfolder/prefix to group uploads

        Returns:
            Publicly reachable URL

        Raises:
            UploadError: if the backend cannot store the file
        """
        pass


def _unique_filename(content_type: str) -> str:
    """Generate a unique filename with timestamp and UUID."""
    ext = mimetypes.guess_extension(content_type) or ".bin"
    unique_id = uuid.uuid4().hex[:12]
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{unique_id}{ext}"


class LocalStorage(IStorage):
    """Local filesystem storage served by the app under /static/storage."""

    backend_name = "local"

    def __init__(self, base_path: str = "./data/storage", public_base_url: str = "http://localhost:8000"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    async def upload(
        self,
        file_data: bytes,
        content_type: str = "image/png",
        folder: str = "uploads"
    ) -> str:
        folder_path = self.base_path / folder
        unique_filename = _unique_filename(content_type)

        try:
            folder_path.mkdir(parents=True, exist_ok=True)
            with open(folder_path / unique_filename, "wb") as f:
                f.write(file_data)
        except OSError as e:
            record_upload(self.backend_name, "error")
            raise UploadError(
                f"Failed to write upload to local storage: {e}",
                backend=self.backend_name
            ) from e

        record_upload(self.backend_name, "success")
        storage_key = f"{folder}/{unique_filename}"
        logger.info("image_uploaded", backend=self.backend_name, storage_key=storage_key)

        return f"{self.public_base_url}/static/storage/{storage_key}"


class CloudinaryStorage(IStorage):
    """Cloudinary image storage through the official SDK."""

    backend_name = "cloudinary"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, timeout: float = 60.0):
        self.options = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
            "timeout": timeout,
        }

    async def upload(
        self,
        file_data: bytes,
        content_type: str = "image/png",
        folder: str = "uploads"
    ) -> str:
        # The SDK is blocking; keep it off the event loop
        try:
            result = await run_in_threadpool(
                cloudinary.uploader.upload,
                io.BytesIO(file_data),
                folder=folder,
                resource_type="image",
                **self.options
            )
        except cloudinary.exceptions.Error as e:
            record_upload(self.backend_name, "error")
            raise UploadError(f"Cloudinary upload failed: {e}", backend=self.backend_name) from e

        secure_url = (result or {}).get("secure_url")
        if not secure_url:
            record_upload(self.backend_name, "error")
            raise UploadError("Cloudinary response missing secure_url", backend=self.backend_name)

        record_upload(self.backend_name, "success")
        logger.info("image_uploaded", backend=self.backend_name, public_id=result.get("public_id"))

        return secure_url


class StorageFactory:
    """
    Factory for creating storage instances.

    STORAGE_BACKEND selects the implementation; switching from local disk to
    Cloudinary is a configuration change only.
    """

    _instance: Optional[IStorage] = None

    @classmethod
    def create(cls, config: Settings) -> IStorage:
        backend = config.STORAGE_BACKEND.lower()

        if backend == "cloudinary":
            if not (config.CLOUDINARY_CLOUD_NAME and config.CLOUDINARY_API_KEY and config.CLOUDINARY_API_SECRET):
                raise ValueError(
                    "STORAGE_BACKEND=cloudinary requires CLOUDINARY_CLOUD_NAME, "
                    "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET"
                )
            return CloudinaryStorage(
                cloud_name=config.CLOUDINARY_CLOUD_NAME,
                api_key=config.CLOUDINARY_API_KEY,
                api_secret=config.CLOUDINARY_API_SECRET
            )

        if backend == "local":
            return LocalStorage(
                base_path=config.LOCAL_STORAGE_PATH,
                public_base_url=config.PUBLIC_BASE_URL
            )

        raise ValueError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")

    @classmethod
    def get_storage(cls) -> IStorage:
        """Get the configured storage implementation (process-wide singleton)."""
        if cls._instance is None:
            cls._instance = cls.create(settings)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None


# Convenience function for dependency injection
def get_storage() -> IStorage:
    """Get the storage instance - ready for FastAPI Depends()."""
    return StorageFactory.get_storage()
