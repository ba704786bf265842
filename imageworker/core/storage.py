"""
Object storage bridge for published derivatives.

LocalStorage backs development runs, AzureBlobStorage production. Keys are
deterministic: uploading the same file twice overwrites the same object.
"""

import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from imageworker.core.config import Settings
from imageworker.core.exceptions import StorageError
from imageworker.core.logging import get_logger

logger = get_logger(__name__)


def guess_content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


class IStorage(ABC):
    """Async object store interface. Keys are slash separated paths relative to the bucket root."""

    @abstractmethod
    async def upload(
        self,
        file_data: bytes,
        key: str,
        content_type: str = "image/jpeg"
    ) -> str:
        """
        Upload a file under `key`, replacing any existing object.

        Args:
            file_data: Raw bytes of the file
            key: Full object key, e.g. "offers/42/thumb.jpg"
            content_type: MIME type of the file

        Returns:
            Storage key that can be used with get_url()
        """
        pass

    @abstractmethod
    async def get_url(self, key: str) -> str:
        """Get the public URL of a stored object."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if deleted, False if there was nothing to delete
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if an object exists in storage."""
        pass


class LocalStorage(IStorage):
    """Stores objects as files under `base_path`; URLs are `public_base_url` + key."""

    def __init__(self, base_path: str = "./data/storage", public_base_url: str = "/static/storage"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise StorageError(f"Storage key escapes the storage root: {key}", details={"key": key})
        return path

    async def upload(
        self,
        file_data: bytes,
        key: str,
        content_type: str = "image/jpeg"
    ) -> str:
        file_path = self._path_for(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(file_path, "wb") as f:
                f.write(file_data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", details={"key": key})

        return key

    async def get_url(self, key: str) -> str:
        """For local storage, return a path under the public base URL."""
        if not self._path_for(key).exists():
            raise FileNotFoundError(f"File not found: {key}")
        return f"{self.public_base_url}/{key}"

    async def delete(self, key: str) -> bool:
        file_path = self._path_for(key)
        if not file_path.exists():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}", details={"key": key})
        return True

    async def exists(self, key: str) -> bool:
        return self._path_for(key).exists()


class AzureBlobStorage(IStorage):
    """Azure Blob Storage implementation for production."""

    def __init__(self, connection_string: str, container_name: str = "imagery"):
        # Lazy import keeps the Azure SDK optional for local runs
        from azure.storage.blob import BlobServiceClient

        self.blob_service_client = BlobServiceClient.from_connection_string(connection_string)
        self.container_name = container_name
        self._ensure_container_exists()

    def _ensure_container_exists(self):
        """Create a publicly readable container if it doesn't exist."""
        from azure.core.exceptions import AzureError

        try:
            container_client = self.blob_service_client.get_container_client(self.container_name)
            if not container_client.exists():
                container_client.create_container(public_access="blob")
        except AzureError as e:
            raise StorageError(f"Failed to initialize Azure container: {e}")

    def _blob(self, key: str):
        return self.blob_service_client.get_blob_client(container=self.container_name, blob=key)

    async def upload(
        self,
        file_data: bytes,
        key: str,
        content_type: str = "image/jpeg"
    ) -> str:
        from azure.core.exceptions import AzureError
        from azure.storage.blob import ContentSettings

        try:
            self._blob(key).upload_blob(
                file_data,
                content_settings=ContentSettings(content_type=content_type),
                overwrite=True
            )
        except AzureError as e:
            raise StorageError(f"Failed to upload {key}: {e}", details={"key": key})

        return key

    async def get_url(self, key: str) -> str:
        return self._blob(key).url

    async def delete(self, key: str) -> bool:
        from azure.core.exceptions import AzureError, ResourceNotFoundError

        try:
            self._blob(key).delete_blob()
            return True
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            raise StorageError(f"Failed to delete {key}: {e}", details={"key": key})

    async def exists(self, key: str) -> bool:
        return self._blob(key).exists()


class StorageFactory:
    """
    Builds and caches the configured storage backend.

    The backend is picked from STORAGE_BACKEND; switching from local files to
    Azure needs only the environment variables, no code changes.
    """

    _instance: Optional[IStorage] = None

    @classmethod
    def get_storage(cls, settings: Settings) -> IStorage:
        """Get the storage implementation configured in `settings`."""
        if cls._instance is None:
            backend = settings.STORAGE_BACKEND.lower()
            if backend == "azure":
                if not settings.AZURE_STORAGE_CONNECTION_STRING:
                    raise StorageError("STORAGE_BACKEND=azure requires AZURE_STORAGE_CONNECTION_STRING")
                cls._instance = AzureBlobStorage(
                    connection_string=settings.AZURE_STORAGE_CONNECTION_STRING,
                    container_name=settings.AZURE_CONTAINER_NAME
                )
            elif backend == "local":
                cls._instance = LocalStorage(
                    base_path=settings.LOCAL_STORAGE_PATH,
                    public_base_url=settings.PUBLIC_BASE_URL
                )
            else:
                raise StorageError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")

            logger.info("storage_initialized", backend=backend)

        return cls._instance

    @classmethod
    def reset(cls):
        """Drop the cached backend so the next call rebuilds it from settings."""
        cls._instance = None
