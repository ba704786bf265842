"""
Publisher: uploads derivatives to object storage and records their versions.

A file is published as one unit (upload + optional asset version record).
Failures are per file: they are logged with the target key and returned in
the results, never raised out of `publish`.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from imageworker.core.exceptions import PublishFailure, StorageError
from imageworker.core.logging import get_logger
from imageworker.core.metrics import record_publish
from imageworker.core.storage import IStorage, guess_content_type
from imageworker.modules.assets.recorder import AssetRecorder

logger = get_logger(__name__)


def storage_key(destination_path: Optional[str], filename: str) -> str:
    """"offers/42" + "thumb.jpg" -> "offers/42/thumb.jpg"; no path means the bucket root."""
    prefix = (destination_path or "").strip("/")
    return f"{prefix}/{filename}" if prefix else filename


@dataclass
class PublishResult:
    local_path: str
    key: str
    version: str
    url: Optional[str] = None
    asset_version_id: Optional[int] = None
    error: Optional[Dict[str, Any]] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Publisher:
    storage: IStorage
    recorder: Optional[AssetRecorder] = None
    enabled: bool = True

    def check_target(self) -> bool:
        """Warn early when versions are to be recorded on a record that does not exist."""
        if self.recorder is None or not self.recorder.has_target:
            return False
        try:
            exists = self.recorder.target_exists()
        except StorageError as e:
            # Each publish will report its own record failure
            logger.error("asset_target_unavailable", target=self.recorder.target_label, error=e.message)
            return False
        if not exists:
            logger.warning("asset_target_missing", target=self.recorder.target_label)
        return exists

    def publish(
        self,
        files: Sequence[Union[str, Path]],
        destination_path: Optional[str],
        version: str
    ) -> List[PublishResult]:
        results = []
        for local_path in files:
            key = storage_key(destination_path, Path(local_path).name)

            if not self.enabled:
                logger.info("publish_skipped", file=str(local_path), key=key, reason="network disabled")
                results.append(PublishResult(str(local_path), key, version, skipped=True))
                continue

            try:
                results.append(self.publish_file(Path(local_path), key, version))
                record_publish("success")
            except PublishFailure as e:
                logger.error("publish_failed", file=str(local_path), target=key, error=e.message)
                record_publish("error")
                results.append(PublishResult(str(local_path), key, version, error=e.to_dict()))

        return results

    def publish_file(self, local_path: Path, key: str, version: str) -> PublishResult:
        logger.info("upload_started", file=str(local_path), key=key, version=version)

        try:
            url = asyncio.run(self._upload(local_path, key))
        except (OSError, StorageError) as e:
            raise PublishFailure(f"Upload of {local_path.name} failed: {e}", target=key)

        logger.info("upload_completed", key=key, url=url)

        asset_version_id = None
        if self.recorder is not None and self.recorder.has_target:
            try:
                asset_version_id = self.recorder.add_version(version, url)
            except StorageError as e:
                raise PublishFailure(f"Uploaded {key} but could not record it: {e.message}", target=key)

        return PublishResult(str(local_path), key, version, url=url, asset_version_id=asset_version_id)

    async def _upload(self, local_path: Path, key: str) -> str:
        data = local_path.read_bytes()
        stored_key = await self.storage.upload(data, key, content_type=guess_content_type(local_path.name))
        return await self.storage.get_url(stored_key)

    def delete_source(self, key: Optional[str]) -> bool:
        """Remove the uploaded source object once every derivative is out."""
        if not key:
            return False
        if not self.enabled:
            logger.info("source_delete_skipped", key=key, reason="network disabled")
            return False

        deleted = asyncio.run(self.storage.delete(key))
        if deleted:
            logger.info("source_deleted", key=key)
        else:
            logger.info("source_delete_nothing_to_delete", key=key)
        return deleted
