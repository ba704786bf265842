"""
Asset version recorder.

Attaches published derivatives to the poster asset of an offer or of an
offer change request. A change request takes precedence over an offer.
"""

from typing import Optional, Union

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from imageworker.core.exceptions import StorageError
from imageworker.core.logging import get_logger
from imageworker.modules.assets.models import AssetVersion, MediaAsset, Offer, OfferChangeRequest

logger = get_logger(__name__)


class AssetRecorder:
    def __init__(
        self,
        engine: Engine,
        offer_id: Optional[int] = None,
        change_request_id: Optional[int] = None
    ):
        self.engine = engine
        self.offer_id = offer_id
        self.change_request_id = change_request_id

    @property
    def has_target(self) -> bool:
        return self.offer_id is not None or self.change_request_id is not None

    @property
    def target_label(self) -> str:
        if self.change_request_id is not None:
            return f"offer_change_request #{self.change_request_id}"
        return f"offer #{self.offer_id}"

    def _load_target(self, session: Session) -> Optional[Union[Offer, OfferChangeRequest]]:
        if self.change_request_id is not None:
            return session.get(OfferChangeRequest, self.change_request_id)
        if self.offer_id is not None:
            return session.get(Offer, self.offer_id)
        return None

    def target_exists(self) -> bool:
        """Check the record to attach versions to before anything is published."""
        if not self.has_target:
            return False
        try:
            with Session(self.engine) as session:
                return self._load_target(session) is not None
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot look up {self.target_label}: {e}")

    def add_version(self, version: str, url: str) -> Optional[int]:
        """
        Record a published version on the target's poster asset.

        Creates the poster asset when the target has none yet.

        Returns:
            The new AssetVersion id, or None when there is no target record
        """
        try:
            with Session(self.engine) as session:
                target = self._load_target(session)
                if target is None:
                    logger.warning("asset_target_missing", target=self.target_label)
                    return None

                if target.poster_asset is None:
                    target.poster_asset = MediaAsset()
                    session.add(target)

                asset_version = AssetVersion(version=version, url=url, media_asset=target.poster_asset)
                session.add(asset_version)
                session.commit()
                session.refresh(asset_version)

                logger.info(
                    "asset_version_recorded",
                    target=self.target_label,
                    version=version,
                    url=url,
                    asset_version_id=asset_version.id
                )
                return asset_version.id
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to record version '{version}' on {self.target_label}: {e}",
                details={"version": version, "url": url}
            )
