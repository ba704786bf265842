"""
Asset Records

A published derivative is recorded as an AssetVersion of the poster
MediaAsset attached to either an Offer or an OfferChangeRequest.
"""

from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List
from datetime import datetime


class MediaAsset(SQLModel, table=True):
    """A poster image and all of its published versions."""
    __tablename__ = "media_assets"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    versions: List["AssetVersion"] = Relationship(back_populates="media_asset")


class AssetVersion(SQLModel, table=True):
    """One published derivative: a version label plus its public URL."""
    __tablename__ = "asset_versions"

    id: Optional[int] = Field(default=None, primary_key=True)
    media_asset_id: int = Field(foreign_key="media_assets.id", index=True)
    version: str = Field(default="original")
    url: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    media_asset: Optional[MediaAsset] = Relationship(back_populates="versions")


class Offer(SQLModel, table=True):
    __tablename__ = "offers"

    offer_number: int = Field(primary_key=True)
    poster_asset_id: Optional[int] = Field(default=None, foreign_key="media_assets.id")

    poster_asset: Optional[MediaAsset] = Relationship()


class OfferChangeRequest(SQLModel, table=True):
    __tablename__ = "offer_change_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    offer_id: Optional[int] = Field(default=None, foreign_key="offers.offer_number")
    poster_asset_id: Optional[int] = Field(default=None, foreign_key="media_assets.id")

    poster_asset: Optional[MediaAsset] = Relationship()
