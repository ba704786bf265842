"""
Assets Module

Asset/version records for published derivatives.
"""

from imageworker.modules.assets.models import MediaAsset, AssetVersion, Offer, OfferChangeRequest
from imageworker.modules.assets.recorder import AssetRecorder

__all__ = ["MediaAsset", "AssetVersion", "Offer", "OfferChangeRequest", "AssetRecorder"]
