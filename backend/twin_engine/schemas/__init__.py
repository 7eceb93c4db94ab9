"""
Pydantic schemas for API request/response models.
"""

from twin_engine.schemas.descriptors import (
    AssetAdministrationShell,
    AssetData,
    AssetInformation,
    Endpoint,
    PagedResult,
    PagingMetadata,
    Reference,
    ShellDescriptor,
    ShellDescriptorMetadata,
    SpecificAssetId,
    SpecificAssetIdData,
    SubmodelDescriptor,
    ThumbnailData,
)
from twin_engine.schemas.manifest import (
    ConflictPolicy,
    PluginCapabilities,
    PluginManifest,
)

__all__ = [
    "AssetAdministrationShell",
    "AssetData",
    "AssetInformation",
    "Endpoint",
    "PagedResult",
    "PagingMetadata",
    "Reference",
    "ShellDescriptor",
    "ShellDescriptorMetadata",
    "SpecificAssetId",
    "SpecificAssetIdData",
    "SubmodelDescriptor",
    "ThumbnailData",
    "ConflictPolicy",
    "PluginCapabilities",
    "PluginManifest",
]
