"""
Pydantic models for AAS descriptors, shells and plugin metadata.

Field names follow the AAS Part 2 JSON serialization. Template models
allow extra fields so that everything the template carries survives a
fill unchanged.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ProtocolInformation(BaseModel):
    """Where and how an endpoint is reached."""

    model_config = ConfigDict(extra="allow")

    href: str = ""
    endpointProtocol: str | None = None
    endpointProtocolVersion: list[str] | None = None
    subprotocol: str | None = None
    subprotocolBody: str | None = None
    subprotocolBodyEncoding: str | None = None
    securityAttributes: list[dict[str, Any]] | None = None


class Endpoint(BaseModel):
    """A descriptor endpoint."""

    model_config = ConfigDict(extra="allow")

    interface: str = ""
    protocolInformation: ProtocolInformation = Field(default_factory=ProtocolInformation)


class SpecificAssetId(BaseModel):
    """A name/value asset identifier."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    value: str = ""


class Key(BaseModel):
    """A single key of a reference."""

    type: str
    value: str


class Reference(BaseModel):
    """A model or external reference."""

    model_config = ConfigDict(extra="allow")

    type: str = "ModelReference"
    keys: list[Key] = Field(default_factory=list)


class SubmodelDescriptor(BaseModel):
    """Submodel registry entry."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    idShort: str | None = None
    semanticId: Reference | None = None
    endpoints: list[Endpoint] = Field(default_factory=list)


class ShellDescriptor(BaseModel):
    """AAS registry entry for one shell."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    idShort: str | None = None
    globalAssetId: str | None = None
    assetKind: str | None = None
    assetType: str | None = None
    specificAssetIds: list[SpecificAssetId] | None = None
    endpoints: list[Endpoint] | None = None
    submodelDescriptors: list[SubmodelDescriptor] | None = None

    @classmethod
    def create_default(cls) -> "ShellDescriptor":
        """Template used when the registry holds no descriptor yet."""
        return cls(
            id="",
            idShort="",
            globalAssetId="",
            assetKind="Type",
            assetType="Type",
            endpoints=[
                Endpoint(
                    interface="AAS-3.0",
                    protocolInformation=ProtocolInformation(href="", endpointProtocol="http"),
                )
            ],
        )


class SpecificAssetIdData(BaseModel):
    """Asset identifier as reported by a plugin; either part may be missing."""

    name: str | None = None
    value: str | None = None


class ShellDescriptorMetadata(BaseModel):
    """What a plugin returns about one shell."""

    id: str | None = None
    idShort: str | None = None
    globalAssetId: str | None = None
    specificAssetIds: list[SpecificAssetIdData] | None = None
    href: str | None = None


class Resource(BaseModel):
    """A thumbnail or other file resource."""

    path: str
    contentType: str | None = None


class ThumbnailData(BaseModel):
    """Thumbnail as reported by a plugin; either part may be missing."""

    path: str | None = None
    contentType: str | None = None


class AssetData(BaseModel):
    """What a plugin returns about the asset behind a shell."""

    globalAssetId: str | None = None
    specificAssetIds: list[SpecificAssetIdData] | None = None
    defaultThumbnail: ThumbnailData | None = None


class AssetInformation(BaseModel):
    """Asset information of a shell."""

    model_config = ConfigDict(extra="allow")

    assetKind: str = "Instance"
    globalAssetId: str | None = None
    specificAssetIds: list[SpecificAssetId] | None = None
    assetType: str | None = None
    defaultThumbnail: Resource | None = None


class AssetAdministrationShell(BaseModel):
    """Shell template and response body."""

    model_config = ConfigDict(extra="allow")

    modelType: str = "AssetAdministrationShell"
    id: str = ""
    idShort: str | None = None
    assetInformation: AssetInformation = Field(default_factory=AssetInformation)
    submodels: list[Reference] | None = None


class PagingMetadata(BaseModel):
    """Cursor for the next page, absent on the last page."""

    cursor: str | None = None


class PagedResult(BaseModel, Generic[T]):
    """A page of results in AAS API shape."""

    paging_metadata: PagingMetadata = Field(default_factory=PagingMetadata)
    result: list[T] = Field(default_factory=list)
