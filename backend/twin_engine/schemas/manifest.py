"""
Pydantic models for plugin manifests.

A manifest is what a plugin reports about itself at ``GET /manifest``:
the semantic IDs it can answer for and which metadata it can serve.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConflictPolicy(str, Enum):
    """How overlapping plugin claims are resolved."""

    FAIL_FAST = "fail_fast"
    SKIP_CONFLICTING = "skip_conflicting"
    PREFER_FIRST_REGISTERED = "prefer_first_registered"


class PluginCapabilities(BaseModel):
    """Metadata a plugin can serve besides submodel values."""

    model_config = ConfigDict(frozen=True)

    hasShellDescriptor: bool = False
    hasAssetInformation: bool = False


class PluginManifest(BaseModel):
    """
    Self-description of one plugin.

    Manifests are immutable once loaded. The supported semantic IDs keep
    the order the plugin reported, with duplicates removed.
    """

    model_config = ConfigDict(frozen=True)

    pluginName: str
    pluginUrl: str = ""
    supportedSemanticIds: tuple[str, ...] = Field(default_factory=tuple)
    capabilities: PluginCapabilities = Field(default_factory=PluginCapabilities)

    @field_validator("supportedSemanticIds", mode="before")
    @classmethod
    def drop_duplicates(cls, v):
        if v is None:
            return ()
        return tuple(dict.fromkeys(v))
