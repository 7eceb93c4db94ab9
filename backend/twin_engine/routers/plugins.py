"""
Plugin administration endpoints.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from twin_engine.dependencies import get_manifest_registry, get_template_provider
from twin_engine.services.manifest_registry import ManifestRegistry
from twin_engine.services.template_provider import TemplateProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plugins", tags=["plugins"])


@router.post("/refresh")
async def refresh_manifests(
    registry: Annotated[ManifestRegistry, Depends(get_manifest_registry)],
    templates: Annotated[TemplateProvider, Depends(get_template_provider)],
) -> dict:
    """
    Reload all plugin manifests and clear the template cache.

    A rejected load keeps the previous manifests active and reports the
    error; the registry is then unhealthy until the next successful load.
    """
    snapshot = await registry.load_manifests()
    cleared = templates.clear_cache()
    return {
        "plugins": snapshot.plugin_names,
        "conflicts": sorted(snapshot.conflicts),
        "clearedTemplates": cleared,
    }
