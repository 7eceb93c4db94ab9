"""
AAS registry endpoints.

Serves shell descriptors assembled from live plugin metadata.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from twin_engine.dependencies import get_shell_descriptor_service
from twin_engine.schemas.descriptors import PagedResult, ShellDescriptor
from twin_engine.services.pagination import validate_paging
from twin_engine.services.registry import ShellDescriptorService
from twin_engine.utils.encoding import decode_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shell-descriptors", tags=["aas-registry"])


@router.get("", response_model=PagedResult[ShellDescriptor], response_model_exclude_none=True)
async def list_shell_descriptors(
    service: Annotated[ShellDescriptorService, Depends(get_shell_descriptor_service)],
    limit: Annotated[int | None, Query(description="Maximum page size")] = None,
    cursor: Annotated[str | None, Query(description="Paging cursor")] = None,
) -> PagedResult[ShellDescriptor]:
    """
    List all shell descriptors.

    Results are paged; pass the returned cursor to get the next page.
    """
    validate_paging(limit, cursor)
    return await service.get_all(limit=limit, cursor=cursor)


@router.get("/{aas_id}", response_model=ShellDescriptor, response_model_exclude_none=True)
async def get_shell_descriptor(
    aas_id: str,
    service: Annotated[ShellDescriptorService, Depends(get_shell_descriptor_service)],
) -> ShellDescriptor:
    """
    Get a shell descriptor by its base64url encoded id.
    """
    return await service.get_by_id(decode_identifier(aas_id))
