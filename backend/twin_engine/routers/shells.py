"""
AAS repository endpoints.

Serves shells, their asset information and their submodel references.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from twin_engine.dependencies import get_aas_repository_service
from twin_engine.schemas.descriptors import (
    AssetAdministrationShell,
    AssetInformation,
    PagedResult,
    Reference,
)
from twin_engine.services.pagination import validate_paging
from twin_engine.services.repository import AasRepositoryService
from twin_engine.utils.encoding import decode_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shells", tags=["aas-repository"])


@router.get(
    "/{aas_id}", response_model=AssetAdministrationShell, response_model_exclude_none=True
)
async def get_shell(
    aas_id: str,
    service: Annotated[AasRepositoryService, Depends(get_aas_repository_service)],
) -> AssetAdministrationShell:
    """
    Get a shell by its base64url encoded id.
    """
    return await service.get_shell(decode_identifier(aas_id))


@router.get(
    "/{aas_id}/asset-information",
    response_model=AssetInformation,
    response_model_exclude_none=True,
)
async def get_asset_information(
    aas_id: str,
    service: Annotated[AasRepositoryService, Depends(get_aas_repository_service)],
) -> AssetInformation:
    """
    Get the asset information of a shell.
    """
    return await service.get_asset_information(decode_identifier(aas_id))


@router.get(
    "/{aas_id}/submodel-refs",
    response_model=PagedResult[Reference],
    response_model_exclude_none=True,
)
async def get_submodel_refs(
    aas_id: str,
    service: Annotated[AasRepositoryService, Depends(get_aas_repository_service)],
    limit: Annotated[int | None, Query(description="Maximum page size")] = None,
    cursor: Annotated[str | None, Query(description="Paging cursor")] = None,
) -> PagedResult[Reference]:
    """
    List the submodel references of a shell.
    """
    aas_id = decode_identifier(aas_id)
    validate_paging(limit, cursor)
    return await service.get_submodel_refs(aas_id, limit=limit, cursor=cursor)
