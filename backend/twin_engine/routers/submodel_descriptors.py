"""
Submodel registry endpoints.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from twin_engine.dependencies import get_submodel_descriptor_service
from twin_engine.schemas.descriptors import SubmodelDescriptor
from twin_engine.services.registry import SubmodelDescriptorService
from twin_engine.utils.encoding import decode_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submodel-descriptors", tags=["submodel-registry"])


@router.get(
    "/{submodel_id}", response_model=SubmodelDescriptor, response_model_exclude_none=True
)
async def get_submodel_descriptor(
    submodel_id: str,
    service: Annotated[SubmodelDescriptorService, Depends(get_submodel_descriptor_service)],
) -> SubmodelDescriptor:
    """
    Get a submodel descriptor by its base64url encoded id.
    """
    return await service.get_by_id(decode_identifier(submodel_id))
