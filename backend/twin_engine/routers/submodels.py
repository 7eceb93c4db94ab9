"""
Submodel repository endpoints.

Serves submodels and submodel elements filled with plugin values,
serialized in the AAS JSON format.
"""

import json
import logging
from typing import Annotated

from basyx.aas.adapter.json import AASToJsonEncoder
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from twin_engine.dependencies import get_submodel_repository_service
from twin_engine.services.repository import SubmodelRepositoryService
from twin_engine.utils.encoding import decode_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submodels", tags=["submodel-repository"])


def _aas_json(obj) -> Response:
    return Response(content=json.dumps(obj, cls=AASToJsonEncoder), media_type="application/json")


@router.get("/{submodel_id}")
async def get_submodel(
    submodel_id: str,
    service: Annotated[SubmodelRepositoryService, Depends(get_submodel_repository_service)],
) -> Response:
    """
    Get a submodel by its base64url encoded id.
    """
    submodel = await service.get_submodel(decode_identifier(submodel_id))
    return _aas_json(submodel)


@router.get("/{submodel_id}/submodel-elements/{id_short_path}")
async def get_submodel_element(
    submodel_id: str,
    id_short_path: str,
    service: Annotated[SubmodelRepositoryService, Depends(get_submodel_repository_service)],
) -> Response:
    """
    Get one submodel element by its idShort path.

    Path segments are separated by dots; ``name[i]`` selects item ``i``
    of a list.
    """
    element = await service.get_submodel_element(decode_identifier(submodel_id), id_short_path)
    return _aas_json(element)
