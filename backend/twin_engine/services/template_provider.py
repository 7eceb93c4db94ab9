"""
Template Provider Service.

Fetches shell, asset, submodel and descriptor templates from the
template repository and the registries, and caches them in memory.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any

from basyx.aas import model
from basyx.aas.adapter.json import AASFromJsonDecoder
from pydantic import ValidationError

from twin_engine.clients.http_client import ServiceClient
from twin_engine.clients.registry_client import RegistryClient
from twin_engine.config import get_settings
from twin_engine.exceptions import InternalDataError, NotFoundError
from twin_engine.schemas.descriptors import (
    AssetAdministrationShell,
    AssetInformation,
    Reference,
    ShellDescriptor,
    SubmodelDescriptor,
)
from twin_engine.utils.encoding import encode_identifier

logger = logging.getLogger(__name__)


class TemplateProvider:
    """
    Service for fetching templates.

    Features:
    - Submodel templates decoded into BaSyx objects
    - Shell, asset information and submodel-refs templates as DTOs
    - In-memory cache with configurable TTL
    - The first registry entry serves as shell descriptor template
    """

    def __init__(
        self,
        repository: ServiceClient | None = None,
        submodel_registry: ServiceClient | None = None,
        registry_client: RegistryClient | None = None,
        cache_ttl_seconds: int | None = None,
    ):
        settings = get_settings()
        self.settings = settings
        self.repository = repository or ServiceClient(
            base_url=settings.template_repository_url,
            name="template repository",
            timeout=settings.request_timeout_seconds,
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
        )
        self.submodel_registry = submodel_registry or ServiceClient(
            base_url=settings.submodel_registry_url,
            name="submodel registry",
            timeout=settings.request_timeout_seconds,
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
        )
        self.registry_client = registry_client or RegistryClient()
        self.cache_ttl_seconds = (
            cache_ttl_seconds
            if cache_ttl_seconds is not None
            else settings.template_cache_ttl_seconds
        )

        # In-memory template cache
        self._cache: dict[str, tuple[Any, datetime]] = {}

    def _is_cache_valid(self, cache_time: datetime) -> bool:
        """Check if cached data is still within TTL."""
        return datetime.now() - cache_time < timedelta(seconds=self.cache_ttl_seconds)

    async def _cached_json(self, client: ServiceClient, path: str) -> Any:
        key = f"{client.name}:{path}"
        if key in self._cache:
            data, timestamp = self._cache[key]
            if self._is_cache_valid(timestamp):
                logger.debug(f"Returning cached template {path}")
                return data

        logger.info(f"Fetching template {path} from {client.name}")
        data = await client.get_json(path)
        self._cache[key] = (data, datetime.now())
        return data

    async def get_submodel_template(self, template_id: str) -> model.Submodel:
        """
        Fetch a submodel template.

        Returns:
            A fresh BaSyx Submodel decoded from the cached JSON, so callers
            may keep it

        Raises:
            NotFoundError: If the repository has no such template
            InternalDataError: If the document is not a submodel
        """
        path = f"{self.settings.submodel_repository_path}/{encode_identifier(template_id)}"
        data = await self._cached_json(self.repository, path)
        try:
            submodel = json.loads(json.dumps(data), cls=AASFromJsonDecoder)
        except (ValueError, TypeError, KeyError) as e:
            raise InternalDataError(f"Submodel template '{template_id}' is malformed") from e
        if not isinstance(submodel, model.Submodel):
            raise InternalDataError(f"Template '{template_id}' is not a submodel")
        return submodel

    async def get_shell_template(self, template_id: str) -> AssetAdministrationShell:
        """Fetch a shell template."""
        path = f"{self.settings.aas_repository_path}/{encode_identifier(template_id)}"
        data = await self._cached_json(self.repository, path)
        return self._parse(AssetAdministrationShell, data, template_id)

    async def get_asset_information_template(self, template_id: str) -> AssetInformation:
        """Fetch the asset information template of a shell template."""
        path = (
            f"{self.settings.aas_repository_path}/{encode_identifier(template_id)}/"
            f"{self.settings.asset_information_path}"
        )
        data = await self._cached_json(self.repository, path)
        return self._parse(AssetInformation, data, template_id)

    async def get_submodel_refs_template(self, template_id: str) -> list[Reference]:
        """Fetch the submodel references of a shell template."""
        path = (
            f"{self.settings.aas_repository_path}/{encode_identifier(template_id)}/"
            f"{self.settings.submodel_refs_path}"
        )
        data = await self._cached_json(self.repository, path)
        rows = data.get("result") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise InternalDataError(f"Submodel refs of '{template_id}' are malformed")
        return [self._parse(Reference, row, template_id) for row in rows]

    async def get_submodel_descriptor_template(self, template_id: str) -> SubmodelDescriptor:
        """Fetch a submodel descriptor template from the submodel registry."""
        path = f"{self.settings.submodel_registry_path}/{encode_identifier(template_id)}"
        data = await self._cached_json(self.submodel_registry, path)
        return self._parse(SubmodelDescriptor, data, template_id)

    async def get_shell_descriptor_template(self) -> ShellDescriptor:
        """
        Get the shell descriptor template.

        The first entry of the AAS registry is used; an empty registry
        falls back to the default descriptor.
        """
        try:
            descriptors = await self.registry_client.list_shell_descriptors()
        except NotFoundError:
            descriptors = []
        if not descriptors:
            logger.info("AAS registry is empty, using default shell descriptor template")
            return ShellDescriptor.create_default()
        return descriptors[0]

    def clear_cache(self) -> int:
        """
        Clear all cached templates.

        Returns:
            Number of entries removed.
        """
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"Cleared {count} cached templates")
        return count

    async def close(self) -> None:
        """Close repository and registry connections."""
        await self.repository.close()
        await self.submodel_registry.close()
        await self.registry_client.close()

    @staticmethod
    def _parse(model_cls, data: Any, template_id: str):
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise InternalDataError(
                f"Malformed {model_cls.__name__} template '{template_id}'"
            ) from e
