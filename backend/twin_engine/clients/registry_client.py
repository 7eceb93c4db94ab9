"""
AAS registry client.

Reads and writes shell descriptors of the persistent AAS registry.
"""

import logging

import httpx
from pydantic import ValidationError

from twin_engine.clients.http_client import ServiceClient
from twin_engine.config import get_settings
from twin_engine.exceptions import InternalDataError
from twin_engine.schemas.descriptors import ShellDescriptor
from twin_engine.utils.encoding import encode_identifier

logger = logging.getLogger(__name__)


class RegistryClient:
    """
    Async client for the AAS registry.

    Registry endpoints:
    - GET    shell-descriptors
    - POST   shell-descriptors
    - PUT    shell-descriptors/{b64(id)}
    - DELETE shell-descriptors/{b64(id)}
    """

    def __init__(
        self,
        client: ServiceClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.path = settings.aas_registry_path
        self.client = client or ServiceClient(
            base_url=settings.aas_registry_url,
            name="AAS registry",
            timeout=settings.request_timeout_seconds,
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            transport=transport,
        )

    async def list_shell_descriptors(self) -> list[ShellDescriptor]:
        """List every shell descriptor in the registry."""
        data = await self.client.get_json(self.path)
        rows = data.get("result") if isinstance(data, dict) else data
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise InternalDataError("AAS registry returned a malformed descriptor list")
        try:
            return [ShellDescriptor.model_validate(row) for row in rows]
        except ValidationError as e:
            raise InternalDataError("AAS registry returned a malformed descriptor") from e

    async def create_shell_descriptor(self, descriptor: ShellDescriptor) -> None:
        """Register a new shell descriptor."""
        logger.info(f"Registering shell descriptor {descriptor.id}")
        await self.client.post_json(self.path, self._dump(descriptor))

    async def update_shell_descriptor(self, descriptor: ShellDescriptor) -> None:
        """Replace an existing shell descriptor."""
        logger.info(f"Updating shell descriptor {descriptor.id}")
        await self.client.put_json(
            f"{self.path}/{encode_identifier(descriptor.id or '')}", self._dump(descriptor)
        )

    async def delete_shell_descriptor(self, aas_id: str) -> None:
        """Remove a shell descriptor."""
        logger.info(f"Deleting shell descriptor {aas_id}")
        await self.client.delete(f"{self.path}/{encode_identifier(aas_id)}")

    async def close(self) -> None:
        """Close the registry connection."""
        await self.client.close()

    @staticmethod
    def _dump(descriptor: ShellDescriptor) -> dict:
        return descriptor.model_dump(mode="json", exclude_none=True)
