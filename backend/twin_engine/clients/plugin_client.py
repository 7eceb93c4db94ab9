"""
Plugin transport.

Talks to the configured data plugins over HTTP. Each plugin gets its own
``ServiceClient``; calls are addressed by plugin name.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from twin_engine.clients.http_client import ServiceClient
from twin_engine.config import PluginEndpoint, get_settings
from twin_engine.exceptions import InternalDataError, NotFoundError
from twin_engine.schemas.descriptors import AssetData, ShellDescriptorMetadata
from twin_engine.schemas.manifest import PluginManifest
from twin_engine.utils.encoding import encode_identifier

logger = logging.getLogger(__name__)


class PluginClient:
    """
    Async client for all configured plugins.

    Plugin endpoints:
    - GET  manifest
    - POST data/{b64(submodelId)} with the request JSON Schema as body
    - GET  metadata/shells
    - GET  metadata/shells/{b64(aasId)}
    - GET  metadata/assets/{b64(aasId)}
    """

    def __init__(
        self,
        plugins: list[PluginEndpoint] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        plugins = plugins if plugins is not None else settings.plugins
        self._endpoints = {p.name: p for p in plugins}
        self._clients = {
            p.name: ServiceClient(
                base_url=p.url,
                name=f"plugin '{p.name}'",
                timeout=settings.request_timeout_seconds,
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay_seconds,
                transport=transport,
            )
            for p in plugins
        }

    @property
    def plugin_names(self) -> list[str]:
        """Configured plugin names in configuration order."""
        return list(self._endpoints)

    def _client(self, plugin_name: str) -> ServiceClient:
        try:
            return self._clients[plugin_name]
        except KeyError:
            raise NotFoundError(f"Unknown plugin '{plugin_name}'") from None

    async def close(self) -> None:
        """Close all plugin connections."""
        for client in self._clients.values():
            await client.close()

    async def get_manifest(self, plugin_name: str) -> PluginManifest:
        """
        Fetch a plugin's manifest.

        The configured name and URL take precedence over what the plugin
        reports about itself.
        """
        data = await self._client(plugin_name).get_json("manifest")
        if not isinstance(data, dict):
            raise InternalDataError(f"Malformed manifest from plugin '{plugin_name}'")
        endpoint = self._endpoints[plugin_name]
        data = {**data, "pluginName": endpoint.name, "pluginUrl": endpoint.url}
        return self._parse(PluginManifest, data, plugin_name)

    async def fetch_values(
        self, plugin_name: str, submodel_id: str, request_schema: dict[str, Any]
    ) -> Any:
        """
        Ask a plugin for the values described by a request schema.

        Args:
            plugin_name: Target plugin
            submodel_id: Submodel the values belong to
            request_schema: JSON Schema of the expected answer

        Returns:
            Raw JSON answer, not yet validated
        """
        logger.debug(f"Requesting values for {submodel_id} from plugin '{plugin_name}'")
        return await self._client(plugin_name).post_json(
            f"data/{encode_identifier(submodel_id)}", request_schema
        )

    async def get_shell_descriptors(self, plugin_name: str) -> list[ShellDescriptorMetadata]:
        """Fetch every shell a plugin knows, following its paging cursors."""
        client = self._client(plugin_name)
        descriptors: list[ShellDescriptorMetadata] = []
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else None
            data = await client.get_json("metadata/shells", params=params)
            if isinstance(data, list):
                rows, cursor = data, None
            elif isinstance(data, dict):
                rows = data.get("result") or []
                cursor = (data.get("paging_metadata") or {}).get("cursor")
            else:
                raise InternalDataError(f"Malformed shell list from plugin '{plugin_name}'")
            descriptors.extend(self._parse(ShellDescriptorMetadata, row, plugin_name) for row in rows)
            if not cursor:
                return descriptors

    async def get_shell_descriptor(
        self, plugin_name: str, aas_id: str
    ) -> ShellDescriptorMetadata:
        """Fetch a plugin's metadata for one shell."""
        data = await self._client(plugin_name).get_json(
            f"metadata/shells/{encode_identifier(aas_id)}"
        )
        return self._parse(ShellDescriptorMetadata, data, plugin_name)

    async def get_asset_data(self, plugin_name: str, aas_id: str) -> AssetData:
        """Fetch a plugin's asset information for one shell."""
        data = await self._client(plugin_name).get_json(
            f"metadata/assets/{encode_identifier(aas_id)}"
        )
        return self._parse(AssetData, data, plugin_name)

    @staticmethod
    def _parse(model_cls, data: Any, plugin_name: str):
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise InternalDataError(
                f"Malformed {model_cls.__name__} from plugin '{plugin_name}'"
            ) from e
