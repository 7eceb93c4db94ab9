"""
Registry entity services.

Serve shell descriptors and submodel descriptors assembled from
templates and live plugin metadata, and reconcile the persistent AAS
registry.
"""

import logging

from twin_engine.clients.registry_client import RegistryClient
from twin_engine.config import get_settings
from twin_engine.exceptions import NotFoundError
from twin_engine.schemas.descriptors import (
    PagedResult,
    PagingMetadata,
    ShellDescriptor,
    ShellDescriptorMetadata,
    SubmodelDescriptor,
)
from twin_engine.services.aggregator import PluginAggregator
from twin_engine.services.pagination import page
from twin_engine.services.reconciliation import ReconciliationPlan, plan
from twin_engine.services.template_filler import TemplateFiller
from twin_engine.services.template_mapping import TemplateMapping
from twin_engine.services.template_provider import TemplateProvider
from twin_engine.utils.encoding import encode_identifier

logger = logging.getLogger(__name__)


class ShellDescriptorService:
    """Shell descriptors from plugin metadata over the registry template."""

    def __init__(
        self,
        aggregator: PluginAggregator,
        templates: TemplateProvider,
        registry_client: RegistryClient,
        filler: TemplateFiller | None = None,
    ):
        self.settings = get_settings()
        self.aggregator = aggregator
        self.templates = templates
        self.registry_client = registry_client
        self.filler = filler or TemplateFiller()

    def href_for(self, metadata: ShellDescriptorMetadata) -> str:
        """Endpoint of a shell; plugin-supplied hrefs take precedence."""
        if metadata.href:
            return metadata.href
        return (
            f"{self.settings.data_engine_base_url}{self.settings.aas_repository_path}/"
            f"{encode_identifier(metadata.id or '')}"
        )

    async def get_all(
        self, limit: int | None = None, cursor: str | None = None
    ) -> PagedResult[ShellDescriptor]:
        """
        List shell descriptors.

        Args:
            limit: Page size; the configured default when missing
            cursor: Encoded id of the last descriptor already seen

        Returns:
            One page of filled descriptors
        """
        try:
            template = await self.templates.get_shell_descriptor_template()
            rows = await self.aggregator.fetch_shell_descriptors()
        except NotFoundError as e:
            raise NotFoundError("Shell descriptors not found") from e

        window, next_cursor = page(
            rows,
            lambda row: row.id or "",
            page_size=limit,
            cursor=cursor,
            default_page_size=self.settings.default_page_size,
        )
        return PagedResult[ShellDescriptor](
            paging_metadata=PagingMetadata(cursor=next_cursor),
            result=self.filler.fill_shell_descriptors(template, window, self.href_for),
        )

    async def get_by_id(self, aas_id: str) -> ShellDescriptor:
        """Get the descriptor of one shell."""
        try:
            template = await self.templates.get_shell_descriptor_template()
            metadata = await self.aggregator.fetch_shell_descriptor(aas_id)
        except NotFoundError as e:
            raise NotFoundError(f"Shell descriptor '{aas_id}' not found") from e
        if not metadata.id:
            metadata = metadata.model_copy(update={"id": aas_id})
        return self.filler.fill_shell_descriptor(template, metadata, self.href_for(metadata))

    async def sync(self) -> ReconciliationPlan:
        """
        Reconcile the AAS registry with live plugin metadata.

        Stops at the first failing registry write; writes already made
        stay in place.

        Returns:
            The executed plan
        """
        existing = await self.registry_client.list_shell_descriptors()
        live = await self.aggregator.fetch_shell_descriptors()
        changes = plan(existing, live)

        if changes.to_create:
            template = await self.templates.get_shell_descriptor_template()
            for metadata in changes.to_create:
                descriptor = self.filler.fill_shell_descriptor(
                    template, metadata, self.href_for(metadata)
                )
                await self.registry_client.create_shell_descriptor(descriptor)

        for current, metadata in changes.to_update:
            descriptor = self.filler.fill_shell_descriptor(
                current, metadata, self.href_for(metadata)
            )
            await self.registry_client.update_shell_descriptor(descriptor)

        if not changes.to_delete:
            logger.info("No missing shell descriptors found to delete")
        for aas_id in changes.to_delete:
            await self.registry_client.delete_shell_descriptor(aas_id)

        return changes


class SubmodelDescriptorService:
    """Submodel descriptors from the submodel registry templates."""

    def __init__(
        self,
        templates: TemplateProvider,
        mapping: TemplateMapping,
        filler: TemplateFiller | None = None,
    ):
        self.settings = get_settings()
        self.templates = templates
        self.mapping = mapping
        self.filler = filler or TemplateFiller()

    def href_for(self, submodel_id: str) -> str:
        return (
            f"{self.settings.data_engine_base_url}{self.settings.submodel_repository_path}/"
            f"{encode_identifier(submodel_id)}"
        )

    async def get_by_id(self, submodel_id: str) -> SubmodelDescriptor:
        """Get the descriptor of one submodel."""
        try:
            template_id = self.mapping.submodel_template_id(submodel_id)
            template = await self.templates.get_submodel_descriptor_template(template_id)
        except NotFoundError as e:
            raise NotFoundError(f"Submodel descriptor '{submodel_id}' not found") from e
        return self.filler.fill_submodel_descriptor(
            template, submodel_id, self.href_for(submodel_id)
        )
