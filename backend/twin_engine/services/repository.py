"""
Repository entity services.

Assemble shells, asset information, submodel references, submodels and
submodel elements from templates and live plugin data.
"""

import logging

from basyx.aas import model

from twin_engine.config import get_settings
from twin_engine.exceptions import NotFoundError
from twin_engine.schemas.descriptors import (
    AssetAdministrationShell,
    AssetInformation,
    PagedResult,
    PagingMetadata,
    Reference,
)
from twin_engine.services.aggregator import PluginAggregator
from twin_engine.services.pagination import page
from twin_engine.services.semantic_extractor import SemanticTreeExtractor
from twin_engine.services.semantic_tree import BranchNode, prune
from twin_engine.services.submodel_paths import resolve
from twin_engine.services.template_filler import TemplateFiller
from twin_engine.services.template_mapping import TemplateMapping
from twin_engine.services.template_provider import TemplateProvider

logger = logging.getLogger(__name__)

SUBMODEL_URL_SEGMENT = "submodel"


class AasRepositoryService:
    """Shells and their asset information."""

    def __init__(
        self,
        aggregator: PluginAggregator,
        templates: TemplateProvider,
        mapping: TemplateMapping,
        filler: TemplateFiller | None = None,
    ):
        self.settings = get_settings()
        self.aggregator = aggregator
        self.templates = templates
        self.mapping = mapping
        self.filler = filler or TemplateFiller()

    def _submodel_key(self, product_id: str, key_value: str) -> str:
        return f"{self.settings.customer_domain_url}{SUBMODEL_URL_SEGMENT}/{product_id}/{key_value}"

    async def get_shell(self, aas_id: str) -> AssetAdministrationShell:
        """
        Get a shell.

        The first key of every submodel reference is rewritten to the
        customer's submodel URL for the shell's product.
        """
        try:
            template_id = self.mapping.shell_template_id(aas_id)
            template = await self.templates.get_shell_template(template_id)
            product_id = self.mapping.product_id(aas_id)
        except NotFoundError as e:
            raise NotFoundError(f"Shell '{aas_id}' not found") from e

        asset_information = await self.get_asset_information(aas_id)
        shell = self.filler.fill_shell(template, aas_id, asset_information)
        for reference in shell.submodels or []:
            if reference.keys:
                key = reference.keys[0]
                key.value = self._submodel_key(product_id, key.value)
        return shell

    async def get_asset_information(self, aas_id: str) -> AssetInformation:
        """Get the asset information of a shell."""
        try:
            template_id = self.mapping.shell_template_id(aas_id)
            template = await self.templates.get_asset_information_template(template_id)
            data = await self.aggregator.fetch_asset_data(aas_id)
        except NotFoundError as e:
            raise NotFoundError(f"Asset information of '{aas_id}' not found") from e
        return self.filler.fill_asset_information(template, data)

    async def get_submodel_refs(
        self, aas_id: str, limit: int | None = None, cursor: str | None = None
    ) -> PagedResult[Reference]:
        """
        List the submodel references of a shell.

        Every key is rewritten to the customer's submodel URL; pages are
        keyed by the first key's value.
        """
        try:
            template_id = self.mapping.shell_template_id(aas_id)
            references = await self.templates.get_submodel_refs_template(template_id)
            product_id = self.mapping.product_id(aas_id)
        except NotFoundError as e:
            raise NotFoundError(f"Submodel references of '{aas_id}' not found") from e

        for reference in references:
            for key in reference.keys:
                key.value = self._submodel_key(product_id, key.value)

        window, next_cursor = page(
            [reference for reference in references if reference.keys],
            lambda reference: reference.keys[0].value,
            page_size=limit,
            cursor=cursor,
            default_page_size=self.settings.default_page_size,
        )
        return PagedResult[Reference](
            paging_metadata=PagingMetadata(cursor=next_cursor), result=window
        )


class SubmodelRepositoryService:
    """Submodels and submodel elements filled with plugin values."""

    def __init__(
        self,
        aggregator: PluginAggregator,
        templates: TemplateProvider,
        mapping: TemplateMapping,
        extractor: SemanticTreeExtractor | None = None,
        filler: TemplateFiller | None = None,
    ):
        self.aggregator = aggregator
        self.templates = templates
        self.mapping = mapping
        self.extractor = extractor or SemanticTreeExtractor()
        self.filler = filler or TemplateFiller(self.extractor)

    async def _template(self, submodel_id: str) -> model.Submodel:
        template_id = self.mapping.submodel_template_id(submodel_id)
        return await self.templates.get_submodel_template(template_id)

    async def get_submodel(self, submodel_id: str) -> model.Submodel:
        """
        Get a submodel filled with the values of all owning plugins.

        Args:
            submodel_id: Requested submodel

        Returns:
            Filled submodel carrying ``submodel_id`` as its id
        """
        try:
            template = await self._template(submodel_id)
            tree = self.extractor.extract(template)
            merged = await self.aggregator.fetch_values(tree, submodel_id)
        except NotFoundError as e:
            raise NotFoundError(f"Submodel '{submodel_id}' not found") from e

        submodel = self.filler.fill_submodel(template, merged)
        submodel.id = submodel_id
        return submodel

    async def get_submodel_element(
        self, submodel_id: str, id_short_path: str
    ) -> model.SubmodelElement:
        """
        Get one element of a submodel.

        Only the plugins owning data below the element are queried.
        """
        try:
            template = await self._template(submodel_id)
            tree = self.extractor.extract(template)
            _, node_path = resolve(template, id_short_path, self.extractor, tree.semantic_id)

            request = None
            if node_path is not None:
                request = prune(
                    tree, lambda path, _leaf: path[: len(node_path)] == node_path
                )
            if isinstance(request, BranchNode):
                merged = await self.aggregator.fetch_values(request, submodel_id)
            else:
                logger.debug(f"No data points below '{id_short_path}' of {submodel_id}")
                merged = BranchNode(semantic_id=tree.semantic_id)
        except NotFoundError as e:
            raise NotFoundError(
                f"Submodel element '{id_short_path}' of '{submodel_id}' not found"
            ) from e

        submodel = self.filler.fill_submodel(template, merged)
        element, _ = resolve(submodel, id_short_path, self.extractor, tree.semantic_id)
        return element
