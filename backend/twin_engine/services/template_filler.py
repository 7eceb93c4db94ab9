"""
Template Filler.

Overlays merged plugin values onto templates. Templates are immutable
blueprints: every fill works on an independent deep copy, so concurrent
requests never observe each other's values.
"""

import base64
import binascii
import copy
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from basyx.aas import model

from twin_engine.exceptions import InternalDataError
from twin_engine.schemas.descriptors import (
    AssetAdministrationShell,
    AssetData,
    AssetInformation,
    Endpoint,
    ProtocolInformation,
    Resource,
    ShellDescriptor,
    ShellDescriptorMetadata,
    SpecificAssetId,
    SpecificAssetIdData,
    SubmodelDescriptor,
)
from twin_engine.services.semantic_extractor import (
    RANGE_MAX_POSTFIX,
    RANGE_MIN_POSTFIX,
    SemanticTreeExtractor,
)
from twin_engine.services.semantic_tree import BranchNode, LeafNode, SemanticTreeNode
from twin_engine.utils.xsd_mapping import to_lexical, xsd_type_name

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TemplateFiller:
    """
    Service for filling templates with merged values.

    The fill process:
    1. Deep-copy the template
    2. Overlay identity fields and values from plugins
    3. Leave everything the plugins did not supply as in the template
    """

    def __init__(self, extractor: SemanticTreeExtractor | None = None):
        self.extractor = extractor or SemanticTreeExtractor()

    def fill_shell_descriptor(
        self,
        template: ShellDescriptor,
        metadata: ShellDescriptorMetadata,
        href: str,
    ) -> ShellDescriptor:
        """
        Fill a shell descriptor template.

        Args:
            template: Shell descriptor template
            metadata: Plugin metadata of one shell
            href: Endpoint address of the shell

        Returns:
            New descriptor; ``specificAssetIds`` is replaced outright

        Raises:
            InternalDataError: If the template has no endpoint
        """
        descriptor = self._clone(template)
        if not descriptor.endpoints:
            raise InternalDataError("Shell descriptor template has no endpoint")

        descriptor.endpoints[0].protocolInformation.href = href
        descriptor.globalAssetId = metadata.globalAssetId
        descriptor.idShort = metadata.idShort
        descriptor.id = metadata.id
        descriptor.specificAssetIds = self._specific_asset_ids(metadata.specificAssetIds)
        return descriptor

    def fill_shell_descriptors(
        self,
        template: ShellDescriptor,
        rows: list[ShellDescriptorMetadata],
        href_for: Callable[[ShellDescriptorMetadata], str],
    ) -> list[ShellDescriptor]:
        """Fill one independent copy of the template per metadata row."""
        return [self.fill_shell_descriptor(template, row, href_for(row)) for row in rows]

    def fill_asset_information(
        self, template: AssetInformation, data: AssetData
    ) -> AssetInformation:
        """
        Fill an asset information template.

        The thumbnail is only set when the plugin supplied both path and
        content type.
        """
        info = self._clone(template)
        thumbnail = data.defaultThumbnail
        if (
            thumbnail is not None
            and thumbnail.path
            and thumbnail.path.strip()
            and thumbnail.contentType
            and thumbnail.contentType.strip()
        ):
            info.defaultThumbnail = Resource(path=thumbnail.path, contentType=thumbnail.contentType)
        info.globalAssetId = data.globalAssetId
        info.specificAssetIds = self._specific_asset_ids(data.specificAssetIds)
        return info

    def fill_shell(
        self,
        template: AssetAdministrationShell,
        aas_id: str,
        asset_information: AssetInformation,
    ) -> AssetAdministrationShell:
        """Fill a shell template with its id and asset information."""
        shell = self._clone(template)
        shell.id = aas_id
        shell.assetInformation = self._clone(asset_information)
        return shell

    def fill_submodel_descriptor(
        self, template: SubmodelDescriptor, submodel_id: str, href: str
    ) -> SubmodelDescriptor:
        """Fill a submodel descriptor template; every endpoint gets ``href``."""
        descriptor = self._clone(template)
        descriptor.id = submodel_id
        if not descriptor.endpoints:
            descriptor.endpoints = [
                Endpoint(
                    interface="SUBMODEL-3.0",
                    protocolInformation=ProtocolInformation(href=href, endpointProtocol="http"),
                )
            ]
        for endpoint in descriptor.endpoints:
            endpoint.protocolInformation.href = href
        return descriptor

    def fill_submodel(self, template: model.Submodel, values: BranchNode) -> model.Submodel:
        """
        Fill a submodel template with a merged value tree.

        Elements are matched to tree nodes with the same naming rules used
        for extraction. Absent leaves leave the template value untouched.
        An element whose node returned several occurrences is replaced by
        one filled copy per occurrence; outside of lists the copies get the
        0-based occurrence number appended to their idShort.

        Args:
            template: Submodel template
            values: Merged tree, possibly pruned to a part of the template

        Returns:
            Filled deep copy of the template
        """
        submodel = self._clone(template)
        logger.debug(f"Filling submodel: {submodel.id_short}")
        self._fill_elements(submodel.submodel_element, values, is_list=False)
        return submodel

    def _fill_elements(self, elements, branch: BranchNode, is_list: bool) -> None:
        filled = []
        expanded = False
        for position, element in enumerate(list(elements), start=1):
            node_id = self.extractor.node_id(element, position if is_list else None)
            node = branch.child(node_id) if node_id is not None else None
            if node is None:
                filled.append(element)
                continue

            occurrences = self._occurrences(node)
            if len(occurrences) <= 1:
                if occurrences:
                    self._fill_single_element(element, occurrences[0])
                filled.append(element)
                continue

            elements.remove(element)
            for index, occurrence in enumerate(occurrences):
                clone = self._clone(element)
                if not is_list:
                    clone.id_short = f"{element.id_short}{index}"
                self._fill_single_element(clone, occurrence)
                filled.append(clone)
            expanded = True

        if expanded:
            logger.debug(f"Expanded repeated elements under '{branch.semantic_id}'")
            elements.clear()
            for element in filled:
                elements.add(element)

    @staticmethod
    def _occurrences(node: SemanticTreeNode) -> list[SemanticTreeNode]:
        """Nodes to fill one element each, empty when nothing was returned."""
        if isinstance(node, BranchNode) and node.instances is not None:
            return list(node.instances)
        if isinstance(node, LeafNode) and node.cardinality.is_many:
            if not isinstance(node.value, list):
                return [node]
            return [node.with_value([value]) for value in node.value]
        return [node]

    def _fill_single_element(self, element: model.SubmodelElement, node: SemanticTreeNode) -> None:
        """
        Fill a single element with its node.

        Handles each element type appropriately.
        """
        if isinstance(element, model.SubmodelElementCollection):
            if isinstance(node, BranchNode):
                self._fill_elements(element.value, node, is_list=False)

        elif isinstance(element, model.SubmodelElementList):
            if isinstance(node, BranchNode):
                self._fill_elements(element.value, node, is_list=True)

        elif isinstance(element, model.MultiLanguageProperty):
            if isinstance(node, BranchNode):
                self._fill_multilang(element, node)

        elif isinstance(element, model.Range):
            if isinstance(node, BranchNode):
                self._fill_range(element, node)

        elif isinstance(node, LeafNode):
            value = self._single(node)
            if value is None:
                return
            if isinstance(element, model.Property):
                element.value = self._convert(value, element.value_type, node)
            elif isinstance(element, model.File):
                element.value = str(value)
            elif isinstance(element, model.Blob):
                element.value = self._decode_blob(value, node)
            elif isinstance(element, model.ReferenceElement):
                element.value = self._build_reference(value, element.value)

    def _fill_multilang(self, element: model.MultiLanguageProperty, node: BranchNode) -> None:
        """Fill a MultiLanguageProperty element language by language."""
        texts = dict(element.value) if element.value else {}
        for language in list(texts):
            leaf = node.child(self.extractor.language_id(node.semantic_id, language))
            if isinstance(leaf, LeafNode) and leaf.value:
                texts[language] = leaf.value
        if texts:
            element.value = model.MultiLanguageTextType(texts)

    def _fill_range(self, element: model.Range, node: BranchNode) -> None:
        """Fill a Range element."""
        low = node.child(node.semantic_id + RANGE_MIN_POSTFIX)
        high = node.child(node.semantic_id + RANGE_MAX_POSTFIX)
        if isinstance(low, LeafNode) and low.value is not None:
            element.min = self._convert(low.value, element.value_type, low)
        if isinstance(high, LeafNode) and high.value is not None:
            element.max = self._convert(high.value, element.value_type, high)

    @staticmethod
    def _single(node: LeafNode) -> Any:
        """Value of a leaf filling one element; repeated leaves arrive split."""
        if node.cardinality.is_many and isinstance(node.value, list):
            return node.value[0] if node.value else None
        return node.value

    @staticmethod
    def _convert(value: Any, value_type, node: LeafNode) -> Any:
        """Convert a leaf value to the element's XSD type."""
        if value is None:
            return None
        try:
            return model.datatypes.from_xsd(to_lexical(value), value_type)
        except (ValueError, TypeError) as e:
            raise InternalDataError(
                f"Value for '{node.semantic_id}' is not a valid {xsd_type_name(value_type)}"
            ) from e

    @staticmethod
    def _decode_blob(value: Any, node: LeafNode) -> bytes | None:
        if value is None:
            return None
        try:
            return base64.b64decode(str(value), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InternalDataError(f"Blob value for '{node.semantic_id}' is not base64") from e

    @staticmethod
    def _build_reference(
        values: list[str], existing: model.Reference | None
    ) -> model.Reference | None:
        """Create a model reference with new key values, preserving key types."""
        if not isinstance(existing, model.ModelReference) or not values:
            return existing
        keys = list(existing.key or ())
        if not keys:
            return existing
        new_keys = tuple(
            model.Key(keys[min(index, len(keys) - 1)].type, value)
            for index, value in enumerate(values)
        )
        existing_type = (
            getattr(existing, "type_", None)
            or getattr(existing, "type", None)
            or model.Referable
        )
        return model.ModelReference(
            key=new_keys,
            type_=existing_type,
            referred_semantic_id=getattr(existing, "referred_semantic_id", None),
        )

    @staticmethod
    def _specific_asset_ids(rows: list[SpecificAssetIdData] | None) -> list[SpecificAssetId]:
        return [SpecificAssetId(name=row.name or "", value=row.value or "") for row in rows or []]

    @staticmethod
    def _clone(template: T) -> T:
        """
        Create an independent deep copy of a template.

        Raises:
            InternalDataError: If the template cannot be copied
        """
        try:
            return copy.deepcopy(template)
        except (copy.Error, TypeError, RecursionError) as e:
            raise InternalDataError("Failed to clone template") from e
