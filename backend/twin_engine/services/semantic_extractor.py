"""
Semantic tree extraction from submodel templates.

Walks a BaSyx Submodel template and derives the canonical semantic tree:
collections and lists become branches, value-carrying elements become
typed leaves. The same naming rules are used when merged values are
written back, see ``TemplateFiller.fill_submodel``.
"""

import logging
import re

from basyx.aas import model

from twin_engine.config import get_settings
from twin_engine.services.semantic_tree import (
    BranchNode,
    Cardinality,
    DataType,
    LeafNode,
    SemanticTreeNode,
)
from twin_engine.utils.xsd_mapping import get_data_type

logger = logging.getLogger(__name__)

RANGE_MIN_POSTFIX = "_min"
RANGE_MAX_POSTFIX = "_max"

_TRAILING_INDEX = re.compile(r"\d+$")


class SemanticTreeExtractor:
    """
    Service for deriving semantic trees from submodel templates.

    Naming rules:
    - A node is named by the element's semantic ID, or by the value of
      the internal semantic ID qualifier when the element carries one
    - Repeated instances (trailing digits in idShort, or the position of
      an item in a SubmodelElementList) get ``<index prefix><n>`` appended
    - MultiLanguageProperty becomes a branch with one leaf per language
    - Range becomes a branch with ``_min`` and ``_max`` leaves
    - Elements without any semantic ID are skipped
    """

    CARDINALITY_QUALIFIER_TYPES = (
        "Multiplicity",
        "cardinality",
        "Cardinality",
        "SMT/Cardinality",
    )

    def __init__(
        self,
        mlp_postfix_separator: str | None = None,
        index_context_prefix: str | None = None,
        internal_semantic_id_qualifier: str | None = None,
    ):
        settings = get_settings()
        self.mlp_postfix_separator = (
            mlp_postfix_separator
            if mlp_postfix_separator is not None
            else settings.mlp_postfix_separator
        )
        self.index_context_prefix = (
            index_context_prefix
            if index_context_prefix is not None
            else settings.index_context_prefix
        )
        self.internal_semantic_id_qualifier = (
            internal_semantic_id_qualifier or settings.internal_semantic_id_qualifier
        )

    def extract(self, submodel: model.Submodel) -> BranchNode:
        """
        Extract the semantic tree of a submodel template.

        Args:
            submodel: Submodel template

        Returns:
            Root branch named after the submodel's semantic ID
        """
        root_id = self._serialize_reference(submodel.semantic_id) or submodel.id_short or ""
        root = BranchNode(semantic_id=root_id)
        logger.debug(f"Extracting semantic tree for submodel {submodel.id_short}")
        self._add_children(root, submodel.submodel_element, is_list=False)
        return root

    def node_id(self, element: model.SubmodelElement, position: int | None = None) -> str | None:
        """
        Get the node name for an element.

        Args:
            element: Template element
            position: 1-based position for items of a SubmodelElementList

        Returns:
            Semantic ID with instance suffix, or None if the element has none
        """
        semantic_id = self._semantic_id(element)
        if not semantic_id:
            return None

        index = None
        if position is not None:
            index = str(position)
        elif element.id_short:
            match = _TRAILING_INDEX.search(element.id_short)
            if match:
                index = match.group(0)

        if index is None:
            return semantic_id
        return f"{semantic_id}{self.index_context_prefix}{index}"

    def language_id(self, node_id: str, language: str) -> str:
        """Name of the per-language leaf of a MultiLanguageProperty."""
        return f"{node_id}{self.mlp_postfix_separator}{language}"

    def _add_children(self, branch: BranchNode, elements, is_list: bool) -> None:
        for position, element in enumerate(elements, start=1):
            node = self._element_to_node(element, position if is_list else None)
            if node is None:
                continue
            if branch.child(node.semantic_id) is not None:
                logger.warning(
                    f"Skipping duplicate element '{node.semantic_id}' under '{branch.semantic_id}'"
                )
                continue
            branch.add_child(node)

    def _element_to_node(
        self,
        element: model.SubmodelElement,
        position: int | None,
    ) -> SemanticTreeNode | None:
        """
        Convert a SubmodelElement to a semantic tree node.

        Recursively processes nested elements (SMC, SML).
        """
        node_id = self.node_id(element, position)
        if node_id is None:
            logger.debug(f"Skipping element without semantic ID: {element.id_short}")
            return None

        cardinality = self._extract_cardinality(element)

        if isinstance(element, model.SubmodelElementCollection):
            branch = BranchNode(semantic_id=node_id, cardinality=cardinality)
            if not element.value:
                logger.warning(f"No elements defined in collection {element.id_short}")
            self._add_children(branch, element.value, is_list=False)
            return branch

        if isinstance(element, model.SubmodelElementList):
            branch = BranchNode(semantic_id=node_id, cardinality=cardinality)
            if not element.value:
                logger.warning(f"No elements defined in list {element.id_short}")
            self._add_children(branch, element.value, is_list=True)
            return branch

        if isinstance(element, model.MultiLanguageProperty):
            branch = BranchNode(semantic_id=node_id, cardinality=cardinality)
            if not element.value:
                logger.warning(f"No languages defined in {element.id_short}")
                return branch
            for language in element.value:
                branch.add_child(
                    LeafNode(
                        semantic_id=self.language_id(node_id, language),
                        cardinality=Cardinality.ZERO_TO_ONE,
                        data_type=DataType.STRING,
                    )
                )
            return branch

        if isinstance(element, model.Range):
            data_type = get_data_type(element.value_type)
            return BranchNode(
                semantic_id=node_id,
                cardinality=cardinality,
                children=[
                    LeafNode(
                        semantic_id=node_id + RANGE_MIN_POSTFIX,
                        cardinality=Cardinality.ZERO_TO_ONE,
                        data_type=data_type,
                    ),
                    LeafNode(
                        semantic_id=node_id + RANGE_MAX_POSTFIX,
                        cardinality=Cardinality.ZERO_TO_ONE,
                        data_type=data_type,
                    ),
                ],
            )

        if isinstance(element, model.Property):
            data_type = get_data_type(element.value_type)
            if data_type is DataType.STRING and element.value_id is not None:
                data_type = DataType.ENUM_CODE
            return LeafNode(semantic_id=node_id, cardinality=cardinality, data_type=data_type)

        if isinstance(element, (model.File, model.Blob)):
            return LeafNode(semantic_id=node_id, cardinality=cardinality, data_type=DataType.STRING)

        if isinstance(element, model.ReferenceElement):
            if not isinstance(element.value, model.ModelReference):
                return None
            return LeafNode(
                semantic_id=node_id, cardinality=cardinality, data_type=DataType.STRING_ARRAY
            )

        logger.debug(f"Skipping unsupported element type {type(element).__name__}")
        return None

    def _semantic_id(self, element: model.SubmodelElement) -> str | None:
        for q in getattr(element, "qualifier", []) or []:
            q_type = getattr(q, "type_", None) or getattr(q, "type", None)
            if q_type == self.internal_semantic_id_qualifier and q.value:
                return str(q.value)
        return self._serialize_reference(getattr(element, "semantic_id", None))

    def _extract_cardinality(self, element: model.SubmodelElement) -> Cardinality:
        """
        Extract cardinality constraint from Qualifiers.

        Elements without a cardinality qualifier are UNKNOWN, which is
        treated as optional.
        """
        for q in getattr(element, "qualifier", []) or []:
            q_type = getattr(q, "type_", None) or getattr(q, "type", None)
            if q_type in self.CARDINALITY_QUALIFIER_TYPES:
                cardinality = Cardinality.parse(q.value)
                if cardinality is not Cardinality.UNKNOWN:
                    return cardinality
        return Cardinality.UNKNOWN

    @staticmethod
    def _serialize_reference(ref) -> str | None:
        """Get the first key's value of a reference."""
        if ref is None:
            return None
        if getattr(ref, "key", None):
            return ref.key[0].value
        return None
