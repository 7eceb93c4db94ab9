"""
idShort path navigation.

An idShort path addresses a submodel element: segments are separated by
``.``, and ``name[3]`` selects the item at 0-based index 3 of the
SubmodelElementList ``name``.
"""

import re

from basyx.aas import model

from twin_engine.exceptions import InvalidInputError, NotFoundError
from twin_engine.services.semantic_extractor import SemanticTreeExtractor
from twin_engine.services.semantic_tree import Path

_LIST_INDEX = re.compile(r"^(.+?)\[(\d+)\]$")


def parse_id_short_path(id_short_path: str) -> list[tuple[str, int | None]]:
    """
    Split an idShort path into ``(idShort, list index)`` segments.

    Raises:
        InvalidInputError: If the path or one of its segments is empty
    """
    if not id_short_path or not id_short_path.strip():
        raise InvalidInputError("idShort path must not be empty")

    segments = []
    for segment in id_short_path.split("."):
        if not segment:
            raise InvalidInputError(f"Malformed idShort path '{id_short_path}'")
        match = _LIST_INDEX.match(segment)
        if match:
            segments.append((match.group(1), int(match.group(2))))
        else:
            segments.append((segment, None))
    return segments


def _find(elements, id_short: str) -> model.SubmodelElement | None:
    for element in elements:
        if element.id_short == id_short:
            return element
    return None


def _children(element: model.SubmodelElement):
    if isinstance(element, (model.SubmodelElementCollection, model.SubmodelElementList)):
        return element.value
    return None


def resolve(
    submodel: model.Submodel,
    id_short_path: str,
    extractor: SemanticTreeExtractor,
    root_id: str,
) -> tuple[model.SubmodelElement, Path | None]:
    """
    Find the element an idShort path addresses.

    Args:
        submodel: Submodel to navigate
        id_short_path: Path to resolve
        extractor: Naming rules for semantic tree nodes
        root_id: Semantic ID of the tree root

    Returns:
        Tuple of (element, structural path of its tree node). The node
        path is None when an element on the way has no semantic ID, in
        which case no plugin holds data for it.

    Raises:
        NotFoundError: If the path does not exist in the submodel
    """
    elements = submodel.submodel_element
    node_path: Path | None = (root_id,)
    element = None

    for id_short, index in parse_id_short_path(id_short_path):
        if elements is None:
            raise NotFoundError(f"Submodel element '{id_short_path}' not found")
        element = _find(elements, id_short)
        if element is None:
            raise NotFoundError(f"Submodel element '{id_short_path}' not found")
        node_path = _extend(node_path, extractor.node_id(element))

        if index is not None:
            if not isinstance(element, model.SubmodelElementList):
                raise NotFoundError(f"'{id_short}' in '{id_short_path}' is not a list")
            items = list(element.value)
            if index >= len(items):
                raise NotFoundError(f"Index {index} of '{id_short}' is out of range")
            element = items[index]
            node_path = _extend(node_path, extractor.node_id(element, index + 1))

        elements = _children(element)

    if element is None:
        raise NotFoundError(f"Submodel element '{id_short_path}' not found")
    return element, node_path


def _extend(node_path: Path | None, node_id: str | None) -> Path | None:
    if node_path is None or node_id is None:
        return None
    return node_path + (node_id,)
