"""
Semantic tree model.

A semantic tree is the canonical, template-derived shape of a submodel:
branches group children, leaves carry typed values. Every node is named
by its semantic ID, and a node is addressed by its structural path, the
tuple of semantic IDs from the root down to it.
"""

import copy
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from twin_engine.exceptions import InternalDataError

Path = tuple[str, ...]


class Cardinality(str, Enum):
    """How often an element may occur in a submodel."""

    ONE = "One"
    ZERO_TO_ONE = "ZeroToOne"
    ZERO_TO_MANY = "ZeroToMany"
    ONE_TO_MANY = "OneToMany"
    UNKNOWN = "Unknown"

    @property
    def is_required(self) -> bool:
        return self in (Cardinality.ONE, Cardinality.ONE_TO_MANY)

    @property
    def is_many(self) -> bool:
        return self in (Cardinality.ZERO_TO_MANY, Cardinality.ONE_TO_MANY)

    @classmethod
    def parse(cls, value: str | None) -> "Cardinality":
        """
        Parse common cardinality encodings.

        Accepts enum names (``ZeroToOne``) as well as bracket notation
        (``[0..1]``, ``[1..*]``). Anything else is UNKNOWN.
        """
        if value is None:
            return cls.UNKNOWN
        value = str(value).strip()
        for member in cls:
            if member.value.lower() == value.lower():
                return member

        mapping = {
            "[1]": cls.ONE,
            "1": cls.ONE,
            "[0..1]": cls.ZERO_TO_ONE,
            "0..1": cls.ZERO_TO_ONE,
            "[0..*]": cls.ZERO_TO_MANY,
            "0..*": cls.ZERO_TO_MANY,
            "[1..*]": cls.ONE_TO_MANY,
            "1..*": cls.ONE_TO_MANY,
        }
        return mapping.get(value, cls.UNKNOWN)


class DataType(str, Enum):
    """Tag of the value a leaf carries."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    ENUM_CODE = "enum_code"
    STRING_ARRAY = "string_array"

    def accepts(self, value: Any) -> bool:
        """Check that a single payload matches this tag. No coercion."""
        if self in (DataType.STRING, DataType.ENUM_CODE):
            return isinstance(value, str)
        if self is DataType.INTEGER:
            return isinstance(value, int) and not isinstance(value, bool)
        if self is DataType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is DataType.BOOLEAN:
            return isinstance(value, bool)
        if self is DataType.TIMESTAMP:
            return isinstance(value, datetime)
        if self is DataType.STRING_ARRAY:
            return isinstance(value, list) and all(isinstance(v, str) for v in value)
        return False


@dataclass
class SemanticTreeNode:
    """Common part of branches and leaves."""

    semantic_id: str
    cardinality: Cardinality = Cardinality.UNKNOWN


@dataclass
class LeafNode(SemanticTreeNode):
    """
    A terminal data point.

    ``value`` is None when absent. Leaves of *many* cardinality carry a
    list of values of their tag. Mismatching payloads are rejected.
    """

    data_type: DataType = DataType.STRING
    value: Any = None

    def __post_init__(self) -> None:
        self.check_value(self.value)

    def check_value(self, value: Any) -> None:
        """
        Raise if ``value`` does not match this leaf's tag and cardinality.

        Raises:
            InternalDataError: On a type mismatch
        """
        if value is None:
            return
        if self.cardinality.is_many:
            ok = isinstance(value, list) and all(self.data_type.accepts(v) for v in value)
        else:
            ok = self.data_type.accepts(value)
        if not ok:
            raise InternalDataError(
                f"Value of type {type(value).__name__} does not match "
                f"{self.data_type.value} leaf '{self.semantic_id}'"
            )

    def with_value(self, value: Any) -> "LeafNode":
        """Return a copy of this leaf carrying ``value``."""
        return LeafNode(
            semantic_id=self.semantic_id,
            cardinality=self.cardinality,
            data_type=self.data_type,
            value=copy.deepcopy(value),
        )


@dataclass
class BranchNode(SemanticTreeNode):
    """
    An ordered group of uniquely named children.

    In value trees a branch of *many* cardinality lists the returned
    occurrences in ``instances``, each shaped like the branch itself.
    ``children`` then keeps the template shape with absent values. None
    means the branch occurs once and ``children`` carries its values.
    """

    children: list[SemanticTreeNode] = field(default_factory=list)
    instances: list["BranchNode"] | None = None

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for child in self.children:
            if child.semantic_id in seen:
                raise InternalDataError(
                    f"Duplicate sibling '{child.semantic_id}' under '{self.semantic_id}'"
                )
            seen.add(child.semantic_id)

    def add_child(self, node: SemanticTreeNode) -> None:
        """
        Append a child.

        Raises:
            InternalDataError: If a sibling with the same semantic ID exists
        """
        if self.child(node.semantic_id) is not None:
            raise InternalDataError(
                f"Duplicate sibling '{node.semantic_id}' under '{self.semantic_id}'"
            )
        self.children.append(node)

    def child(self, semantic_id: str) -> SemanticTreeNode | None:
        """Get the direct child with the given semantic ID."""
        for node in self.children:
            if node.semantic_id == semantic_id:
                return node
        return None

    def is_empty(self) -> bool:
        return not self.children


def iter_leaves(
    node: SemanticTreeNode, prefix: Path = ()
) -> Iterator[tuple[Path, LeafNode]]:
    """Yield ``(path, leaf)`` for every leaf, depth-first in child order."""
    path = prefix + (node.semantic_id,)
    if isinstance(node, LeafNode):
        yield path, node
    elif isinstance(node, BranchNode):
        for child in node.children:
            yield from iter_leaves(child, path)


def leaf_values(node: SemanticTreeNode) -> dict[Path, Any]:
    """Map path to value for every leaf with a present value, instances excluded."""
    return {path: leaf.value for path, leaf in iter_leaves(node) if leaf.value is not None}


def without_values(node: SemanticTreeNode) -> SemanticTreeNode:
    """Copy of ``node`` with every leaf absent."""
    if isinstance(node, LeafNode):
        return node.with_value(None)
    if isinstance(node, BranchNode):
        return BranchNode(
            semantic_id=node.semantic_id,
            cardinality=node.cardinality,
            children=[without_values(child) for child in node.children],
        )
    raise InternalDataError(f"Unsupported node type {type(node).__name__}")


def prune(
    node: SemanticTreeNode,
    keep: Callable[[Path, LeafNode], bool],
    prefix: Path = (),
) -> SemanticTreeNode | None:
    """
    Copy ``node`` keeping only leaves for which ``keep(path, leaf)`` holds.

    Branches left without children are dropped, so the result holds
    exactly the path prefixes that lead to kept leaves. Leaf values are
    cleared. Returns None if nothing remains.
    """
    path = prefix + (node.semantic_id,)
    if isinstance(node, LeafNode):
        return node.with_value(None) if keep(path, node) else None

    if not isinstance(node, BranchNode):
        raise InternalDataError(f"Unsupported node type {type(node).__name__}")
    children = [
        pruned
        for child in node.children
        if (pruned := prune(child, keep, path)) is not None
    ]
    if not children:
        return None
    return BranchNode(
        semantic_id=node.semantic_id, cardinality=node.cardinality, children=children
    )


def base_semantic_id(semantic_id: str, index_prefix: str) -> str:
    """Strip a trailing ``<index_prefix><n>`` instance suffix."""
    if not index_prefix:
        return semantic_id
    return re.sub(rf"{re.escape(index_prefix)}\d+$", "", semantic_id)
