"""
Request/response codec for plugin data calls.

A plugin is asked for values by sending it a JSON Schema (Draft 7) that
describes the expected answer; the answer is a JSON document keyed by
semantic IDs, starting with the root's semantic ID.
"""

import json
import logging
from datetime import datetime
from typing import Any

from twin_engine.exceptions import InternalDataError, SchemaViolationError
from twin_engine.services.semantic_tree import (
    BranchNode,
    DataType,
    LeafNode,
    SemanticTreeNode,
)

logger = logging.getLogger(__name__)

DRAFT7_SCHEMA_ID = "http://json-schema.org/draft-07/schema#"

_LEAF_SCHEMAS: dict[DataType, dict[str, Any]] = {
    DataType.STRING: {"type": "string"},
    DataType.ENUM_CODE: {"type": "string"},
    DataType.INTEGER: {"type": "integer"},
    DataType.NUMBER: {"type": "number"},
    DataType.BOOLEAN: {"type": "boolean"},
    DataType.TIMESTAMP: {"type": "string", "format": "date-time"},
    DataType.STRING_ARRAY: {"type": "array", "items": {"type": "string"}},
}


def build_request_schema(tree: BranchNode) -> dict[str, Any]:
    """
    Build the Draft 7 request schema for a (sub-)tree.

    Args:
        tree: Request tree; leaf values are ignored

    Returns:
        Schema of an object with a single property named after the root
    """
    return {
        "$schema": DRAFT7_SCHEMA_ID,
        "type": "object",
        "properties": {tree.semantic_id: _node_schema(tree)},
        "required": [tree.semantic_id],
    }


def _node_schema(node: SemanticTreeNode) -> dict[str, Any]:
    if isinstance(node, BranchNode):
        schema = {
            "type": "object",
            "properties": {child.semantic_id: _node_schema(child) for child in node.children},
            "required": [
                child.semantic_id for child in node.children if child.cardinality.is_required
            ],
        }
        if not node.cardinality.is_many:
            return schema
        schema = {"type": "array", "items": schema}
        if not node.cardinality.is_required:
            schema = {"anyOf": [schema, {"type": "null"}]}
        return schema
    if isinstance(node, LeafNode):
        return _leaf_schema(node)
    raise InternalDataError(f"Unsupported node type {type(node).__name__}")


def _leaf_schema(leaf: LeafNode) -> dict[str, Any]:
    schema = dict(_LEAF_SCHEMAS[leaf.data_type])
    if leaf.cardinality.is_many:
        schema = {"type": "array", "items": schema}
    if not leaf.cardinality.is_required:
        schema = {"anyOf": [schema, {"type": "null"}]}
    return schema


def decode_payload(payload: Any) -> Any:
    """Unwrap an answer that arrived as a JSON string."""
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise SchemaViolationError(issues=[f"$: not a JSON document ({e.msg})"]) from e
    return payload


def parse_response(payload: Any, tree: BranchNode) -> BranchNode:
    """
    Convert a plugin answer into a typed tree mirroring ``tree``.

    Properties the request did not ask for are ignored; missing or null
    properties become absent leaves.

    Args:
        payload: Decoded JSON answer, or a JSON string wrapping it
        tree: The request tree the answer belongs to

    Returns:
        Value tree with the same structure as ``tree``

    Raises:
        SchemaViolationError: If values cannot be read as their data type
    """
    payload = decode_payload(payload)
    if not isinstance(payload, dict):
        raise SchemaViolationError(issues=["$: expected an object"])

    try:
        node = _parse_node(tree, payload.get(tree.semantic_id))
    except InternalDataError as e:
        raise SchemaViolationError(issues=[e.message]) from e
    if not isinstance(node, BranchNode):
        raise SchemaViolationError(issues=["$: root must be an object"])
    return node


def _parse_node(node: SemanticTreeNode, data: Any) -> SemanticTreeNode:
    if isinstance(node, BranchNode):
        if not node.cardinality.is_many:
            return _parse_branch(node, data)
        if data is not None and not isinstance(data, list):
            raise InternalDataError(f"'{node.semantic_id}': expected a list")
        branch = _parse_branch(node, None)
        if data is not None:
            branch.instances = [_parse_branch(node, item) for item in data]
        return branch
    if isinstance(node, LeafNode):
        return node.with_value(_parse_leaf_value(node, data))
    raise InternalDataError(f"Unsupported node type {type(node).__name__}")


def _parse_leaf_value(leaf: LeafNode, data: Any) -> Any:
    if data is None:
        return None
    if leaf.cardinality.is_many:
        if not isinstance(data, list):
            raise InternalDataError(f"'{leaf.semantic_id}': expected a list")
        return [_parse_scalar(leaf, item) for item in data]
    return _parse_scalar(leaf, data)


def _parse_scalar(leaf: LeafNode, data: Any) -> Any:
    if leaf.data_type is DataType.TIMESTAMP:
        if not isinstance(data, str):
            raise InternalDataError(f"'{leaf.semantic_id}': expected a timestamp string")
        try:
            return datetime.fromisoformat(data.replace("Z", "+00:00"))
        except ValueError as e:
            raise InternalDataError(f"'{leaf.semantic_id}': invalid timestamp '{data}'") from e
    if leaf.data_type is DataType.INTEGER and isinstance(data, float) and data.is_integer():
        return int(data)
    return data


def _parse_branch(node: BranchNode, data: Any) -> BranchNode:
    if data is not None and not isinstance(data, dict):
        raise InternalDataError(f"'{node.semantic_id}': expected an object")
    values = data or {}
    return BranchNode(
        semantic_id=node.semantic_id,
        cardinality=node.cardinality,
        children=[_parse_node(child, values.get(child.semantic_id)) for child in node.children],
    )
