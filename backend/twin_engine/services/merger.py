"""
Tree Merger.

Combines the partial value trees returned by plugins into one tree with
the canonical shape, keyed by structural path.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from twin_engine.exceptions import ConflictError, InternalDataError
from twin_engine.schemas.manifest import ConflictPolicy
from twin_engine.services.semantic_tree import BranchNode, LeafNode, Path, SemanticTreeNode

logger = logging.getLogger(__name__)

# (registration index, plugin name, value)
Offer = tuple[int, str, Any]
# (registration index, plugin name, node returned at the same path)
Candidate = tuple[int, str, SemanticTreeNode]


class TreeMerger:
    """
    Merges per-plugin value trees.

    For every leaf path of the canonical tree, each plugin whose tree has
    a present value at that path makes an offer:
    - no offer: the leaf stays absent
    - one offer: that value is used
    - several offers: the conflict policy decides, using registration
      order and never arrival order

    Branches always appear in canonical order, even if no plugin
    returned anything below them. Occurrences of repeated branches are
    merged by position: the n-th instances of all plugins form the n-th
    merged instance.
    """

    def merge(
        self,
        canonical: BranchNode,
        per_plugin: Mapping[str, BranchNode],
        policy: ConflictPolicy,
        plugin_order: Sequence[str],
    ) -> BranchNode:
        """
        Merge plugin trees onto the canonical shape.

        Args:
            canonical: Canonical tree defining the result's shape
            per_plugin: Plugin name to returned value tree
            policy: Conflict policy for multiple offers
            plugin_order: Plugin names in registration order

        Returns:
            Tree structurally identical to ``canonical``

        Raises:
            ConflictError: On multiple offers under the fail-fast policy
        """
        rank = {name: index for index, name in enumerate(plugin_order)}
        candidates: list[Candidate] = sorted(
            (
                (rank.get(plugin_name, len(rank)), plugin_name, tree)
                for plugin_name, tree in per_plugin.items()
            ),
            key=lambda candidate: candidate[0],
        )

        merged = self._merge_node(canonical, (), candidates, policy)
        if not isinstance(merged, BranchNode):
            raise InternalDataError("Canonical tree root must be a branch")
        return merged

    def _merge_node(
        self,
        node: SemanticTreeNode,
        prefix: Path,
        candidates: list[Candidate],
        policy: ConflictPolicy,
    ) -> SemanticTreeNode:
        path = prefix + (node.semantic_id,)
        if isinstance(node, LeafNode):
            offers = [
                (index, plugin_name, candidate.value)
                for index, plugin_name, candidate in candidates
                if isinstance(candidate, LeafNode) and candidate.value is not None
            ]
            return node.with_value(self._resolve(path, offers, policy))
        if not isinstance(node, BranchNode):
            raise InternalDataError(f"Unsupported node type {type(node).__name__}")

        branches = [
            (index, plugin_name, candidate)
            for index, plugin_name, candidate in candidates
            if isinstance(candidate, BranchNode)
        ]
        merged = BranchNode(
            semantic_id=node.semantic_id,
            cardinality=node.cardinality,
            children=[
                self._merge_node(child, path, self._children_of(branches, child), policy)
                for child in node.children
            ],
        )
        if node.cardinality.is_many:
            merged.instances = self._merge_instances(node, prefix, branches, policy)
        return merged

    def _merge_instances(
        self,
        node: BranchNode,
        prefix: Path,
        branches: list[Candidate],
        policy: ConflictPolicy,
    ) -> list[BranchNode] | None:
        offered = [
            (index, plugin_name, candidate.instances)
            for index, plugin_name, candidate in branches
            if candidate.instances is not None
        ]
        if not offered:
            return None

        count = max(len(instances) for _, _, instances in offered)
        merged = []
        for position in range(count):
            at_position = [
                (index, plugin_name, instances[position])
                for index, plugin_name, instances in offered
                if position < len(instances)
            ]
            merged.append(self._merge_node(node, prefix, at_position, policy))
        return merged

    @staticmethod
    def _children_of(branches: list[Candidate], child: SemanticTreeNode) -> list[Candidate]:
        return [
            (index, plugin_name, found)
            for index, plugin_name, branch in branches
            if (found := branch.child(child.semantic_id)) is not None
        ]

    def _resolve(self, path: Path, offers: list[Offer], policy: ConflictPolicy) -> Any:
        if not offers:
            return None
        if len(offers) == 1:
            return offers[0][2]

        offers = sorted(offers, key=lambda offer: offer[0])
        plugins = [offer[1] for offer in offers]
        if policy is ConflictPolicy.FAIL_FAST:
            raise ConflictError(
                f"Plugins {plugins} all returned a value for '{'/'.join(path)}'",
                semantic_ids=[path[-1]],
            )
        if policy is ConflictPolicy.SKIP_CONFLICTING:
            logger.warning(f"Dropping conflicting values from {plugins} for '{path[-1]}'")
            return None
        logger.debug(f"Taking value of '{plugins[0]}' for '{path[-1]}' over {plugins[1:]}")
        return offers[0][2]
