"""
Request Splitter.

Cuts a canonical semantic tree into one pruned sub-tree per plugin,
according to the ownership recorded in a manifest snapshot.
"""

import logging

from twin_engine.config import get_settings
from twin_engine.schemas.manifest import ConflictPolicy
from twin_engine.services.manifest_registry import ManifestSnapshot
from twin_engine.services.semantic_tree import (
    BranchNode,
    Path,
    base_semantic_id,
    iter_leaves,
    prune,
)

logger = logging.getLogger(__name__)


class RequestSplitter:
    """
    Builds per-plugin request trees.

    A leaf belongs to the owner of its own base semantic ID. Leaves whose
    ID nobody owns fall back to the nearest owned ancestor, so a plugin
    claiming a collection, MultiLanguageProperty or Range answers for
    everything below it.
    """

    def __init__(self, index_context_prefix: str | None = None):
        self.index_context_prefix = (
            index_context_prefix
            if index_context_prefix is not None
            else get_settings().index_context_prefix
        )

    def owner_of_path(self, path: Path, snapshot: ManifestSnapshot) -> str | None:
        """
        Plugin responsible for the leaf at ``path``, None if unowned.

        Under the skip-conflicting policy a contested ID stops the walk
        towards the ancestors, so nothing at or below it is requested.
        """
        skip_conflicts = snapshot.policy is ConflictPolicy.SKIP_CONFLICTING
        for semantic_id in reversed(path):
            base_id = base_semantic_id(semantic_id, self.index_context_prefix)
            if skip_conflicts and base_id in snapshot.conflicts:
                return None
            owner = snapshot.owner_of(base_id)
            if owner is not None:
                return owner
        return None

    def assign(self, tree: BranchNode, snapshot: ManifestSnapshot) -> dict[Path, str | None]:
        """Map every leaf path of ``tree`` to its responsible plugin."""
        return {path: self.owner_of_path(path, snapshot) for path, _ in iter_leaves(tree)}

    def split(self, tree: BranchNode, snapshot: ManifestSnapshot) -> dict[str, BranchNode]:
        """
        Split a canonical tree by plugin ownership.

        Args:
            tree: Canonical tree
            snapshot: Active manifest snapshot

        Returns:
            Plugin name to pruned sub-tree, in registration order. Plugins
            owning nothing in ``tree`` are omitted.
        """
        owners = self.assign(tree, snapshot)
        unowned = [path for path, owner in owners.items() if owner is None]
        if unowned:
            logger.debug(f"{len(unowned)} leaf path(s) are not owned by any plugin")

        result: dict[str, BranchNode] = {}
        for plugin_name in snapshot.plugin_names:
            sub_tree = prune(tree, lambda path, _leaf: owners.get(path) == plugin_name)
            if isinstance(sub_tree, BranchNode):
                result[plugin_name] = sub_tree
        return result


def required_paths(tree: BranchNode) -> set[Path]:
    """Paths of leaves whose cardinality makes them required."""
    return {path for path, leaf in iter_leaves(tree) if leaf.cardinality.is_required}
