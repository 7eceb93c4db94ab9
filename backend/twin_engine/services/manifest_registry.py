"""
Plugin Manifest Registry and conflict resolver.

Holds the immutable snapshot of which plugin owns which semantic ID.
Conflicts between plugins are detected once per load and resolved with
the configured policy. A new snapshot replaces the old one by a single
reference swap, so readers always see one complete snapshot.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from twin_engine.clients.plugin_client import PluginClient
from twin_engine.exceptions import (
    ConflictError,
    InternalDataError,
    TwinEngineError,
    UnavailableError,
)
from twin_engine.schemas.manifest import ConflictPolicy, PluginManifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestSnapshot:
    """Manifests in configuration order plus the resolved ownership."""

    manifests: tuple[PluginManifest, ...]
    ownership: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    conflicts: frozenset[str] = frozenset()
    policy: ConflictPolicy = ConflictPolicy.PREFER_FIRST_REGISTERED

    @property
    def plugin_names(self) -> list[str]:
        return [m.pluginName for m in self.manifests]

    def index_of(self, plugin_name: str) -> int:
        """Registration index of a plugin; unknown plugins sort last."""
        for index, manifest in enumerate(self.manifests):
            if manifest.pluginName == plugin_name:
                return index
        return len(self.manifests)

    def manifest(self, plugin_name: str) -> PluginManifest | None:
        for manifest in self.manifests:
            if manifest.pluginName == plugin_name:
                return manifest
        return None

    def owner_of(self, semantic_id: str) -> str | None:
        """Plugin that owns a semantic ID, None if unowned or conflicting."""
        return self.ownership.get(semantic_id)

    def owned_ids(self, plugin_name: str) -> list[str]:
        """Semantic IDs a plugin owns after conflict resolution."""
        manifest = self.manifest(plugin_name)
        if manifest is None:
            return []
        return [
            semantic_id
            for semantic_id in manifest.supportedSemanticIds
            if self.ownership.get(semantic_id) == plugin_name
        ]

    def plugins_with(self, capability: str) -> list[str]:
        """Plugins that declare a capability, in registration order."""
        return [
            m.pluginName for m in self.manifests if getattr(m.capabilities, capability, False)
        ]


def resolve_conflicts(
    manifests: Sequence[PluginManifest], policy: ConflictPolicy
) -> tuple[dict[str, str], set[str]]:
    """
    Compute semantic ID ownership for manifests in registration order.

    Args:
        manifests: Manifests in registration order
        policy: Conflict policy

    Returns:
        Tuple of (ownership map, conflicting semantic IDs)

    Raises:
        ConflictError: If the policy is fail-fast and any ID is claimed twice
    """
    claims: dict[str, list[str]] = {}
    for manifest in manifests:
        for semantic_id in manifest.supportedSemanticIds:
            claims.setdefault(semantic_id, []).append(manifest.pluginName)

    conflicts = {semantic_id for semantic_id, owners in claims.items() if len(owners) > 1}
    for semantic_id in sorted(conflicts):
        logger.warning(
            f"Semantic ID '{semantic_id}' claimed by plugins {claims[semantic_id]}"
        )

    if conflicts and policy is ConflictPolicy.FAIL_FAST:
        raise ConflictError(semantic_ids=list(conflicts))

    ownership: dict[str, str] = {}
    for semantic_id, owners in claims.items():
        if semantic_id in conflicts and policy is ConflictPolicy.SKIP_CONFLICTING:
            continue
        ownership[semantic_id] = owners[0]
    return ownership, conflicts


class ManifestRegistry:
    """
    Registry of plugin manifests.

    The snapshot has one writer (the loader) and many readers. The health
    flag reports whether the last load succeeded; a failed load keeps the
    previous snapshot active.
    """

    def __init__(
        self,
        plugin_client: PluginClient,
        policy: ConflictPolicy = ConflictPolicy.PREFER_FIRST_REGISTERED,
    ):
        self.plugin_client = plugin_client
        self.policy = policy
        self._snapshot: ManifestSnapshot | None = None
        self._healthy = False

    def is_healthy(self) -> bool:
        """Whether the last manifest load succeeded."""
        return self._healthy

    def manifests(self) -> ManifestSnapshot:
        """
        Get the current snapshot.

        Raises:
            UnavailableError: If no manifests were ever loaded
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise UnavailableError("Plugin manifests are not loaded")
        if not self._healthy:
            logger.debug("Serving from last known-good manifest snapshot")
        return snapshot

    async def load_manifests(self) -> ManifestSnapshot:
        """
        Fetch manifests from every configured plugin and activate them.

        Returns:
            The newly active snapshot

        Raises:
            TwinEngineError: If any plugin fails or conflicts are fatal
        """
        names = self.plugin_client.plugin_names
        logger.info(f"Loading manifests from {len(names)} plugin(s)")
        try:
            manifests = await asyncio.gather(
                *(self.plugin_client.get_manifest(name) for name in names)
            )
        except TwinEngineError:
            self._healthy = False
            logger.exception("Failed to load plugin manifests")
            raise
        return self.apply_manifests(list(manifests))

    def apply_manifests(self, manifests: Sequence[PluginManifest]) -> ManifestSnapshot:
        """
        Resolve conflicts and swap in a new snapshot.

        Args:
            manifests: Manifests in registration order

        Returns:
            The newly active snapshot

        Raises:
            ConflictError: On conflicts under the fail-fast policy
            InternalDataError: If there are no manifests or names repeat
        """
        try:
            if not manifests:
                raise InternalDataError("No plugin manifests available")
            names = [m.pluginName for m in manifests]
            if len(set(names)) != len(names):
                raise InternalDataError(f"Duplicate plugin names: {names}")

            ownership, conflicts = resolve_conflicts(manifests, self.policy)
        except TwinEngineError as e:
            self._healthy = False
            logger.error(f"Manifest load rejected, keeping previous snapshot: {e.message}")
            raise

        snapshot = ManifestSnapshot(
            manifests=tuple(manifests),
            ownership=MappingProxyType(ownership),
            conflicts=frozenset(conflicts),
            policy=self.policy,
        )
        self._snapshot = snapshot
        self._healthy = True
        logger.info(
            f"Activated manifests of {len(manifests)} plugin(s) owning "
            f"{len(ownership)} semantic ID(s), {len(conflicts)} conflict(s)"
        )
        return snapshot
