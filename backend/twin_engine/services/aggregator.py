"""
Plugin aggregation.

Orchestrates one read across plugins: split the canonical tree, query
every involved plugin concurrently, validate and parse each answer, and
merge the partial results.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from twin_engine.clients.plugin_client import PluginClient
from twin_engine.config import get_settings
from twin_engine.exceptions import (
    ConflictError,
    InternalDataError,
    NotFoundError,
    TwinEngineError,
    UnavailableError,
)
from twin_engine.schemas.descriptors import AssetData, ShellDescriptorMetadata
from twin_engine.schemas.manifest import ConflictPolicy
from twin_engine.services.json_schema import (
    build_request_schema,
    decode_payload,
    parse_response,
)
from twin_engine.services.manifest_registry import ManifestRegistry, ManifestSnapshot
from twin_engine.services.merger import TreeMerger
from twin_engine.services.semantic_tree import BranchNode
from twin_engine.services.splitter import RequestSplitter, required_paths
from twin_engine.services.validator import ResponseValidator

logger = logging.getLogger(__name__)


@dataclass
class PluginOutcome:
    """Result of one plugin call: a value or the error it failed with."""

    plugin_name: str
    value: Any = None
    error: TwinEngineError | None = None


class PluginAggregator:
    """
    Fans reads out to plugins and merges the answers.

    Failure handling:
    - A plugin that fails while answering only optional data is logged
      and its leaves stay absent
    - A plugin that fails while owning a required leaf fails the read
      with its own error, the earliest registered one winning
    - Exceeding the overall deadline cancels all in-flight calls and
      fails the read as unavailable
    """

    def __init__(
        self,
        registry: ManifestRegistry,
        plugin_client: PluginClient,
        splitter: RequestSplitter | None = None,
        merger: TreeMerger | None = None,
        validator: ResponseValidator | None = None,
        deadline_seconds: float | None = None,
    ):
        self.registry = registry
        self.plugin_client = plugin_client
        self.splitter = splitter or RequestSplitter()
        self.merger = merger or TreeMerger()
        self.validator = validator or ResponseValidator()
        self.deadline_seconds = (
            deadline_seconds
            if deadline_seconds is not None
            else get_settings().request_deadline_seconds
        )

    async def fetch_values(self, tree: BranchNode, submodel_id: str) -> BranchNode:
        """
        Fill a canonical tree with values from all owning plugins.

        Args:
            tree: Canonical tree of the submodel template
            submodel_id: Submodel the values are requested for

        Returns:
            Merged tree, structurally identical to ``tree``
        """
        snapshot = self.registry.manifests()
        sub_trees = self.splitter.split(tree, snapshot)
        if not sub_trees:
            logger.info(f"No plugin owns any data point of {submodel_id}")
            return self.merger.merge(tree, {}, snapshot.policy, snapshot.plugin_names)

        requests = {}
        for plugin_name, sub_tree in sub_trees.items():
            schema = build_request_schema(sub_tree)
            self.validator.check_schema(schema)
            requests[plugin_name] = (sub_tree, schema)

        outcomes = await self._gather(
            self._query_values(plugin_name, sub_tree, schema, submodel_id)
            for plugin_name, (sub_tree, schema) in requests.items()
        )

        owners = self.splitter.assign(tree, snapshot)
        required = required_paths(tree)
        values: dict[str, BranchNode] = {}
        for outcome in outcomes:
            if outcome.error is None:
                values[outcome.plugin_name] = outcome.value
                continue
            if any(owners.get(path) == outcome.plugin_name for path in required):
                logger.error(
                    f"Plugin '{outcome.plugin_name}' failed for required data of "
                    f"{submodel_id}: {outcome.error.message}"
                )
                raise outcome.error
            logger.warning(
                f"Ignoring failure of plugin '{outcome.plugin_name}' for "
                f"{submodel_id}: {outcome.error.message}"
            )

        return self.merger.merge(tree, values, snapshot.policy, snapshot.plugin_names)

    async def fetch_shell_descriptors(self) -> list[ShellDescriptorMetadata]:
        """
        Collect shell metadata from every plugin that serves it.

        Returns:
            Metadata rows in registration order, de-duplicated by id
            according to the conflict policy
        """
        snapshot = self.registry.manifests()
        names = self._capable(snapshot, "hasShellDescriptor")
        outcomes = await self._gather(
            self._call(name, self.plugin_client.get_shell_descriptors, name) for name in names
        )
        answered = [outcome for outcome in outcomes if outcome.error is None]
        for outcome in outcomes:
            if outcome.error is not None:
                logger.warning(
                    f"Plugin '{outcome.plugin_name}' failed to list shells: {outcome.error.message}"
                )
        if not answered:
            raise outcomes[0].error
        return self._dedupe(answered, snapshot.policy)

    async def fetch_shell_descriptor(self, aas_id: str) -> ShellDescriptorMetadata:
        """Get one shell's metadata from the first plugin that knows it."""
        snapshot = self.registry.manifests()
        names = self._capable(snapshot, "hasShellDescriptor")
        return await self._first_answer(names, self.plugin_client.get_shell_descriptor, aas_id)

    async def fetch_asset_data(self, aas_id: str) -> AssetData:
        """Get one shell's asset data from the first plugin that knows it."""
        snapshot = self.registry.manifests()
        names = self._capable(snapshot, "hasAssetInformation")
        return await self._first_answer(names, self.plugin_client.get_asset_data, aas_id)

    async def _query_values(
        self,
        plugin_name: str,
        sub_tree: BranchNode,
        schema: dict[str, Any],
        submodel_id: str,
    ) -> PluginOutcome:
        try:
            payload = decode_payload(
                await self.plugin_client.fetch_values(plugin_name, submodel_id, schema)
            )
            self.validator.validate(payload, schema)
            return PluginOutcome(plugin_name, value=parse_response(payload, sub_tree))
        except TwinEngineError as e:
            return PluginOutcome(plugin_name, error=e)

    @staticmethod
    async def _call(
        plugin_name: str, func: Callable[..., Awaitable[Any]], *args: Any
    ) -> PluginOutcome:
        try:
            return PluginOutcome(plugin_name, value=await func(*args))
        except TwinEngineError as e:
            return PluginOutcome(plugin_name, error=e)

    async def _gather(self, calls: Iterable[Awaitable[PluginOutcome]]) -> list[PluginOutcome]:
        try:
            return await asyncio.wait_for(asyncio.gather(*calls), timeout=self.deadline_seconds)
        except asyncio.TimeoutError as e:
            raise UnavailableError(
                f"Plugins did not answer within {self.deadline_seconds}s"
            ) from e

    async def _first_answer(
        self, names: list[str], func: Callable[..., Awaitable[Any]], *args: Any
    ) -> Any:
        outcomes = await self._gather(self._call(name, func, name, *args) for name in names)
        for outcome in outcomes:
            if outcome.error is None:
                return outcome.value
        errors = [outcome.error for outcome in outcomes]
        not_found = [e for e in errors if isinstance(e, NotFoundError)]
        if len(not_found) == len(errors):
            raise not_found[0]
        raise next(e for e in errors if not isinstance(e, NotFoundError))

    @staticmethod
    def _capable(snapshot: ManifestSnapshot, capability: str) -> list[str]:
        names = snapshot.plugins_with(capability)
        if not names:
            raise NotFoundError(f"No plugin declares {capability}")
        return names

    @staticmethod
    def _dedupe(
        outcomes: list[PluginOutcome], policy: ConflictPolicy
    ) -> list[ShellDescriptorMetadata]:
        rows: list[tuple[str, ShellDescriptorMetadata]] = []
        owners: dict[str, list[str]] = {}
        for outcome in outcomes:
            for descriptor in outcome.value:
                if not descriptor.id:
                    raise InternalDataError(
                        f"Plugin '{outcome.plugin_name}' returned a shell without id"
                    )
                owners.setdefault(descriptor.id, []).append(outcome.plugin_name)
                rows.append((outcome.plugin_name, descriptor))

        duplicates = {aas_id for aas_id, plugins in owners.items() if len(plugins) > 1}
        if duplicates and policy is ConflictPolicy.FAIL_FAST:
            raise ConflictError(
                f"Shells reported by several plugins: {', '.join(sorted(duplicates))}"
            )

        result: list[ShellDescriptorMetadata] = []
        for plugin_name, descriptor in rows:
            if descriptor.id in duplicates:
                if policy is ConflictPolicy.SKIP_CONFLICTING:
                    continue
                if owners[descriptor.id][0] != plugin_name:
                    continue
                if any(existing.id == descriptor.id for existing in result):
                    continue
            result.append(descriptor)
        return result
