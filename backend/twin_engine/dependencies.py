"""
FastAPI dependency injection setup.

Provides factory functions for service instances used across routes.
"""

from functools import lru_cache

from twin_engine.clients.plugin_client import PluginClient
from twin_engine.clients.registry_client import RegistryClient
from twin_engine.config import get_settings
from twin_engine.services.aggregator import PluginAggregator
from twin_engine.services.manifest_registry import ManifestRegistry
from twin_engine.services.reconciliation import ReconciliationScheduler
from twin_engine.services.registry import ShellDescriptorService, SubmodelDescriptorService
from twin_engine.services.repository import AasRepositoryService, SubmodelRepositoryService
from twin_engine.services.semantic_extractor import SemanticTreeExtractor
from twin_engine.services.splitter import RequestSplitter
from twin_engine.services.template_filler import TemplateFiller
from twin_engine.services.template_mapping import TemplateMapping
from twin_engine.services.template_provider import TemplateProvider


@lru_cache
def get_plugin_client() -> PluginClient:
    """Get cached plugin client instance."""
    return PluginClient()


@lru_cache
def get_registry_client() -> RegistryClient:
    """Get cached AAS registry client instance."""
    return RegistryClient()


@lru_cache
def get_manifest_registry() -> ManifestRegistry:
    """Get cached manifest registry instance."""
    settings = get_settings()
    return ManifestRegistry(get_plugin_client(), policy=settings.conflict_policy)


@lru_cache
def get_extractor() -> SemanticTreeExtractor:
    """Get cached semantic tree extractor instance."""
    return SemanticTreeExtractor()


@lru_cache
def get_filler() -> TemplateFiller:
    """Get cached template filler instance."""
    return TemplateFiller(get_extractor())


@lru_cache
def get_template_mapping() -> TemplateMapping:
    """Get cached template mapping instance."""
    return TemplateMapping()


@lru_cache
def get_template_provider() -> TemplateProvider:
    """Get cached template provider instance."""
    return TemplateProvider(registry_client=get_registry_client())


@lru_cache
def get_aggregator() -> PluginAggregator:
    """Get cached plugin aggregator instance."""
    settings = get_settings()
    return PluginAggregator(
        get_manifest_registry(),
        get_plugin_client(),
        splitter=RequestSplitter(settings.index_context_prefix),
    )


@lru_cache
def get_shell_descriptor_service() -> ShellDescriptorService:
    """Get cached shell descriptor service instance."""
    return ShellDescriptorService(
        get_aggregator(),
        get_template_provider(),
        get_registry_client(),
        filler=get_filler(),
    )


@lru_cache
def get_submodel_descriptor_service() -> SubmodelDescriptorService:
    """Get cached submodel descriptor service instance."""
    return SubmodelDescriptorService(
        get_template_provider(), get_template_mapping(), filler=get_filler()
    )


@lru_cache
def get_aas_repository_service() -> AasRepositoryService:
    """Get cached shell repository service instance."""
    return AasRepositoryService(
        get_aggregator(), get_template_provider(), get_template_mapping(), filler=get_filler()
    )


@lru_cache
def get_submodel_repository_service() -> SubmodelRepositoryService:
    """Get cached submodel repository service instance."""
    return SubmodelRepositoryService(
        get_aggregator(),
        get_template_provider(),
        get_template_mapping(),
        extractor=get_extractor(),
        filler=get_filler(),
    )


@lru_cache
def get_scheduler() -> ReconciliationScheduler:
    """Get cached reconciliation scheduler instance."""
    return ReconciliationScheduler(get_shell_descriptor_service().sync)
