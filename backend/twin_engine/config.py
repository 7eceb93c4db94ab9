"""
Application configuration using Pydantic Settings.

Supports environment variables and .env files for configuration.
"""

from functools import lru_cache
import json
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from twin_engine.schemas.manifest import ConflictPolicy


class PluginEndpoint(BaseModel):
    """A configured plugin: its registration name and base URL."""

    name: str
    url: str


class TemplateMappingRule(BaseModel):
    """Maps identifiers matching any of the regex patterns to a template."""

    templateId: str
    patterns: list[str] = Field(default_factory=list)


class AasIdExtractionRule(BaseModel):
    """Extracts the product id from an AAS id (1-based index after split)."""

    separator: str
    index: int = Field(gt=0)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # AAS environment
    data_engine_base_url: str = "http://localhost:8000/"
    customer_domain_url: str = "https://example.com/"
    template_repository_url: str = "http://localhost:8081/"
    aas_registry_url: str = "http://localhost:8082/"
    submodel_registry_url: str = "http://localhost:8083/"
    submodel_repository_path: str = "submodels"
    aas_repository_path: str = "shells"
    aas_registry_path: str = "shell-descriptors"
    submodel_registry_path: str = "submodel-descriptors"
    submodel_refs_path: str = "submodel-refs"
    asset_information_path: str = "asset-information"

    # Plugins
    plugins: list[PluginEndpoint] = Field(default_factory=list)
    conflict_policy: ConflictPolicy = ConflictPolicy.PREFER_FIRST_REGISTERED

    # Outbound HTTP
    request_timeout_seconds: float = 30.0
    request_deadline_seconds: float = 60.0
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = 0.5

    # Caching
    template_cache_ttl_seconds: int = 300

    # Paging
    default_page_size: int = Field(default=100, gt=0)

    # Registry synchronisation
    sync_enabled: bool = False
    sync_cron: str = "*/5 * * * *"
    sync_timezone: str = "UTC"

    # Semantics
    mlp_postfix_separator: str = "_"
    index_context_prefix: str = "_aastwinengineindex_"
    internal_semantic_id_qualifier: str = "InternalSemanticId"

    # Template mapping
    submodel_template_mappings: list[TemplateMappingRule] = Field(default_factory=list)
    shell_template_mappings: list[TemplateMappingRule] = Field(default_factory=list)
    aas_id_extraction_rules: list[AasIdExtractionRule] = Field(default_factory=list)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            value = v.strip()
            if value.startswith("["):
                try:
                    parsed = json.loads(value)
                    if isinstance(parsed, list):
                        return [str(origin).strip() for origin in parsed if str(origin).strip()]
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator(
        "plugins",
        "submodel_template_mappings",
        "shell_template_mappings",
        "aas_id_extraction_rules",
        mode="before",
    )
    @classmethod
    def parse_json_rules(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v.strip() else []
        return v

    @field_validator(
        "data_engine_base_url",
        "customer_domain_url",
        "template_repository_url",
        "aas_registry_url",
        "submodel_registry_url",
    )
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else f"{v}/"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
