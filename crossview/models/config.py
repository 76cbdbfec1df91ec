"""Configuration models.

Populated from ``CROSSVIEW_*`` environment variables by
:func:`crossview.config.load_config`; every field has a working default so
the models can also be constructed directly in tests.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class LogConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "console"] = "json"


class ApiConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class RepositoryConfig(BaseModel):
    """Selects how the repository reaches the cluster.

    ``cluster`` talks to the Kubernetes API directly; ``api`` proxies every
    call to another crossview instance at ``api_url``.
    """

    mode: Literal["cluster", "api"] = "cluster"
    api_url: str = "http://localhost:8080"
    request_timeout_seconds: float = 30.0


class CacheConfig(BaseModel):
    definition_ttl_seconds: int = Field(default=300, description="CRD/XRD catalog TTL")
    managed_ttl_seconds: int = Field(default=600, description="Merged managed resource TTL")


class QueryConfig(BaseModel):
    discovery_enabled: bool = True
    type_timeout_seconds: float = 5.0
    claims_page_size: int = 500


class CrossviewConfig(BaseModel):
    log: LogConfig = Field(default_factory=LogConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
