"""Repository interface and its cluster and HTTP-proxy implementations."""

from __future__ import annotations

from crossview.models.config import CrossviewConfig
from crossview.repository.api import ApiRepository
from crossview.repository.base import KubernetesRepository
from crossview.repository.cluster import ClusterRepository


def build_repository(config: CrossviewConfig) -> KubernetesRepository:
    """Select the implementation named by ``config.repository.mode``."""
    if config.repository.mode == "api":
        return ApiRepository(config.repository.api_url, timeout_seconds=config.repository.request_timeout_seconds)
    return ClusterRepository(config)


__all__ = [
    "ApiRepository",
    "ClusterRepository",
    "KubernetesRepository",
    "build_repository",
]
