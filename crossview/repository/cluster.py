"""Repository that talks to the Kubernetes API directly."""

from __future__ import annotations

from typing import Any

from crossview.kube.aggregator import ManagedResourceAggregator
from crossview.kube.catalog import TypeCatalog
from crossview.kube.credentials import ClientFactory, ClientPool, ContextResolver
from crossview.kube.plurals import PluralResolver
from crossview.kube.resources import ResourceClient
from crossview.kube.transport import KubeRestClient
from crossview.models.config import CrossviewConfig
from crossview.models.resources import AggregateResult, ClusterContext, Page, ResourceInstance
from crossview.observability.logging import get_logger
from crossview.repository.base import KubernetesRepository


class ClusterRepository(KubernetesRepository):
    """Wires resolver, client pool, catalog, plurals, reads and aggregation.

    Catalog and aggregate caches are keyed by context name, so switching the
    current context keeps them. Removing or adding a context drops any
    client handle and caches held under its name. Plurals are keyed by type
    only and survive.
    """

    def __init__(
        self,
        config: CrossviewConfig | None = None,
        resolver: ContextResolver | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        config = config or CrossviewConfig()
        self.resolver = resolver or ContextResolver()
        self.pool = ClientPool(self.resolver, client_factory=client_factory)
        self.rest = KubeRestClient(self.pool)
        self.catalog = TypeCatalog(self.rest, ttl_seconds=config.cache.definition_ttl_seconds)
        self.plurals = PluralResolver(self.rest, self.catalog, discovery_enabled=config.query.discovery_enabled)
        self.resources = ResourceClient(self.rest, self.plurals)
        self.aggregator = ManagedResourceAggregator(
            self.resources,
            self.catalog,
            ttl_seconds=config.cache.managed_ttl_seconds,
            type_timeout_s=config.query.type_timeout_seconds,
        )
        self._log = get_logger("repository.cluster")

    # Contexts ---------------------------------------------------------

    async def list_contexts(self) -> list[ClusterContext]:
        return self.resolver.list_contexts()

    async def get_current_context(self) -> str | None:
        return self.resolver.get_current_context()

    async def set_current_context(self, name: str) -> None:
        self.resolver.set_current_context(name)
        self.pool.clear_failed_context(name)

    async def add_kubeconfig(self, kubeconfig_yaml: str) -> list[str]:
        added = self.resolver.add_kubeconfig(kubeconfig_yaml)
        for name in added:
            await self._forget(name)
        return added

    async def remove_context(self, name: str) -> None:
        self.resolver.remove_context(name)
        await self._forget(name)

    async def _forget(self, name: str) -> None:
        await self.pool.invalidate(name)
        self.catalog.invalidate(name)
        self.aggregator.clear_cache(name)

    # Cluster ----------------------------------------------------------

    async def is_connected(self, context: str | None = None) -> bool:
        return await self.resources.is_connected(context)

    async def list_namespaces(self, context: str | None = None) -> list[dict[str, Any]]:
        return await self.resources.list_namespaces(context)

    # Resources --------------------------------------------------------

    async def list_resources(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        context: str | None = None,
        limit: int | None = None,
        continue_token: str | None = None,
        plural: str | None = None,
    ) -> Page:
        return await self.resources.list(api_version, kind, namespace, context, limit, continue_token, plural)

    async def get_resource(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
        plural: str | None = None,
    ) -> ResourceInstance:
        return await self.resources.get(api_version, kind, name, namespace, context, plural)

    async def list_events(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
    ) -> list[ResourceInstance]:
        return await self.resources.list_events(kind, name, namespace, context)

    async def list_all_managed_resources(
        self,
        context: str | None = None,
        force_refresh: bool = False,
        limit: int | None = None,
    ) -> AggregateResult:
        return await self.aggregator.list_all_managed_resources(context, force_refresh, limit)

    async def close(self) -> None:
        await self.pool.close()
