"""Managed resource aggregation across every provider-owned type.

One list call per managed type runs concurrently, each bounded by a
per-type timeout. A type that times out or fails contributes nothing; the
failure is logged and counted but never cancels the other branches. The
merged set is cached per context for the managed TTL (10 minutes by
default).

A caller ``limit`` truncates only what is returned. The cache always holds
the complete merged set so a later call with a larger limit (or none) is
still answered from it.
"""

from __future__ import annotations

import asyncio
import time

from crossview.cache.ttl_cache import TTLCache
from crossview.errors import CrossviewError, QueryTimeout, UpstreamAPIError
from crossview.kube.catalog import TypeCatalog
from crossview.kube.resources import ResourceClient
from crossview.models.resources import AggregateResult, ManagedResourceType, ResourceInstance
from crossview.observability.logging import get_logger
from crossview.observability.metrics import aggregation_duration_seconds, aggregation_type_failures_total

_DEFAULT_TYPE_TIMEOUT_S: float = 5.0


class ManagedResourceAggregator:
    """Fans out over managed resource types and merges the results."""

    def __init__(
        self,
        resources: ResourceClient,
        catalog: TypeCatalog,
        ttl_seconds: float = 600.0,
        type_timeout_s: float = _DEFAULT_TYPE_TIMEOUT_S,
        cache: TTLCache[str, list[ResourceInstance]] | None = None,
    ) -> None:
        self._resources = resources
        self._catalog = catalog
        self._type_timeout_s = type_timeout_s
        self._cache: TTLCache[str, list[ResourceInstance]] = cache if cache is not None else TTLCache("managed", ttl_seconds)
        self._log = get_logger("kube.aggregator")

    async def list_all_managed_resources(
        self,
        context: str | None = None,
        force_refresh: bool = False,
        limit: int | None = None,
    ) -> AggregateResult:
        ctx = self._resources.resolve_context(context)
        if not force_refresh:
            cached = self._cache.get(ctx)
            if cached is not None:
                return AggregateResult(items=_truncate(cached, limit), from_cache=True)

        try:
            types = await self._catalog.list_managed_resource_types(ctx, force_refresh=force_refresh)
        except UpstreamAPIError:
            raise
        except CrossviewError as exc:
            raise UpstreamAPIError("list managed resource definitions", exc) from exc

        started = time.monotonic()
        results = await asyncio.gather(
            *(self._list_type(t, ctx) for t in types),
            return_exceptions=True,
        )
        aggregation_duration_seconds.observe(time.monotonic() - started)

        merged: list[ResourceInstance] = []
        for managed_type, result in zip(types, results, strict=True):
            if isinstance(result, BaseException):
                reason = "timeout" if isinstance(result, QueryTimeout) else "error"
                aggregation_type_failures_total.labels(reason=reason).inc()
                self._log.warning(
                    "managed_type_skipped",
                    context=ctx,
                    api_version=managed_type.api_version,
                    kind=managed_type.kind,
                    reason=reason,
                    error=str(result),
                )
                continue
            merged.extend(result)

        self._cache.set(ctx, merged)
        self._log.info("managed_resources_aggregated", context=ctx, types=len(types), items=len(merged))
        return AggregateResult(items=_truncate(merged, limit), from_cache=False)

    def clear_cache(self, context: str | None = None) -> None:
        self._cache.invalidate(context)

    async def _list_type(self, managed_type: ManagedResourceType, context: str) -> list[ResourceInstance]:
        operation = f"list {managed_type.kind}"
        try:
            page = await asyncio.wait_for(
                self._resources.list(
                    managed_type.api_version,
                    managed_type.kind,
                    context=context,
                    plural=managed_type.plural,
                ),
                timeout=self._type_timeout_s,
            )
        except TimeoutError as exc:
            raise QueryTimeout(operation, self._type_timeout_s) from exc
        return [
            {**item, "apiVersion": managed_type.api_version, "kind": managed_type.kind}
            for item in page.items
        ]


def _truncate(items: list[ResourceInstance], limit: int | None) -> list[ResourceInstance]:
    if limit is not None and limit > 0:
        return items[:limit]
    return list(items)
