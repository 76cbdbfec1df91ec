"""Plural Resolver: maps ``(apiVersion, kind)`` to a REST resource plural.

Strategies run in order until one answers:

1. the permanent in-process cache;
2. API discovery for the group/version (``/api/v1`` for the core group,
   ``/apis/{group}/{version}`` otherwise);
3. the CRD/XRD Type Catalog;
4. a heuristic: the lower-cased kind, with ``s`` appended unless the kind
   starts with ``X`` (composite resource kinds are conventionally plural
   already).

Answers from strategies 2 and 3 are cached permanently. The heuristic
guess is not cached, so a later call retries discovery and the catalog
once they recover. Any failure of strategies 2 and 3 is logged and the
chain moves on, so :meth:`resolve` never raises on a resolution failure.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from crossview.kube.catalog import TypeCatalog
from crossview.kube.transport import KubeRestClient
from crossview.models.resources import GroupVersionKind
from crossview.observability.logging import get_logger
from crossview.observability.metrics import plural_resolutions_total

_Strategy = Callable[[GroupVersionKind, str | None], Awaitable[str | None]]


def heuristic_plural(kind: str) -> str:
    lowered = kind.lower()
    if kind.startswith("X"):
        return lowered
    return lowered + "s"


class PluralResolver:
    """Resolves resource plurals and caches the authoritative answers."""

    def __init__(self, rest: KubeRestClient, catalog: TypeCatalog, discovery_enabled: bool = True) -> None:
        self._rest = rest
        self._catalog = catalog
        self._discovery_enabled = discovery_enabled
        self._cache: dict[tuple[str, str], str] = {}
        self._log = get_logger("kube.plurals")

        self._strategies: list[tuple[str, _Strategy]] = []
        if discovery_enabled:
            self._strategies.append(("discovery", self._from_discovery))
        self._strategies.append(("catalog", self._from_catalog))

    async def resolve(self, gvk: GroupVersionKind, context: str | None = None) -> str:
        key = (gvk.api_version, gvk.kind)
        cached = self._cache.get(key)
        if cached is not None:
            plural_resolutions_total.labels(strategy="cache").inc()
            return cached

        for name, strategy in self._strategies:
            try:
                plural = await strategy(gvk, context)
            except Exception as exc:
                self._log.warning("plural_strategy_failed", strategy=name, api_version=key[0], kind=gvk.kind, error=str(exc))
                continue
            if plural:
                return self._remember(key, plural, name)
            self._log.debug("plural_strategy_miss", strategy=name, api_version=key[0], kind=gvk.kind)

        plural_resolutions_total.labels(strategy="heuristic").inc()
        plural = heuristic_plural(gvk.kind)
        self._log.debug("plural_guessed", api_version=key[0], kind=gvk.kind, plural=plural)
        return plural

    def clear(self) -> None:
        self._cache.clear()

    def cached(self, api_version: str, kind: str) -> str | None:
        return self._cache.get((api_version, kind))

    def _remember(self, key: tuple[str, str], plural: str, strategy: str) -> str:
        self._cache[key] = plural
        plural_resolutions_total.labels(strategy=strategy).inc()
        self._log.debug("plural_resolved", api_version=key[0], kind=key[1], plural=plural, strategy=strategy)
        return plural

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _from_discovery(self, gvk: GroupVersionKind, context: str | None) -> str | None:
        resources = await self._rest.discover(gvk, context)
        if resources is None:
            return None
        for resource in resources:
            name = resource.get("name") or ""
            if resource.get("kind") != gvk.kind or "/" in name:
                continue
            if gvk.is_core and resource.get("group"):
                continue
            return str(name)
        return None

    async def _from_catalog(self, gvk: GroupVersionKind, context: str | None) -> str | None:
        if gvk.is_core:
            return None
        return await self._catalog.find_plural(gvk.group, gvk.kind, context)
