"""Crossplane-specific projections over a :class:`KubernetesRepository`.

Every view lists raw objects through the repository interface and flattens
them into the dicts the dashboard renders. Views that fan out over
XRD-derived types (composite resources, claims) bound each type with a
timeout; a type that fails or times out is logged and skipped.

Because the views only use the repository interface they work unchanged
against the direct cluster backend and the HTTP proxy backend.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

from crossview.crossplane.search import QUICK_FILTERS, SearchFilters, filter_resources
from crossview.errors import CrossviewError, QueryTimeout
from crossview.models.resources import AggregateResult, ResourceInstance
from crossview.observability.logging import get_logger
from crossview.observability.metrics import aggregation_type_failures_total
from crossview.repository.base import KubernetesRepository

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

APIEXTENSIONS_V1: str = "apiextensions.crossplane.io/v1"
PKG_V1: str = "pkg.crossplane.io/v1"

_XRD_API_VERSIONS: tuple[str, ...] = ("apiextensions.crossplane.io/v2", APIEXTENSIONS_V1)
_XRD_KIND: str = "CompositeResourceDefinition"
_DEFAULT_XR_GROUP: str = "apiextensions.crossplane.io"

CROSSPLANE_KINDS: tuple[tuple[str, str], ...] = (
    (APIEXTENSIONS_V1, "Composition"),
    (APIEXTENSIONS_V1, "CompositeResourceDefinition"),
    (APIEXTENSIONS_V1, "ProviderConfig"),
    (APIEXTENSIONS_V1, "StoreConfig"),
    (APIEXTENSIONS_V1, "EnvironmentConfig"),
    (PKG_V1, "Provider"),
    (PKG_V1, "Function"),
    (PKG_V1, "Configuration"),
)

_DASHBOARD_SAMPLE: int = 10


@dataclass(frozen=True)
class _XrdType:
    api_version: str
    kind: str
    plural: str | None


class CrossplaneViews:
    """Dashboard views of Crossplane packages, definitions and instances."""

    def __init__(
        self,
        repository: KubernetesRepository,
        claims_page_size: int = 500,
        type_timeout_s: float = 5.0,
    ) -> None:
        self._repo = repository
        self._claims_page_size = claims_page_size
        self._type_timeout_s = type_timeout_s
        self._log = get_logger("crossplane.views")

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def providers(self, context: str | None = None) -> list[dict[str, Any]]:
        providers = await self._list_all(PKG_V1, "Provider", context)
        return [_package(p) for p in providers]

    async def functions(self, context: str | None = None) -> list[dict[str, Any]]:
        """Functions with the compositions whose pipeline references them."""
        functions = await self._list_all(PKG_V1, "Function", context)
        compositions = await self._list_all(APIEXTENSIONS_V1, "Composition", context)

        usage: dict[str, list[dict[str, Any]]] = {}
        for comp in compositions:
            spec = comp.get("spec") or {}
            steps = list(spec.get("pipeline") or []) + list(spec.get("functions") or [])
            for step in steps:
                ref = (step.get("functionRef") or {}).get("name") if isinstance(step, dict) else None
                if ref:
                    usage.setdefault(ref, []).append({"name": _meta(comp, "name"), "namespace": _meta(comp, "namespace")})

        result = []
        for fn in functions:
            projected = _package(fn)
            conditions = projected["conditions"]
            projected["installed"] = _condition_true(conditions, "Installed")
            projected["spec"] = fn.get("spec") or {}
            used_in = usage.get(projected["name"], [])
            projected["usedInCompositions"] = used_in
            projected["usedInCount"] = len(used_in)
            result.append(projected)
        return result

    async def provider_configs(self, context: str | None = None) -> list[dict[str, Any]]:
        configs = await self._list_all(APIEXTENSIONS_V1, "ProviderConfig", context)
        result = []
        for cfg in configs:
            spec = cfg.get("spec") or {}
            projected = _base(cfg)
            projected.update(
                {
                    "credentials": spec.get("credentials"),
                    "credentialsSecretRef": spec.get("credentialsSecretRef"),
                    "identity": spec.get("identity"),
                    "spec": spec,
                    "status": cfg.get("status") or {},
                    "conditions": _conditions(cfg),
                }
            )
            result.append(projected)
        return result

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def compositions(self, context: str | None = None) -> list[dict[str, Any]]:
        compositions = await self._list_all(APIEXTENSIONS_V1, "Composition", context)
        result = []
        for comp in compositions:
            spec = comp.get("spec") or {}
            projected = _base(comp)
            projected.update(
                {
                    "kind": "Composition",
                    "compositeTypeRef": spec.get("compositeTypeRef"),
                    "resources": spec.get("resources") or [],
                    "functions": spec.get("functions") or [],
                    "pipeline": spec.get("pipeline") or [],
                    "writeConnectionSecretsToNamespace": spec.get("writeConnectionSecretsToNamespace"),
                    "mode": spec.get("mode") or "Default",
                    "spec": spec,
                    "status": comp.get("status") or {},
                    "conditions": _conditions(comp),
                }
            )
            result.append(projected)
        return result

    async def composite_resource_definitions(self, context: str | None = None) -> list[dict[str, Any]]:
        result = []
        for xrd in await self._list_xrds(context):
            spec = xrd.get("spec") or {}
            projected = _base(xrd)
            projected.update(
                {
                    "kind": _XRD_KIND,
                    "group": spec.get("group") or "",
                    "names": spec.get("names") or {},
                    "versions": spec.get("versions") or [],
                    "claimNames": spec.get("claimNames"),
                    "connectionSecretKeys": spec.get("connectionSecretKeys") or [],
                    "defaultCompositionRef": spec.get("defaultCompositionRef"),
                    "enforceCompositionRef": spec.get("enforceCompositionRef") or False,
                    "spec": spec,
                    "status": xrd.get("status") or {},
                    "conditions": _conditions(xrd),
                }
            )
            result.append(projected)
        return result

    async def composite_resource_kinds(self, context: str | None = None) -> list[str]:
        kinds = {((x.get("spec") or {}).get("names") or {}).get("kind") for x in await self._list_xrds(context)}
        return sorted(k for k in kinds if k)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def composite_resources(self, context: str | None = None) -> list[dict[str, Any]]:
        types = [t for t in (_xrd_type(x, "names") for x in await self._list_xrds(context)) if t is not None]
        batches = await self._fan_out(types, context)

        result = []
        for xrd_type, items in batches:
            for xr in items:
                spec = xr.get("spec") or {}
                projected = _base(xr)
                projected.update(
                    {
                        "kind": xrd_type.kind,
                        "apiVersion": xrd_type.api_version,
                        "compositionRef": spec.get("compositionRef") or (spec.get("crossplane") or {}).get("compositionRef"),
                        "claimRef": spec.get("claimRef"),
                        "resourceRefs": spec.get("resourceRefs") or (spec.get("crossplane") or {}).get("resourceRefs") or [],
                        "writeConnectionSecretToRef": spec.get("writeConnectionSecretToRef"),
                        "status": xr.get("status") or {},
                        "conditions": _conditions(xr),
                    }
                )
                result.append(projected)
        return result

    async def claims(self, context: str | None = None) -> list[dict[str, Any]]:
        """Claims of every XRD that offers them, listed cluster-wide."""
        types = [t for t in (_xrd_type(x, "claimNames") for x in await self._list_xrds(context)) if t is not None]
        if not types:
            return []
        batches = await self._fan_out(types, context, page_size=self._claims_page_size)

        result = []
        for claim_type, items in batches:
            for claim in items:
                spec = claim.get("spec") or {}
                projected = _base(claim)
                projected.update(
                    {
                        "kind": claim_type.kind,
                        "apiVersion": claim_type.api_version,
                        "resourceRef": spec.get("resourceRef"),
                        "compositionRef": spec.get("compositionRef"),
                        "writeConnectionSecretToRef": spec.get("writeConnectionSecretToRef"),
                        "status": claim.get("status") or {},
                        "conditions": _conditions(claim),
                    }
                )
                result.append(projected)
        return result

    async def managed_resources(
        self,
        context: str | None = None,
        force_refresh: bool = False,
        limit: int | None = None,
    ) -> AggregateResult:
        return await self._repo.list_all_managed_resources(context, force_refresh, limit)

    async def crossplane_resources(self, namespace: str | None = None, context: str | None = None) -> list[ResourceInstance]:
        """Every object of the fixed Crossplane package and definition kinds."""
        resources: list[ResourceInstance] = []
        for api_version, kind in CROSSPLANE_KINDS:
            try:
                items = await self._list_all(api_version, kind, context, namespace=namespace)
            except CrossviewError as exc:
                self._log.warning("crossplane_kind_skipped", api_version=api_version, kind=kind, error=str(exc))
                continue
            resources.extend({**item, "kind": kind, "apiVersion": api_version} for item in items)
        return resources

    # ------------------------------------------------------------------
    # Composite views
    # ------------------------------------------------------------------

    async def dashboard(self, context: str | None = None) -> dict[str, Any]:
        namespaces, connected = await asyncio.gather(
            self._repo.list_namespaces(context),
            self._repo.is_connected(context),
        )
        resources = await self.crossplane_resources(context=context)
        return {
            "isConnected": connected,
            "namespacesCount": len(namespaces),
            "crossplaneResourcesCount": len(resources),
            "namespaces": namespaces,
            "crossplaneResources": resources[:_DASHBOARD_SAMPLE],
        }

    async def search(
        self,
        context: str | None = None,
        query: str = "",
        filters: SearchFilters | None = None,
        quick: str | None = None,
    ) -> list[dict[str, Any]]:
        """Search composite resources, claims, compositions, XRDs and providers."""
        sources: list[tuple[str, Awaitable[list[dict[str, Any]]]]] = [
            ("CompositeResource", self.composite_resources(context)),
            ("Claim", self.claims(context)),
            ("Composition", self.compositions(context)),
            ("XRD", self.composite_resource_definitions(context)),
            ("Provider", self.providers(context)),
        ]
        results = await asyncio.gather(*(coro for _, coro in sources), return_exceptions=True)

        combined: list[dict[str, Any]] = []
        for (resource_type, _), result in zip(sources, results, strict=True):
            if isinstance(result, BaseException):
                self._log.warning("search_source_skipped", resource_type=resource_type, error=str(result))
                continue
            combined.extend({**r, "resourceType": resource_type} for r in result)

        matched = filter_resources(combined, query, filters)
        if quick:
            quick_filter = QUICK_FILTERS.get(quick)
            if quick_filter is None:
                raise ValueError(f"unknown quick filter {quick!r}; expected one of {sorted(QUICK_FILTERS)}")
            matched = quick_filter(matched)
        return matched

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _list_all(
        self,
        api_version: str,
        kind: str,
        context: str | None,
        namespace: str | None = None,
        plural: str | None = None,
        page_size: int | None = None,
    ) -> list[ResourceInstance]:
        items: list[ResourceInstance] = []
        token: str | None = None
        while True:
            page = await self._repo.list_resources(api_version, kind, namespace, context, page_size, token, plural)
            items.extend(page.items)
            token = page.continue_token
            if not token:
                return items

    async def _list_xrds(self, context: str | None) -> list[ResourceInstance]:
        for api_version in _XRD_API_VERSIONS:
            items = await self._list_all(api_version, _XRD_KIND, context)
            if items:
                return items
        return []

    async def _fan_out(
        self,
        types: list[_XrdType],
        context: str | None,
        page_size: int | None = None,
    ) -> list[tuple[_XrdType, list[ResourceInstance]]]:
        async def _one(xrd_type: _XrdType) -> list[ResourceInstance]:
            try:
                return await asyncio.wait_for(
                    self._list_all(xrd_type.api_version, xrd_type.kind, context, plural=xrd_type.plural, page_size=page_size),
                    timeout=self._type_timeout_s,
                )
            except TimeoutError as exc:
                raise QueryTimeout(f"list {xrd_type.kind}", self._type_timeout_s) from exc

        results = await asyncio.gather(*(_one(t) for t in types), return_exceptions=True)
        batches = []
        for xrd_type, result in zip(types, results, strict=True):
            if isinstance(result, BaseException):
                reason = "timeout" if isinstance(result, QueryTimeout) else "error"
                aggregation_type_failures_total.labels(reason=reason).inc()
                self._log.warning("xrd_type_skipped", api_version=xrd_type.api_version, kind=xrd_type.kind, error=str(result))
                continue
            batches.append((xrd_type, result))
        return batches


# ---------------------------------------------------------------------------
# Projection helpers
# ---------------------------------------------------------------------------


def _meta(obj: ResourceInstance, key: str) -> Any:
    return (obj.get("metadata") or {}).get(key)


def _base(obj: ResourceInstance) -> dict[str, Any]:
    metadata = obj.get("metadata") or {}
    return {
        "name": metadata.get("name") or "unknown",
        "namespace": metadata.get("namespace"),
        "uid": metadata.get("uid") or "",
        "creationTimestamp": metadata.get("creationTimestamp") or "",
        "labels": metadata.get("labels") or {},
        "annotations": metadata.get("annotations") or {},
    }


def _conditions(obj: ResourceInstance) -> list[dict[str, Any]]:
    return list((obj.get("status") or {}).get("conditions") or [])


def _condition_true(conditions: list[dict[str, Any]], condition_type: str) -> bool:
    return any(c.get("type") == condition_type and c.get("status") == "True" for c in conditions)


def _package(obj: ResourceInstance) -> dict[str, Any]:
    spec = obj.get("spec") or {}
    status = obj.get("status") or {}
    conditions = _conditions(obj)
    projected = _base(obj)
    projected.update(
        {
            "kind": obj.get("kind") or "",
            "package": spec.get("package") or "",
            "version": spec.get("package") or "",
            "controllerConfigRef": (spec.get("controllerConfigRef") or {}).get("name"),
            "revision": status.get("currentRevision") or "",
            "installed": bool(status.get("installed")) or _condition_true(conditions, "Installed"),
            "healthy": _condition_true(conditions, "Healthy"),
            "conditions": conditions,
            "status": status,
        }
    )
    return projected


def _xrd_type(xrd: ResourceInstance, names_key: str) -> _XrdType | None:
    """Type served by *xrd* under ``spec.names`` or ``spec.claimNames``."""
    spec = xrd.get("spec") or {}
    names = spec.get(names_key) or {}
    kind = names.get("kind")
    if not kind:
        return None
    group = spec.get("group") or _DEFAULT_XR_GROUP
    version = ""
    versions = spec.get("versions") or []
    if versions and isinstance(versions[0], dict):
        version = versions[0].get("name") or ""
    version = version or spec.get("version") or "v1"
    return _XrdType(api_version=f"{group}/{version}", kind=kind, plural=names.get("plural"))
