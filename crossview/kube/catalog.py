"""Type Catalog: cached listings of CRDs, XRDs and provider-owned types.

Definitions change rarely and are expensive to list on large clusters, so
every listing is cached per ``(context, catalog)`` for the definition TTL
(5 minutes by default). ``force_refresh`` bypasses the cache and stores the
fresh result.

Managed resource definitions are the CRDs owned by an installed Crossplane
``Provider``, either directly or through one of its ``ProviderRevision``
objects. ``ProviderConfig`` and ``ProviderConfigUsage`` are provider
plumbing, not managed resources, and are excluded.
"""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException

from crossview.cache.ttl_cache import TTLCache
from crossview.errors import CrossviewError, UpstreamAPIError
from crossview.kube.transport import KubeRestClient
from crossview.models.resources import GroupVersionKind, ManagedResourceType, ResourceInstance
from crossview.observability.logging import get_logger

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CRD_GVK = GroupVersionKind("apiextensions.k8s.io", "v1", "CustomResourceDefinition")
_CRD_PLURAL: str = "customresourcedefinitions"

# Crossplane v2 serves XRDs at v2; older installations only at v1.
_XRD_GVKS: tuple[GroupVersionKind, ...] = (
    GroupVersionKind("apiextensions.crossplane.io", "v2", "CompositeResourceDefinition"),
    GroupVersionKind("apiextensions.crossplane.io", "v1", "CompositeResourceDefinition"),
)
_XRD_PLURAL: str = "compositeresourcedefinitions"

_PKG_API_VERSION: str = "pkg.crossplane.io/v1"
_PROVIDER_GVK = GroupVersionKind("pkg.crossplane.io", "v1", "Provider")
_PROVIDER_REVISION_GVK = GroupVersionKind("pkg.crossplane.io", "v1", "ProviderRevision")

_EXCLUDED_MANAGED_KINDS: frozenset[str] = frozenset({"ProviderConfig", "ProviderConfigUsage"})
_DEFAULT_VERSION: str = "v1"

_CRDS = "crds"
_XRDS = "xrds"
_MANAGED = "managed"

# (definition, owning provider name)
_OwnedDefinition = tuple[ResourceInstance, str]


class TypeCatalog:
    """Lists custom type definitions for a context, with TTL caching."""

    def __init__(
        self,
        rest: KubeRestClient,
        ttl_seconds: float = 300.0,
        cache: TTLCache[tuple[str, str], list[Any]] | None = None,
    ) -> None:
        self._rest = rest
        self._cache: TTLCache[tuple[str, str], list[Any]] = cache if cache is not None else TTLCache("definitions", ttl_seconds)
        self._log = get_logger("kube.catalog")

    def _context(self, context: str | None) -> str:
        return self._rest.pool.resolver.resolve_context(context)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def list_crds(self, context: str | None = None, force_refresh: bool = False) -> list[ResourceInstance]:
        ctx = self._context(context)
        key = (ctx, _CRDS)
        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
        items = await self._list(_CRD_GVK, _CRD_PLURAL, ctx)
        self._cache.set(key, items)
        return items

    async def list_composite_resource_definitions(
        self, context: str | None = None, force_refresh: bool = False
    ) -> list[ResourceInstance]:
        ctx = self._context(context)
        key = (ctx, _XRDS)
        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        items: list[ResourceInstance] = []
        for gvk in _XRD_GVKS:
            items = await self._list(gvk, _XRD_PLURAL, ctx)
            if items:
                break
            self._log.debug("xrd_version_empty", api_version=gvk.api_version, context=ctx)
        self._cache.set(key, items)
        return items

    async def list_managed_resource_definitions(
        self, context: str | None = None, force_refresh: bool = False
    ) -> list[ResourceInstance]:
        """CRDs owned by an installed Provider or one of its revisions."""
        return [crd for crd, _ in await self._owned_definitions(context, force_refresh)]

    async def list_managed_resource_types(
        self, context: str | None = None, force_refresh: bool = False
    ) -> list[ManagedResourceType]:
        types: list[ManagedResourceType] = []
        for crd, provider in await self._owned_definitions(context, force_refresh):
            managed_type = managed_type_from_crd(crd, provider)
            if managed_type is not None:
                types.append(managed_type)
        return types

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def find_plural(self, group: str, kind: str, context: str | None = None) -> str | None:
        """Plural of *kind* in *group* according to installed CRDs and XRDs."""
        for crd in await self.list_crds(context):
            spec = crd.get("spec") or {}
            names = spec.get("names") or {}
            if spec.get("group") == group and names.get("kind") == kind and names.get("plural"):
                return str(names["plural"])

        for xrd in await self.list_composite_resource_definitions(context):
            spec = xrd.get("spec") or {}
            if spec.get("group") != group:
                continue
            for names_key in ("names", "claimNames"):
                names = spec.get(names_key) or {}
                if names.get("kind") == kind and names.get("plural"):
                    return str(names["plural"])
        return None

    def invalidate(self, context: str | None = None) -> None:
        if context is None:
            self._cache.invalidate()
        else:
            self._cache.invalidate_where(lambda key: key[0] == context)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _owned_definitions(self, context: str | None, force_refresh: bool) -> list[_OwnedDefinition]:
        ctx = self._context(context)
        key = (ctx, _MANAGED)
        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        providers = await self._list(_PROVIDER_GVK, "providers", ctx)
        revisions = await self._list(_PROVIDER_REVISION_GVK, "providerrevisions", ctx)
        crds = await self.list_crds(ctx, force_refresh=force_refresh)

        provider_names = {_name(p) for p in providers} - {""}
        revision_to_provider: dict[str, str] = {}
        for revision in revisions:
            for owner in _pkg_owners(revision, "Provider"):
                if owner in provider_names:
                    revision_to_provider[_name(revision)] = owner
                    break

        owned: list[_OwnedDefinition] = []
        for crd in crds:
            provider = _owning_provider(crd, provider_names, revision_to_provider)
            if provider is None:
                continue
            kind = ((crd.get("spec") or {}).get("names") or {}).get("kind", "")
            if kind in _EXCLUDED_MANAGED_KINDS:
                continue
            owned.append((crd, provider))

        self._log.info("managed_definitions_loaded", context=ctx, providers=len(provider_names), definitions=len(owned))
        self._cache.set(key, owned)
        return owned

    async def _list(self, gvk: GroupVersionKind, plural: str, context: str) -> list[ResourceInstance]:
        try:
            return await self._rest.list_all(gvk, plural, context=context)
        except ApiException as exc:
            raise UpstreamAPIError(f"list {plural}", f"{exc.status} {exc.reason}", status=exc.status) from exc
        except CrossviewError:
            raise
        except Exception as exc:
            raise UpstreamAPIError(f"list {plural}", str(exc) or type(exc).__name__) from exc


def managed_type_from_crd(crd: ResourceInstance, provider: str = "") -> ManagedResourceType | None:
    """Derive the listable type of a CRD.

    Version is the first entry of ``spec.versions``, else ``spec.version``,
    else ``v1``. Returns None when group, kind or plural is missing.
    """
    spec = crd.get("spec") or {}
    names = spec.get("names") or {}
    group = spec.get("group") or ""
    kind = names.get("kind") or ""
    plural = names.get("plural") or ""
    if not group or not kind or not plural:
        return None

    version = ""
    versions = spec.get("versions") or []
    if versions and isinstance(versions[0], dict):
        version = versions[0].get("name") or ""
    if not version:
        version = spec.get("version") or _DEFAULT_VERSION
    return ManagedResourceType(group=group, version=version, kind=kind, plural=plural, provider=provider)


def _name(obj: ResourceInstance) -> str:
    return str((obj.get("metadata") or {}).get("name") or "")


def _pkg_owners(obj: ResourceInstance, kind: str) -> list[str]:
    owners = (obj.get("metadata") or {}).get("ownerReferences") or []
    return [
        str(o.get("name"))
        for o in owners
        if isinstance(o, dict) and o.get("kind") == kind and o.get("apiVersion") == _PKG_API_VERSION
    ]


def _owning_provider(
    crd: ResourceInstance,
    provider_names: set[str],
    revision_to_provider: dict[str, str],
) -> str | None:
    owners = (crd.get("metadata") or {}).get("ownerReferences") or []
    for owner in owners:
        if not isinstance(owner, dict) or owner.get("apiVersion") != _PKG_API_VERSION:
            continue
        name = owner.get("name")
        if owner.get("kind") == "Provider" and name in provider_names:
            return str(name)
        if owner.get("kind") == "ProviderRevision" and name in revision_to_provider:
            return revision_to_provider[name]
    return None
