"""Thin REST layer over the per-context ``ApiClient`` handles.

Builds resource paths from a :class:`GroupVersionKind` and a plural, passes
``limit``/``continue`` straight through to the API server, and returns raw
JSON documents. Not-found on a collection is normalized to an empty
:class:`Page` and on a single object to ``None``; every other API failure is
raised unchanged for the caller to classify.

The Type Catalog, the Plural Resolver and the Resource Client all sit on top
of this module, so none of them needs to import another.
"""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException

from crossview.errors import CrossviewError, DiscoveryTransportError, is_not_found
from crossview.kube.credentials import ClientPool
from crossview.models.resources import GroupVersionKind, Page, ResourceInstance
from crossview.observability.logging import get_logger
from crossview.observability.metrics import discovery_errors_total

_JSON_HEADERS: dict[str, str] = {"Accept": "application/json"}
_AUTH_SETTINGS: list[str] = ["BearerToken"]
_DEFAULT_PAGE_SIZE: int = 500


def resource_path(
    gvk: GroupVersionKind,
    plural: str,
    namespace: str | None = None,
    name: str | None = None,
) -> str:
    """``/api/v1[/namespaces/{ns}]/{plural}[/{name}]`` or the ``/apis`` form."""
    path = gvk.group_version_path
    if namespace:
        path += f"/namespaces/{namespace}"
    path += f"/{plural}"
    if name:
        path += f"/{name}"
    return path


class KubeRestClient:
    """Issues GET requests against the API server of a named context."""

    def __init__(self, pool: ClientPool) -> None:
        self._pool = pool
        self._log = get_logger("kube.transport")

    @property
    def pool(self) -> ClientPool:
        return self._pool

    async def get_json(
        self,
        path: str,
        context: str | None = None,
        query: list[tuple[str, Any]] | None = None,
    ) -> dict[str, Any]:
        api_client = await self._pool.client_for(context)
        result = await api_client.call_api(
            path,
            "GET",
            query_params=query or [],
            header_params=dict(_JSON_HEADERS),
            response_types_map={200: "object"},
            auth_settings=_AUTH_SETTINGS,
            _return_http_data_only=True,
        )
        return result if isinstance(result, dict) else {}

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list_page(
        self,
        gvk: GroupVersionKind,
        plural: str,
        namespace: str | None = None,
        limit: int | None = None,
        continue_token: str | None = None,
        context: str | None = None,
    ) -> Page:
        query: list[tuple[str, Any]] = []
        if limit is not None and limit > 0:
            query.append(("limit", limit))
        if continue_token:
            query.append(("continue", continue_token))
        path = resource_path(gvk, plural, namespace)
        try:
            body = await self.get_json(path, context, query)
        except ApiException as exc:
            if is_not_found(exc):
                self._log.debug("list_not_found", path=path)
                return Page.empty()
            raise
        return _page_from_list(body)

    async def list_all(
        self,
        gvk: GroupVersionKind,
        plural: str,
        namespace: str | None = None,
        context: str | None = None,
        page_size: int = _DEFAULT_PAGE_SIZE,
    ) -> list[ResourceInstance]:
        """Follow continuation tokens until the collection is exhausted."""
        items: list[ResourceInstance] = []
        token: str | None = None
        while True:
            page = await self.list_page(gvk, plural, namespace, page_size, token, context)
            items.extend(page.items)
            token = page.continue_token
            if not token:
                return items

    # ------------------------------------------------------------------
    # Single objects
    # ------------------------------------------------------------------

    async def get_object(
        self,
        gvk: GroupVersionKind,
        plural: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
    ) -> ResourceInstance | None:
        path = resource_path(gvk, plural, namespace, name)
        try:
            return await self.get_json(path, context)
        except ApiException as exc:
            if is_not_found(exc):
                return None
            raise

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self, gvk: GroupVersionKind, context: str | None = None) -> list[dict[str, Any]] | None:
        """Return the ``resources`` of the group/version discovery document.

        ``None`` means the group/version is not served. Transport and parse
        failures raise :class:`DiscoveryTransportError`.
        """
        path = gvk.group_version_path
        try:
            body = await self.get_json(path, context)
        except ApiException as exc:
            if is_not_found(exc):
                return None
            discovery_errors_total.inc()
            raise DiscoveryTransportError(f"discovery of {path} failed: {exc.status} {exc.reason}") from exc
        except CrossviewError:
            raise
        except Exception as exc:
            discovery_errors_total.inc()
            raise DiscoveryTransportError(f"discovery of {path} failed: {exc}") from exc

        resources = body.get("resources")
        if not isinstance(resources, list):
            discovery_errors_total.inc()
            raise DiscoveryTransportError(f"discovery of {path} returned no resource list")
        return [r for r in resources if isinstance(r, dict)]


def _page_from_list(body: dict[str, Any]) -> Page:
    metadata = body.get("metadata") or {}
    items = body.get("items") or []
    remaining = metadata.get("remainingItemCount")
    return Page(
        items=[i for i in items if isinstance(i, dict)],
        continue_token=metadata.get("continue") or None,
        remaining_item_count=int(remaining) if remaining is not None else None,
    )
