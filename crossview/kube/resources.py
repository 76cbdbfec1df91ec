"""Resource Client: list/get/events for any ``(apiVersion, kind)``.

Collection reads go through the generic REST transport with the plural
supplied by the caller or resolved by :class:`PluralResolver`. Single reads
of well-known built-in kinds use the typed ``CoreV1Api``/``AppsV1Api``
methods; everything else uses a generic read.

Error normalization happens here: not-found collections become empty pages,
not-found objects raise :class:`ResourceNotFound`, and any other API failure
is wrapped in :class:`UpstreamAPIError` naming the operation.
"""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException

from crossview.errors import (
    CrossviewError,
    EventsNotSupported,
    ResourceNotFound,
    UpstreamAPIError,
    is_not_found,
)
from crossview.kube.plurals import PluralResolver
from crossview.kube.transport import KubeRestClient
from crossview.models.resources import GroupVersionKind, Page, ResourceInstance
from crossview.observability.logging import get_logger
from crossview.observability.metrics import api_requests_total

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Sentinel namespace values that clients send instead of omitting the field.
_ABSENT_NAMESPACES: frozenset[str] = frozenset({"", "undefined", "null"})

# kind -> (api group, snake_case method suffix, namespaced)
_TYPED_READS: dict[str, tuple[str, str, bool]] = {
    "Service": ("", "service", True),
    "Pod": ("", "pod", True),
    "ConfigMap": ("", "config_map", True),
    "Secret": ("", "secret", True),
    "Namespace": ("", "namespace", False),
    "Node": ("", "node", False),
    "PersistentVolume": ("", "persistent_volume", False),
    "Deployment": ("apps", "deployment", True),
    "StatefulSet": ("apps", "stateful_set", True),
    "DaemonSet": ("apps", "daemon_set", True),
    "ReplicaSet": ("apps", "replica_set", True),
}

_EVENT_SORT_KEYS: tuple[str, ...] = ("lastTimestamp", "eventTime", "firstTimestamp")
_CORE_V1 = GroupVersionKind("", "v1", "APIResourceList")


def normalize_namespace(namespace: str | None) -> str | None:
    if namespace is None or namespace.strip() in _ABSENT_NAMESPACES:
        return None
    return namespace.strip()


class ResourceClient:
    """Reads cluster resources by ``(apiVersion, kind)``."""

    def __init__(self, rest: KubeRestClient, plurals: PluralResolver) -> None:
        self._rest = rest
        self._plurals = plurals
        self._log = get_logger("kube.resources")

    @property
    def plurals(self) -> PluralResolver:
        return self._plurals

    def resolve_context(self, context: str | None = None) -> str:
        return self._rest.pool.resolver.resolve_context(context)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        context: str | None = None,
        limit: int | None = None,
        continue_token: str | None = None,
        plural: str | None = None,
    ) -> Page:
        """One page of *kind* instances, cluster-wide when *namespace* is absent."""
        gvk = GroupVersionKind.parse(api_version, kind)
        namespace = normalize_namespace(namespace)
        try:
            resource_plural = plural or await self._plurals.resolve(gvk, context)
            page = await self._rest.list_page(gvk, resource_plural, namespace, limit, continue_token, context)
        except CrossviewError:
            api_requests_total.labels(operation="list", outcome="error").inc()
            raise
        except Exception as exc:
            api_requests_total.labels(operation="list", outcome="error").inc()
            raise UpstreamAPIError(f"list {kind}", _describe(exc), status=getattr(exc, "status", None)) from exc
        api_requests_total.labels(operation="list", outcome="success").inc()
        return page

    # ------------------------------------------------------------------
    # Single objects
    # ------------------------------------------------------------------

    async def get(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
        plural: str | None = None,
    ) -> ResourceInstance:
        if kind == "Event":
            raise EventsNotSupported()
        gvk = GroupVersionKind.parse(api_version, kind)
        namespace = normalize_namespace(namespace)

        try:
            obj = await self._typed_read(gvk, name, namespace, context)
            if obj is None:
                resource_plural = plural or await self._plurals.resolve(gvk, context)
                obj = await self._rest.get_object(gvk, resource_plural, name, namespace, context)
        except CrossviewError:
            api_requests_total.labels(operation="get", outcome="error").inc()
            raise
        except Exception as exc:
            if is_not_found(exc):
                obj = None
            else:
                api_requests_total.labels(operation="get", outcome="error").inc()
                raise UpstreamAPIError(f"get {kind} {name}", _describe(exc), status=getattr(exc, "status", None)) from exc

        if not obj:
            api_requests_total.labels(operation="get", outcome="not_found").inc()
            raise ResourceNotFound(kind, name, namespace)
        api_requests_total.labels(operation="get", outcome="success").inc()
        obj.setdefault("apiVersion", gvk.api_version)
        obj.setdefault("kind", kind)
        return obj

    async def _typed_read(
        self,
        gvk: GroupVersionKind,
        name: str,
        namespace: str | None,
        context: str | None,
    ) -> ResourceInstance | None:
        """Read through the typed API when *gvk* is a well-known built-in.

        Returns None when no typed method applies; raises the API error
        (not-found included) otherwise.
        """
        typed = _TYPED_READS.get(gvk.kind)
        if typed is None:
            return None
        group, suffix, namespaced = typed
        if gvk.group != group or gvk.version != "v1" or namespaced != (namespace is not None):
            return None

        api_client = await self._rest.pool.client_for(context)
        api = client.AppsV1Api(api_client) if group == "apps" else client.CoreV1Api(api_client)
        if namespaced:
            result = await getattr(api, f"read_namespaced_{suffix}")(name, namespace)
        else:
            result = await getattr(api, f"read_{suffix}")(name)
        return api_client.sanitize_for_serialization(result)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def list_events(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
    ) -> list[ResourceInstance]:
        """Events whose involved object is exactly ``kind/name[/namespace]``.

        Newest first. A failed query is retried once with only the kind and
        name predicates, inside the same namespace when one is given, and
        matches are filtered client-side. If the retry also fails an empty
        list is returned.
        """
        namespace = normalize_namespace(namespace)
        selector = f"involvedObject.kind={kind},involvedObject.name={name}"
        try:
            api_client = await self._rest.pool.client_for(context)
        except CrossviewError as exc:
            self._log.warning("events_query_failed", kind=kind, name=name, error=str(exc))
            return []
        api = client.CoreV1Api(api_client)

        raw: Any = None
        try:
            if namespace:
                raw = await api.list_namespaced_event(
                    namespace, field_selector=f"{selector},involvedObject.namespace={namespace}"
                )
            else:
                raw = await api.list_event_for_all_namespaces(field_selector=selector)
        except Exception as exc:
            self._log.warning("events_query_retry", kind=kind, name=name, namespace=namespace, error=str(exc))
            try:
                if namespace:
                    raw = await api.list_namespaced_event(namespace, field_selector=selector)
                else:
                    raw = await api.list_event_for_all_namespaces(field_selector=selector)
            except Exception as retry_exc:
                self._log.warning("events_query_failed", kind=kind, name=name, error=str(retry_exc))
                return []

        body = api_client.sanitize_for_serialization(raw) or {}
        events = [
            e
            for e in body.get("items") or []
            if isinstance(e, dict) and _involves(e, kind, name, namespace)
        ]
        events.sort(key=_event_time, reverse=True)
        return events

    # ------------------------------------------------------------------
    # Cluster metadata
    # ------------------------------------------------------------------

    async def list_namespaces(self, context: str | None = None) -> list[dict[str, Any]]:
        api_client = await self._rest.pool.client_for(context)
        try:
            raw = await client.CoreV1Api(api_client).list_namespace()
        except Exception as exc:
            raise UpstreamAPIError("list namespaces", _describe(exc), status=getattr(exc, "status", None)) from exc
        body = api_client.sanitize_for_serialization(raw) or {}
        namespaces = []
        for item in body.get("items") or []:
            metadata = item.get("metadata") or {}
            namespaces.append(
                {
                    "name": metadata.get("name", ""),
                    "uid": metadata.get("uid", ""),
                    "creationTimestamp": metadata.get("creationTimestamp"),
                    "labels": metadata.get("labels") or {},
                }
            )
        return namespaces

    async def is_connected(self, context: str | None = None) -> bool:
        try:
            await self._rest.get_json(_CORE_V1.group_version_path, context)
        except Exception as exc:
            self._log.info("connection_check_failed", context=context, error=str(exc))
            return False
        return True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _involves(event: dict[str, Any], kind: str, name: str, namespace: str | None) -> bool:
    involved = event.get("involvedObject") or {}
    if involved.get("kind") != kind or involved.get("name") != name:
        return False
    return (involved.get("namespace") or None) == namespace


def _event_time(event: dict[str, Any]) -> str:
    for key in _EVENT_SORT_KEYS:
        value = event.get(key)
        if value:
            return str(value)
    return ""


def _describe(exc: BaseException) -> str:
    if isinstance(exc, ApiException):
        return f"{exc.status} {exc.reason}"
    return str(exc)
