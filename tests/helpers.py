"""Test doubles and builders shared by the unit and integration suites.

``FakeApiClient`` stands in for a ``kubernetes_asyncio`` ``ApiClient``. It
serves routes registered by path, paginates list routes with ``limit`` and
``continue`` (the token is the next offset), records every call, and raises
``ApiException(404)`` for unknown paths.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException

KUBECONFIG: dict[str, Any] = {
    "apiVersion": "v1",
    "kind": "Config",
    "current-context": "alpha",
    "contexts": [
        {"name": "alpha", "context": {"cluster": "cluster-a", "user": "user-a", "namespace": "team-a"}},
        {"name": "beta", "context": {"cluster": "cluster-b", "user": "user-b"}},
    ],
    "clusters": [
        {"name": "cluster-a", "cluster": {"server": "https://a.example:6443"}},
        {"name": "cluster-b", "cluster": {"server": "https://b.example:6443"}},
    ],
    "users": [
        {"name": "user-a", "user": {"token": "token-a"}},
        {"name": "user-b", "user": {"token": "token-b"}},
    ],
}


class FakeApiClient:
    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def add_list(self, path: str, items: list[dict[str, Any]]) -> None:
        self.routes[path] = list(items)

    def add_object(self, path: str, obj: dict[str, Any]) -> None:
        self.routes[path] = dict(obj)

    def add_discovery(self, path: str, resources: list[dict[str, Any]]) -> None:
        self.routes[path] = {"kind": "APIResourceList", "resources": resources}

    def add_error(self, path: str, status: int, reason: str = "Error") -> None:
        self.routes[path] = ApiException(status=status, reason=reason)

    def add_handler(self, path: str, handler: Callable[[dict[str, Any]], Awaitable[Any]]) -> None:
        self.routes[path] = handler

    def paths_called(self) -> list[str]:
        return [path for path, _ in self.calls]

    async def call_api(self, resource_path: str, method: str, query_params: Any = None, **kwargs: Any) -> Any:
        query = dict(query_params or [])
        self.calls.append((resource_path, query))
        value = self.routes.get(resource_path)
        if value is None:
            raise ApiException(status=404, reason="Not Found")
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            value = await value(query)
        if isinstance(value, list):
            return _paginate(value, query)
        return dict(value)

    def sanitize_for_serialization(self, obj: Any) -> Any:
        return obj

    async def close(self) -> None:
        self.closed = True


def _paginate(items: list[dict[str, Any]], query: dict[str, Any]) -> dict[str, Any]:
    start = int(query.get("continue") or 0)
    limit = query.get("limit")
    end = len(items) if not limit else min(len(items), start + int(limit))
    metadata: dict[str, Any] = {}
    if end < len(items):
        metadata["continue"] = str(end)
        metadata["remainingItemCount"] = len(items) - end
    return {"kind": "List", "items": items[start:end], "metadata": metadata}


def obj(name: str, namespace: str | None = None, **fields: Any) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "uid": f"uid-{name}"}
    if namespace:
        metadata["namespace"] = namespace
    metadata.update(fields.pop("metadata", {}))
    return {"metadata": metadata, **fields}


def crd(
    group: str,
    kind: str,
    plural: str,
    owner_kind: str | None = None,
    owner_name: str = "",
    versions: list[str] | None = None,
) -> dict[str, Any]:
    owners = []
    if owner_kind:
        owners.append({"apiVersion": "pkg.crossplane.io/v1", "kind": owner_kind, "name": owner_name})
    return {
        "metadata": {"name": f"{plural}.{group}", "ownerReferences": owners},
        "spec": {
            "group": group,
            "names": {"kind": kind, "plural": plural},
            "versions": [{"name": v} for v in (versions or ["v1beta1"])],
        },
    }
