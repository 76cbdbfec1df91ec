"""Repository that proxies every call to a running crossview REST API.

Lets a front end (or the CLI) run without cluster credentials of its own.
Error envelopes returned by the server are turned back into the matching
:mod:`crossview.errors` exceptions so callers see the same taxonomy as with
:class:`ClusterRepository`.
"""

from __future__ import annotations

from typing import Any

import httpx

from crossview.errors import (
    EventsNotSupported,
    InvalidGroupVersion,
    ResourceNotFound,
    UnknownContext,
    UpstreamAPIError,
)
from crossview.models.resources import AggregateResult, ClusterContext, Page, ResourceInstance
from crossview.observability.logging import get_logger
from crossview.repository.base import KubernetesRepository

_API_PREFIX: str = "/api"


class ApiRepository(KubernetesRepository):
    """HTTP client for the ``/api`` routes of another crossview instance."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout_seconds, transport=transport)
        self._log = get_logger("repository.api")

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        not_found: ResourceNotFound | None = None,
    ) -> Any:
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        try:
            response = await self._client.request(method, _API_PREFIX + path, params=query, json=body)
        except httpx.HTTPError as exc:
            self._log.warning("api_request_failed", path=path, error=str(exc))
            raise UpstreamAPIError(operation, f"cannot reach {self._base_url}: {exc}") from exc

        if response.is_success:
            return response.json()
        raise _error_from_response(response, operation, not_found)

    # Contexts ---------------------------------------------------------

    async def list_contexts(self) -> list[ClusterContext]:
        data = await self._request("GET", "/contexts", "list contexts")
        return [ClusterContext(**c) for c in data.get("contexts", [])]

    async def get_current_context(self) -> str | None:
        data = await self._request("GET", "/contexts/current", "get current context")
        return data.get("context") or None

    async def set_current_context(self, name: str) -> None:
        await self._request("POST", "/contexts/current", "set current context", body={"context": name})

    async def add_kubeconfig(self, kubeconfig_yaml: str) -> list[str]:
        data = await self._request("POST", "/contexts/add", "add kubeconfig", body={"kubeconfig": kubeconfig_yaml})
        return list(data.get("added", []))

    async def remove_context(self, name: str) -> None:
        await self._request("DELETE", "/contexts", "remove context", params={"context": name})

    # Cluster ----------------------------------------------------------

    async def is_connected(self, context: str | None = None) -> bool:
        try:
            data = await self._request("GET", "/health", "check connection", params={"context": context})
        except UpstreamAPIError:
            return False
        return bool(data.get("connected"))

    async def list_namespaces(self, context: str | None = None) -> list[dict[str, Any]]:
        data = await self._request("GET", "/namespaces", "list namespaces", params={"context": context})
        return list(data.get("items", []))

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
        params = {
            "apiVersion": api_version,
            "kind": kind,
            "namespace": namespace,
            "context": context,
            "limit": limit,
            "continue": continue_token,
            "plural": plural,
        }
        data = await self._request("GET", "/resources", f"list {kind}", params=params)
        return Page.from_dict(data)

    async def get_resource(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
        plural: str | None = None,
    ) -> ResourceInstance:
        params = {
            "apiVersion": api_version,
            "kind": kind,
            "name": name,
            "namespace": namespace,
            "context": context,
            "plural": plural,
        }
        return await self._request(
            "GET",
            "/resource",
            f"get {kind} {name}",
            params=params,
            not_found=ResourceNotFound(kind, name, namespace),
        )

    async def list_events(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
    ) -> list[ResourceInstance]:
        params = {"kind": kind, "name": name, "namespace": namespace, "context": context}
        data = await self._request("GET", "/events", f"list events for {kind} {name}", params=params)
        return list(data.get("items", []))

    async def list_all_managed_resources(
        self,
        context: str | None = None,
        force_refresh: bool = False,
        limit: int | None = None,
    ) -> AggregateResult:
        params = {"context": context, "refresh": "true" if force_refresh else None, "limit": limit}
        data = await self._request("GET", "/managed", "list managed resources", params=params)
        return AggregateResult(items=list(data.get("items", [])), from_cache=bool(data.get("fromCache")))

    async def close(self) -> None:
        await self._client.aclose()


def _error_from_response(
    response: httpx.Response,
    operation: str,
    not_found: ResourceNotFound | None,
) -> Exception:
    try:
        envelope = response.json()
    except ValueError:
        envelope = {}
    code = str(envelope.get("error", "")) if isinstance(envelope, dict) else ""
    detail = str(envelope.get("detail", response.text[:200])) if isinstance(envelope, dict) else response.text[:200]

    if code == "UNKNOWN_CONTEXT":
        return UnknownContext(detail)
    if code == "EVENTS_NOT_SUPPORTED":
        return EventsNotSupported()
    if code == "INVALID_API_VERSION":
        return InvalidGroupVersion(str(response.request.url.params.get("apiVersion", "")), detail)
    if response.status_code == 404:
        return not_found or ResourceNotFound("resource", detail)
    return UpstreamAPIError(operation, f"HTTP {response.status_code}: {detail}", status=response.status_code)
