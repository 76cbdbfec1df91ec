"""FastAPI route handlers for the crossview REST API.

All routes are registered on a single APIRouter that :func:`create_app`
mounts under the ``/api`` prefix. Handlers read the repository and the
Crossplane views from ``request.app.state`` and let
:mod:`crossview.api.errors` translate failures into the error envelope.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query, Request

from crossview import __version__
from crossview.api.schemas import (
    AddKubeconfigRequest,
    AddKubeconfigResponse,
    ContextListResponse,
    ContextResponse,
    CurrentContextResponse,
    ErrorResponse,
    HealthStatus,
    ItemsResponse,
    ManagedResponse,
    PageResponse,
    RemoveContextResponse,
    SetContextRequest,
)
from crossview.crossplane.search import SearchFilters
from crossview.crossplane.views import CrossplaneViews
from crossview.repository.base import KubernetesRepository

router = APIRouter()

_ERRORS: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _repository(request: Request) -> KubernetesRepository:
    return request.app.state.repository  # type: ignore[no-any-return]


def _views(request: Request) -> CrossplaneViews:
    return request.app.state.views  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------


@router.get("/contexts", response_model=ContextListResponse, responses=_ERRORS, summary="List contexts")
async def get_contexts(request: Request) -> ContextListResponse:
    repo = _repository(request)
    contexts = await repo.list_contexts()
    return ContextListResponse(
        contexts=[ContextResponse(**c.to_dict()) for c in contexts],
        current=await repo.get_current_context(),
    )


@router.get("/contexts/current", response_model=CurrentContextResponse, responses=_ERRORS)
async def get_current_context(request: Request) -> CurrentContextResponse:
    return CurrentContextResponse(context=await _repository(request).get_current_context())


@router.post("/contexts/current", response_model=CurrentContextResponse, responses=_ERRORS)
async def post_current_context(request: Request, body: SetContextRequest) -> CurrentContextResponse:
    await _repository(request).set_current_context(body.context)
    return CurrentContextResponse(context=body.context)


@router.post("/contexts/add", response_model=AddKubeconfigResponse, responses=_ERRORS)
async def post_add_contexts(request: Request, body: AddKubeconfigRequest) -> AddKubeconfigResponse:
    added = await _repository(request).add_kubeconfig(body.kubeconfig)
    return AddKubeconfigResponse(added=added)


@router.delete("/contexts", response_model=RemoveContextResponse, responses=_ERRORS)
async def delete_context(request: Request, context: str = Query(..., min_length=1)) -> RemoveContextResponse:
    await _repository(request).remove_context(context)
    return RemoveContextResponse(removed=context)


# ---------------------------------------------------------------------------
# Cluster
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Health check",
    description="Always 200 while the process serves; ``connected`` reports API server reachability.",
)
async def get_health(request: Request, context: str | None = None) -> HealthStatus:
    repo = _repository(request)
    return HealthStatus(
        status="ok",
        version=__version__,
        connected=await repo.is_connected(context),
        context=context,
    )


@router.get("/namespaces", response_model=ItemsResponse, responses=_ERRORS)
async def get_namespaces(request: Request, context: str | None = None) -> ItemsResponse:
    return ItemsResponse(items=await _repository(request).list_namespaces(context))


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@router.get("/resources", response_model=PageResponse, responses=_ERRORS, summary="List one page of resources")
async def get_resources(
    request: Request,
    api_version: str = Query(..., alias="apiVersion"),
    kind: str = Query(..., min_length=1),
    namespace: str | None = None,
    context: str | None = None,
    limit: int | None = Query(default=None, ge=1),
    continue_token: str | None = Query(default=None, alias="continue"),
    plural: str | None = None,
) -> PageResponse:
    page = await _repository(request).list_resources(
        api_version, kind, namespace, context, limit, continue_token, plural
    )
    return PageResponse(**page.to_dict())


@router.get("/resource", responses=_ERRORS, summary="Get a single resource")
async def get_resource(
    request: Request,
    api_version: str = Query(..., alias="apiVersion"),
    kind: str = Query(..., min_length=1),
    name: str = Query(..., min_length=1),
    namespace: str | None = None,
    context: str | None = None,
    plural: str | None = None,
) -> dict[str, Any]:
    return await _repository(request).get_resource(api_version, kind, name, namespace, context, plural)


@router.get("/events", response_model=ItemsResponse, responses=_ERRORS)
async def get_events(
    request: Request,
    kind: str = Query(..., min_length=1),
    name: str = Query(..., min_length=1),
    namespace: str | None = None,
    context: str | None = None,
) -> ItemsResponse:
    return ItemsResponse(items=await _repository(request).list_events(kind, name, namespace, context))


@router.get("/managed", response_model=ManagedResponse, responses=_ERRORS, summary="List all managed resources")
async def get_managed(
    request: Request,
    context: str | None = None,
    refresh: bool = False,
    limit: int | None = Query(default=None, ge=1),
) -> ManagedResponse:
    result = await _repository(request).list_all_managed_resources(context, refresh, limit)
    return ManagedResponse(**result.to_dict())


# ---------------------------------------------------------------------------
# Crossplane views
# ---------------------------------------------------------------------------


@router.get("/crossplane/{view}", responses=_ERRORS, summary="Crossplane dashboard views")
async def get_crossplane_view(
    request: Request,
    view: str,
    context: str | None = None,
    namespace: str | None = None,
    refresh: bool = False,
    limit: int | None = Query(default=None, ge=1),
    q: str = "",
    status: str = "all",
    kind: list[str] = Query(default=[]),
    ns: list[str] = Query(default=[]),
    resource_type: list[str] = Query(default=[], alias="resourceType"),
    label: list[str] = Query(default=[]),
    created_after: datetime | None = Query(default=None, alias="createdAfter"),
    created_before: datetime | None = Query(default=None, alias="createdBefore"),
    quick: str | None = None,
) -> Any:
    views = _views(request)
    if view == "managed":
        result = await views.managed_resources(context, refresh, limit)
        return result.to_dict()
    if view == "dashboard":
        return await views.dashboard(context)
    if view == "resources":
        return {"items": await views.crossplane_resources(namespace, context)}
    if view == "search":
        filters = SearchFilters(
            status=status,
            kinds=kind,
            namespaces=ns,
            resource_types=resource_type,
            labels=_parse_labels(label),
            created_after=created_after,
            created_before=created_before,
        )
        return {"items": await views.search(context, q, filters, quick)}

    handlers = {
        "providers": views.providers,
        "provider-configs": views.provider_configs,
        "functions": views.functions,
        "compositions": views.compositions,
        "xrds": views.composite_resource_definitions,
        "composite-resource-kinds": views.composite_resource_kinds,
        "composite-resources": views.composite_resources,
        "claims": views.claims,
    }
    handler = handlers.get(view)
    if handler is None:
        raise ValueError(f"unknown view {view!r}")
    return {"items": await handler(context)}


def _parse_labels(pairs: list[str]) -> dict[str, str]:
    labels: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"label filter must be key=value, got: {pair!r}")
        labels[key] = value
    return labels
