"""Pydantic request/response models for the crossview REST API.

Resource payloads (``items``, single objects) are passed through as plain
JSON; only the envelopes and request bodies are modelled here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SetContextRequest(BaseModel):
    """Request body for ``POST /api/contexts/current``."""

    context: str = Field(..., min_length=1, description="Name of the kubeconfig context to select.")


class AddKubeconfigRequest(BaseModel):
    """Request body for ``POST /api/contexts/add``."""

    kubeconfig: str = Field(..., min_length=1, description="Kubeconfig YAML whose contexts are merged in.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ContextResponse(BaseModel):
    name: str
    cluster: str = ""
    user: str = ""
    namespace: str = "default"


class ContextListResponse(BaseModel):
    contexts: list[ContextResponse]
    current: str | None = None


class CurrentContextResponse(BaseModel):
    context: str | None = None


class AddKubeconfigResponse(BaseModel):
    added: list[str]


class RemoveContextResponse(BaseModel):
    removed: str


class HealthStatus(BaseModel):
    """Response body for ``GET /api/health``."""

    status: str = Field(..., description="Always ``ok`` when the process is serving.")
    version: str
    connected: bool = Field(..., description="Whether the selected context's API server answered.")
    context: str | None = None


class ItemsResponse(BaseModel):
    items: list[Any]


class PageResponse(BaseModel):
    items: list[dict[str, Any]]
    continueToken: str | None = None  # noqa: N815
    remainingItemCount: int | None = None  # noqa: N815


class ManagedResponse(BaseModel):
    items: list[dict[str, Any]]
    fromCache: bool  # noqa: N815


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-2xx response."""

    error: str = Field(..., description="Machine-readable error code, e.g. ``RESOURCE_NOT_FOUND``.")
    detail: str = Field(..., description="Human-readable description of the failure.")
