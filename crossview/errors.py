"""Exception taxonomy for the custom resource access layer.

Every error raised across a public boundary derives from
:class:`CrossviewError` so the REST layer can map it to a status code
without inspecting transport details.

Not-found classification lives here too: the Kubernetes client surfaces
missing types and objects in several shapes (status code, structured
``Status`` body, or only a message), and every call site needs the same
answer.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

_NOT_FOUND_MARKERS: tuple[str, ...] = ("404", "NotFound", "does not exist", "not found")


class CrossviewError(Exception):
    """Base class for all access layer errors."""


class CredentialsNotFound(CrossviewError):
    """Neither an in-cluster service identity nor a kubeconfig file was found."""

    def __init__(self, searched: Sequence[str], env_vars: Sequence[str]) -> None:
        self.searched = list(searched)
        self.env_vars = list(env_vars)
        paths = ", ".join(self.searched) or "<none>"
        envs = ", ".join(self.env_vars)
        super().__init__(f"No Kubernetes credentials found; searched {paths} (env vars consulted in order: {envs})")


class UnknownContext(CrossviewError):
    """The requested context does not exist or no context is selected."""


class InvalidGroupVersion(CrossviewError):
    """An ``apiVersion`` string could not be split into a valid group/version."""

    def __init__(self, api_version: str, reason: str) -> None:
        self.api_version = api_version
        super().__init__(f"invalid apiVersion {api_version!r}: {reason}")


class DiscoveryTransportError(CrossviewError):
    """Network or parse failure while reading an API discovery document."""


class ResourceNotFound(CrossviewError):
    """A single named resource does not exist on the cluster."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f" in namespace {namespace!r}" if namespace else ""
        super().__init__(f"resource not found: {kind}/{name}{where}")


class EventsNotSupported(CrossviewError):
    """Events cannot be read by name; use the field-selector events query."""

    def __init__(self) -> None:
        super().__init__("Event resources cannot be fetched directly; list events for the involved object instead")


class QueryTimeout(CrossviewError):
    """A fanned-out per-type query exceeded its timeout."""

    def __init__(self, operation: str, timeout_s: float) -> None:
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"{operation} timed out after {timeout_s:g}s")


class UpstreamAPIError(CrossviewError):
    """Any other failure reported by the cluster API."""

    def __init__(self, operation: str, cause: BaseException | str, status: int | None = None) -> None:
        self.operation = operation
        self.cause = cause
        self.status = status if status is not None else _status_of(cause)
        super().__init__(f"failed to {operation}: {cause}")


# ---------------------------------------------------------------------------
# Not-found classification
# ---------------------------------------------------------------------------


def is_not_found(exc: BaseException) -> bool:
    """Return True when *exc* describes a 404/NotFound response.

    Checked in priority order, any one match is enough: HTTP status code,
    structured error body (``code`` / ``reason`` fields), then message
    substrings. A ``NotFound`` body or message wins over a non-404 status
    (aggregated API servers sometimes wrap a NotFound in a 503).
    """
    status = _status_of(exc)
    if status == 404:
        return True

    body = _structured_body(exc)
    if body is not None and (body.get("code") == 404 or body.get("reason") == "NotFound"):
        return True

    message = str(exc)
    return any(marker in message for marker in _NOT_FOUND_MARKERS)


def _status_of(exc: BaseException | str) -> int | None:
    if isinstance(exc, str):
        return None
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    return None


def _structured_body(exc: BaseException) -> dict[str, Any] | None:
    body = getattr(exc, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    if isinstance(body, dict):
        return body
    return None
