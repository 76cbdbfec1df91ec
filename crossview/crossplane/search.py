"""Text search and filters over projected Crossplane resources.

Resources here are the flat dicts produced by
:class:`~crossview.crossplane.views.CrossplaneViews` (``name``, ``kind``,
``namespace``, ``labels``, ``conditions``...), not raw API objects.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

Resource = dict[str, Any]

_READINESS_TYPES: tuple[str, ...] = ("Ready", "Synced")
_HEALTH_TYPES: tuple[str, ...] = ("Healthy", "Available")


@dataclass
class SearchFilters:
    """Every field is optional; an unset field does not filter."""

    status: str = "all"  # all | ready | not-ready | unknown
    kinds: list[str] = field(default_factory=list)
    namespaces: list[str] = field(default_factory=list)
    resource_types: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    created_after: datetime | None = None
    created_before: datetime | None = None


def filter_resources(resources: Iterable[Resource], query: str = "", filters: SearchFilters | None = None) -> list[Resource]:
    """Apply the free-text *query* then every set field of *filters*.

    The query matches case-insensitively against name, kind, namespace and
    ``key=value`` label pairs.
    """
    filters = filters or SearchFilters()
    result = list(resources)

    needle = query.strip().lower()
    if needle:
        result = [r for r in result if needle in _haystack(r)]

    if filters.status and filters.status != "all":
        result = [r for r in result if _matches_status(r, filters.status)]
    if filters.kinds:
        result = [r for r in result if r.get("kind") in filters.kinds]
    if filters.namespaces:
        result = [r for r in result if (r.get("namespace") or "") in filters.namespaces]
    if filters.resource_types:
        result = [r for r in result if r.get("resourceType") in filters.resource_types]
    if filters.labels:
        result = [r for r in result if _has_all(r.get("labels"), filters.labels)]
    if filters.annotations:
        result = [r for r in result if _has_all(r.get("annotations"), filters.annotations)]
    if filters.created_after or filters.created_before:
        result = [r for r in result if _created_within(r, filters.created_after, filters.created_before)]
    return result


# ---------------------------------------------------------------------------
# Quick filters
# ---------------------------------------------------------------------------


def failed_resources(resources: Iterable[Resource]) -> list[Resource]:
    failed = []
    for resource in resources:
        conditions = resource.get("conditions") or []
        readiness = _readiness_condition(conditions)
        unhealthy = any(c.get("status") == "False" and c.get("type") in _HEALTH_TYPES for c in conditions)
        if (readiness is not None and readiness.get("status") == "False") or unhealthy:
            failed.append(resource)
    return failed


def ready_resources(resources: Iterable[Resource]) -> list[Resource]:
    return [r for r in resources if _matches_status(r, "ready")]


def recent_resources(resources: Iterable[Resource], hours: int = 24, now: datetime | None = None) -> list[Resource]:
    cutoff = (now or datetime.now(tz=UTC)) - timedelta(hours=hours)
    recent = []
    for resource in resources:
        created = parse_timestamp(resource.get("creationTimestamp"))
        if created is not None and created > cutoff:
            recent.append(resource)
    return recent


QUICK_FILTERS = {
    "failed": failed_resources,
    "ready": ready_resources,
    "recent": recent_resources,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _haystack(resource: Resource) -> str:
    labels = " ".join(f"{k}={v}" for k, v in (resource.get("labels") or {}).items())
    parts = (resource.get("name") or "", resource.get("kind") or "", resource.get("namespace") or "", labels)
    return " ".join(parts).lower()


def _readiness_condition(conditions: list[dict[str, Any]]) -> dict[str, Any] | None:
    for condition in conditions:
        if condition.get("type") in _READINESS_TYPES:
            return condition
    return None


def _matches_status(resource: Resource, status: str) -> bool:
    condition = _readiness_condition(resource.get("conditions") or [])
    if status == "ready":
        return condition is not None and condition.get("status") == "True"
    if status == "not-ready":
        return condition is not None and condition.get("status") == "False"
    if status == "unknown":
        return condition is None or condition.get("status") == "Unknown"
    return True


def _has_all(actual: dict[str, str] | None, wanted: dict[str, str]) -> bool:
    actual = actual or {}
    return all(actual.get(k) == v for k, v in wanted.items())


def _created_within(resource: Resource, after: datetime | None, before: datetime | None) -> bool:
    created = parse_timestamp(resource.get("creationTimestamp"))
    if created is None:
        return False
    if after is not None and created < parse_timestamp(after):  # type: ignore[operator]
        return False
    if before is not None and created > parse_timestamp(before):  # type: ignore[operator]
        return False
    return True
