"""Core data structures of the custom resource access layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from crossview.errors import InvalidGroupVersion

# Resource instances are passed through as plain JSON-shaped dicts.
ResourceInstance = dict[str, Any]

CORE_GROUP: str = ""
IN_CLUSTER_CONTEXT: str = "in-cluster"


class CredentialSource(StrEnum):
    """Where connection material was loaded from."""

    IN_CLUSTER = "in-cluster"
    KUBECONFIG = "kubeconfig"


@dataclass(frozen=True)
class ClusterContext:
    """A named kubeconfig context."""

    name: str
    cluster: str = ""
    user: str = ""
    namespace: str = "default"

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "cluster": self.cluster,
            "user": self.user,
            "namespace": self.namespace,
        }


@dataclass(frozen=True)
class CredentialSet:
    """Connection material for every context known to the process.

    ``document`` is the parsed kubeconfig (empty for in-cluster mode).
    """

    source: CredentialSource
    path: str
    contexts: tuple[ClusterContext, ...]
    current_context: str | None
    document: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def context(self, name: str) -> ClusterContext | None:
        for ctx in self.contexts:
            if ctx.name == name:
                return ctx
        return None


@dataclass(frozen=True)
class GroupVersionKind:
    """A ``(group, version, kind)`` triple.

    ``group`` is empty for the legacy core API (``apiVersion: v1``).
    """

    group: str
    version: str
    kind: str

    @classmethod
    def parse(cls, api_version: str, kind: str) -> GroupVersionKind:
        """Split *api_version* on ``/``.

        A bare version (``"v1"``) addresses the core group. A slashed value
        must have a non-empty group and version. Anything else is rejected.
        """
        raw = (api_version or "").strip()
        if not raw:
            raise InvalidGroupVersion(api_version, "apiVersion is required")
        parts = raw.split("/")
        if len(parts) == 1:
            return cls(group=CORE_GROUP, version=parts[0], kind=kind)
        if len(parts) != 2:
            raise InvalidGroupVersion(api_version, "expected group/version")
        group, version = parts[0].strip(), parts[1].strip()
        if not group:
            raise InvalidGroupVersion(api_version, "group is required")
        if not version:
            raise InvalidGroupVersion(api_version, "version is required")
        return cls(group=group, version=version, kind=kind)

    @property
    def is_core(self) -> bool:
        return self.group == CORE_GROUP

    @property
    def api_version(self) -> str:
        return self.version if self.is_core else f"{self.group}/{self.version}"

    @property
    def group_version_path(self) -> str:
        """REST prefix: ``/api/v1`` for core, ``/apis/{group}/{version}`` otherwise."""
        if self.is_core:
            return f"/api/{self.version}"
        return f"/apis/{self.group}/{self.version}"


@dataclass
class Page:
    """One page of a server-side paginated list.

    ``continue_token is None`` means the listing reached the end of the
    result set for that query.
    """

    items: list[ResourceInstance] = field(default_factory=list)
    continue_token: str | None = None
    remaining_item_count: int | None = None

    @classmethod
    def empty(cls) -> Page:
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": self.items,
            "continueToken": self.continue_token,
            "remainingItemCount": self.remaining_item_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Page:
        items = data.get("items") or []
        return cls(
            items=list(items) if isinstance(items, list) else [],
            continue_token=data.get("continueToken") or None,
            remaining_item_count=data.get("remainingItemCount"),
        )


@dataclass(frozen=True)
class ManagedResourceType:
    """A provider-owned custom resource type that instances can be listed for."""

    group: str
    version: str
    kind: str
    plural: str
    provider: str = ""

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


@dataclass
class AggregateResult:
    """Merged instances from a multi-type fan-out."""

    items: list[ResourceInstance] = field(default_factory=list)
    from_cache: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"items": self.items, "fromCache": self.from_cache}
