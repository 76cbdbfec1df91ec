"""Data model and configuration types."""

from crossview.models.config import CrossviewConfig
from crossview.models.resources import (
    AggregateResult,
    ClusterContext,
    CredentialSet,
    CredentialSource,
    GroupVersionKind,
    ManagedResourceType,
    Page,
    ResourceInstance,
)

__all__ = [
    "AggregateResult",
    "ClusterContext",
    "CredentialSet",
    "CredentialSource",
    "CrossviewConfig",
    "GroupVersionKind",
    "ManagedResourceType",
    "Page",
    "ResourceInstance",
]
