"""Kubernetes access: credentials, transport, plurals, reads and aggregation."""

from crossview.kube.aggregator import ManagedResourceAggregator
from crossview.kube.catalog import TypeCatalog
from crossview.kube.credentials import ClientPool, ContextResolver
from crossview.kube.plurals import PluralResolver
from crossview.kube.resources import ResourceClient
from crossview.kube.transport import KubeRestClient

__all__ = [
    "ClientPool",
    "ContextResolver",
    "KubeRestClient",
    "ManagedResourceAggregator",
    "PluralResolver",
    "ResourceClient",
    "TypeCatalog",
]
