"""The capability interface every cluster access backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from crossview.models.resources import AggregateResult, ClusterContext, Page, ResourceInstance


class KubernetesRepository(ABC):
    """Read access to one or more clusters, addressed by context name.

    ``context=None`` always means "the current context".
    """

    # Contexts ---------------------------------------------------------

    @abstractmethod
    async def list_contexts(self) -> list[ClusterContext]: ...

    @abstractmethod
    async def get_current_context(self) -> str | None: ...

    @abstractmethod
    async def set_current_context(self, name: str) -> None: ...

    @abstractmethod
    async def add_kubeconfig(self, kubeconfig_yaml: str) -> list[str]: ...

    @abstractmethod
    async def remove_context(self, name: str) -> None: ...

    # Cluster ----------------------------------------------------------

    @abstractmethod
    async def is_connected(self, context: str | None = None) -> bool: ...

    @abstractmethod
    async def list_namespaces(self, context: str | None = None) -> list[dict[str, Any]]: ...

    # Resources --------------------------------------------------------

    @abstractmethod
    async def list_resources(
        self,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        context: str | None = None,
        limit: int | None = None,
        continue_token: str | None = None,
        plural: str | None = None,
    ) -> Page: ...

    @abstractmethod
    async def get_resource(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
        plural: str | None = None,
    ) -> ResourceInstance: ...

    @abstractmethod
    async def list_events(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        context: str | None = None,
    ) -> list[ResourceInstance]: ...

    @abstractmethod
    async def list_all_managed_resources(
        self,
        context: str | None = None,
        force_refresh: bool = False,
        limit: int | None = None,
    ) -> AggregateResult: ...

    async def close(self) -> None:
        """Release network resources. Safe to call more than once."""
        return None
