"""Cluster context and credential resolution.

Two sources of connection material are supported, in priority order:

1. the in-cluster service identity (token and CA certificate mounted under
   ``/var/run/secrets/kubernetes.io/serviceaccount``), exposed as a single
   context named ``in-cluster``;
2. a kubeconfig file, located through ``$KUBECONFIG`` (first entry of a path
   list), then ``$KUBE_CONFIG_PATH``, then ``~/.kube/config``.

:class:`ContextResolver` owns the parsed credentials and the current-context
pointer. :class:`ClientPool` owns one ``kubernetes_asyncio`` ``ApiClient`` per
context. Each handle is fingerprinted with the context, cluster and user
entries it was built from; when those entries change the handle for that
context alone is closed and rebuilt.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

import yaml
from kubernetes_asyncio import client, config

from crossview.errors import CredentialsNotFound, CrossviewError, UnknownContext, UpstreamAPIError
from crossview.models.resources import (
    IN_CLUSTER_CONTEXT,
    ClusterContext,
    CredentialSet,
    CredentialSource,
)
from crossview.observability.logging import get_logger
from crossview.observability.metrics import client_builds_total

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SERVICE_ACCOUNT_DIR: str = "/var/run/secrets/kubernetes.io/serviceaccount"
KUBECONFIG_ENV_VARS: tuple[str, ...] = ("KUBECONFIG", "KUBE_CONFIG_PATH")
_DEFAULT_KUBECONFIG: str = "~/.kube/config"
_DEFAULT_NAMESPACE: str = "default"

ClientFactory = Callable[[CredentialSet, str], Awaitable[Any]]


class ContextResolver:
    """Loads credentials and tracks which context is current.

    The current-context pointer starts at the kubeconfig's
    ``current-context`` (or ``in-cluster``) and is changed only through
    :meth:`set_current_context`; the kubeconfig file is not rewritten when
    the pointer moves.
    """

    def __init__(
        self,
        kubeconfig_path: str | None = None,
        service_account_dir: str = SERVICE_ACCOUNT_DIR,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._explicit_path = kubeconfig_path
        self._sa_dir = Path(service_account_dir)
        self._environ = environ if environ is not None else os.environ
        self._credentials: CredentialSet | None = None
        self._current: str | None = None
        self._log = get_logger("kube.credentials")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def is_in_cluster(self) -> bool:
        return (self._sa_dir / "token").is_file() and (self._sa_dir / "ca.crt").is_file()

    def candidate_paths(self) -> list[str]:
        """Kubeconfig locations in the order they are searched."""
        if self._explicit_path:
            return [self._explicit_path]
        paths: list[str] = []
        kubeconfig = self._environ.get("KUBECONFIG", "")
        if kubeconfig:
            first = kubeconfig.split(os.pathsep)[0]
            if first:
                paths.append(first)
        kube_config_path = self._environ.get("KUBE_CONFIG_PATH", "")
        if kube_config_path:
            paths.append(kube_config_path)
        paths.append(os.path.expanduser(_DEFAULT_KUBECONFIG))
        return paths

    def load_credentials(self) -> CredentialSet:
        """Return the cached credential set, loading it on first use."""
        if self._credentials is None:
            self._credentials = self._load()
            if self._current is None or self._credentials.context(self._current) is None:
                self._current = self._credentials.current_context
        return self._credentials

    def reload(self) -> CredentialSet:
        """Discard cached credentials and read them again."""
        self._credentials = None
        return self.load_credentials()

    def _load(self) -> CredentialSet:
        if self.is_in_cluster():
            self._log.info("credentials_loaded", source="in-cluster")
            return CredentialSet(
                source=CredentialSource.IN_CLUSTER,
                path=str(self._sa_dir),
                contexts=(ClusterContext(name=IN_CLUSTER_CONTEXT, namespace=self._in_cluster_namespace()),),
                current_context=IN_CLUSTER_CONTEXT,
            )

        searched = [str(self._sa_dir)]
        for path in self.candidate_paths():
            searched.append(path)
            if os.path.isfile(path):
                document = _read_kubeconfig(path)
                contexts = _parse_contexts(document)
                current = document.get("current-context") or None
                self._log.info("credentials_loaded", source="kubeconfig", path=path, contexts=len(contexts))
                return CredentialSet(
                    source=CredentialSource.KUBECONFIG,
                    path=path,
                    contexts=contexts,
                    current_context=current,
                    document=document,
                )
        raise CredentialsNotFound(searched, KUBECONFIG_ENV_VARS)

    def _in_cluster_namespace(self) -> str:
        ns_file = self._sa_dir / "namespace"
        if ns_file.is_file():
            value = ns_file.read_text(encoding="utf-8").strip()
            if value:
                return value
        return _DEFAULT_NAMESPACE

    # ------------------------------------------------------------------
    # Context selection
    # ------------------------------------------------------------------

    def list_contexts(self) -> list[ClusterContext]:
        return list(self.load_credentials().contexts)

    def get_current_context(self) -> str | None:
        self.load_credentials()
        return self._current

    def set_current_context(self, name: str) -> None:
        """Select *name*; credentials are re-read so edited files take effect."""
        credentials = self.reload()
        if credentials.context(name) is None:
            raise UnknownContext(f"context {name!r} not found")
        self._current = name
        self._log.info("context_selected", context=name)

    def resolve_context(self, name: str | None = None) -> str:
        """Return the context to use for a call.

        An explicit *name* must exist. Otherwise the current pointer is
        used, then the in-cluster identity or the kubeconfig's
        ``current-context``.
        """
        credentials = self.load_credentials()
        if name:
            if credentials.context(name) is None:
                raise UnknownContext(f"context {name!r} not found")
            return name
        if self._current and credentials.context(self._current) is not None:
            return self._current
        fallback = credentials.current_context
        if fallback and credentials.context(fallback) is not None:
            return fallback
        raise UnknownContext("no context selected and the kubeconfig has no current-context")

    # ------------------------------------------------------------------
    # Kubeconfig edits
    # ------------------------------------------------------------------

    def add_kubeconfig(self, kubeconfig_yaml: str) -> list[str]:
        """Merge contexts, clusters and users from *kubeconfig_yaml*.

        Existing entries are never overwritten. Returns the names of the
        contexts that were added.
        """
        credentials = self._writable_credentials("add contexts")
        try:
            incoming = yaml.safe_load(kubeconfig_yaml) or {}
        except yaml.YAMLError as err:
            raise CrossviewError(f"failed to parse kubeconfig: {err}") from err
        if not isinstance(incoming, dict):
            raise CrossviewError("failed to parse kubeconfig: document is not a mapping")

        document = dict(credentials.document)
        added: list[str] = []
        for section in ("contexts", "clusters", "users"):
            existing = list(document.get(section) or [])
            names = {entry.get("name") for entry in existing if isinstance(entry, dict)}
            for entry in incoming.get(section) or []:
                if not isinstance(entry, dict) or not entry.get("name") or entry["name"] in names:
                    continue
                existing.append(entry)
                names.add(entry["name"])
                if section == "contexts":
                    added.append(entry["name"])
            document[section] = existing
        document.setdefault("apiVersion", "v1")
        document.setdefault("kind", "Config")

        _write_kubeconfig(credentials.path, document)
        self.reload()
        self._log.info("kubeconfig_merged", path=credentials.path, added=added)
        return added

    def remove_context(self, name: str) -> None:
        """Delete *name* and any cluster or user no other context references."""
        credentials = self._writable_credentials("remove contexts")
        removed = credentials.context(name)
        if removed is None:
            raise UnknownContext(f"context {name!r} not found")

        document = dict(credentials.document)
        contexts = [c for c in document.get("contexts") or [] if c.get("name") != name]
        document["contexts"] = contexts

        remaining = _parse_contexts(document)
        if removed.cluster and all(c.cluster != removed.cluster for c in remaining):
            document["clusters"] = [c for c in document.get("clusters") or [] if c.get("name") != removed.cluster]
        if removed.user and all(c.user != removed.user for c in remaining):
            document["users"] = [u for u in document.get("users") or [] if u.get("name") != removed.user]

        if document.get("current-context") == name:
            document["current-context"] = remaining[0].name if remaining else ""
        if self._current == name:
            self._current = None

        _write_kubeconfig(credentials.path, document)
        self.reload()
        self._log.info("context_removed", context=name, path=credentials.path)

    def _writable_credentials(self, action: str) -> CredentialSet:
        credentials = self.load_credentials()
        if credentials.source is CredentialSource.IN_CLUSTER:
            raise CrossviewError(f"cannot {action} in in-cluster mode")
        return credentials

    # ------------------------------------------------------------------
    # Fingerprints
    # ------------------------------------------------------------------

    def fingerprint(self, name: str) -> str:
        """Digest of the kubeconfig entries a client for *name* is built from."""
        credentials = self.load_credentials()
        if credentials.source is CredentialSource.IN_CLUSTER:
            material: dict[str, Any] = {"source": "in-cluster", "path": credentials.path}
        else:
            ctx_entry = _find_entry(credentials.document, "contexts", name)
            ctx_body = (ctx_entry or {}).get("context") or {}
            material = {
                "context": ctx_entry,
                "cluster": _find_entry(credentials.document, "clusters", ctx_body.get("cluster", "")),
                "user": _find_entry(credentials.document, "users", ctx_body.get("user", "")),
            }
        encoded = json.dumps(material, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()


class ClientPool:
    """Per-context ``ApiClient`` handles, built lazily.

    A context whose client failed to build is remembered and not retried
    until :meth:`clear_failed_context` is called or its fingerprint changes.
    """

    def __init__(self, resolver: ContextResolver, client_factory: ClientFactory | None = None) -> None:
        self._resolver = resolver
        self._factory = client_factory or build_api_client
        self._handles: dict[str, tuple[str, Any]] = {}
        self._failed: dict[str, str] = {}
        self._log = get_logger("kube.client_pool")

    @property
    def resolver(self) -> ContextResolver:
        return self._resolver

    async def client_for(self, context: str | None = None) -> Any:
        """Return the API client for *context* (or the resolved default)."""
        name = self._resolver.resolve_context(context)
        fingerprint = self._resolver.fingerprint(name)

        cached = self._handles.get(name)
        if cached is not None:
            if cached[0] == fingerprint:
                return cached[1]
            self._log.info("client_material_changed", context=name)
            await self._close_handle(name)

        if self._failed.get(name) == fingerprint:
            raise UpstreamAPIError(f"connect to context {name!r}", "previous connection attempt failed")
        self._failed.pop(name, None)

        try:
            api_client = await self._factory(self._resolver.load_credentials(), name)
        except Exception as exc:
            self._failed[name] = fingerprint
            client_builds_total.labels(outcome="error").inc()
            self._log.error("client_build_failed", context=name, error=str(exc))
            raise UpstreamAPIError(f"connect to context {name!r}", exc) from exc

        existing = self._handles.get(name)
        if existing is not None and existing[0] == fingerprint:
            # Another task finished building first.
            await api_client.close()
            return existing[1]

        self._handles[name] = (fingerprint, api_client)
        client_builds_total.labels(outcome="success").inc()
        self._log.debug("client_built", context=name)
        return api_client

    def clear_failed_context(self, name: str) -> None:
        self._failed.pop(name, None)

    def is_failed(self, name: str) -> bool:
        return name in self._failed

    async def invalidate(self, name: str) -> None:
        await self._close_handle(name)
        self._failed.pop(name, None)

    async def close(self) -> None:
        for name in list(self._handles):
            await self._close_handle(name)

    async def _close_handle(self, name: str) -> None:
        entry = self._handles.pop(name, None)
        if entry is None:
            return
        try:
            await entry[1].close()
        except Exception as exc:
            self._log.warning("client_close_failed", context=name, error=str(exc))


async def build_api_client(credentials: CredentialSet, context: str) -> client.ApiClient:
    """Construct a ``kubernetes_asyncio`` client for one context."""
    if credentials.source is CredentialSource.IN_CLUSTER:
        configuration = client.Configuration()
        config.load_incluster_config(client_configuration=configuration)
        return client.ApiClient(configuration=configuration)
    return await config.new_client_from_config(
        config_file=credentials.path,
        context=context,
        persist_config=False,
    )


# ---------------------------------------------------------------------------
# Kubeconfig helpers
# ---------------------------------------------------------------------------


def _read_kubeconfig(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as fh:
            document = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as err:
        raise CrossviewError(f"failed to read kubeconfig {path}: {err}") from err
    if not isinstance(document, dict):
        raise CrossviewError(f"failed to read kubeconfig {path}: document is not a mapping")
    return document


def _write_kubeconfig(path: str, document: dict[str, Any]) -> None:
    try:
        with open(path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(document, fh, default_flow_style=False, sort_keys=False)
    except OSError as err:
        raise CrossviewError(f"failed to write kubeconfig: {err}") from err


def _parse_contexts(document: dict[str, Any]) -> tuple[ClusterContext, ...]:
    contexts: list[ClusterContext] = []
    for entry in document.get("contexts") or []:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        body = entry.get("context") or {}
        contexts.append(
            ClusterContext(
                name=str(entry["name"]),
                cluster=str(body.get("cluster", "")),
                user=str(body.get("user", "")),
                namespace=str(body.get("namespace") or _DEFAULT_NAMESPACE),
            )
        )
    return tuple(contexts)


def _find_entry(document: dict[str, Any], section: str, name: str) -> dict[str, Any] | None:
    for entry in document.get(section) or []:
        if isinstance(entry, dict) and entry.get("name") == name:
            return entry
    return None
