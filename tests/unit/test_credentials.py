"""Tests for crossview.kube.credentials: context resolution and client pooling."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import yaml
from helpers import KUBECONFIG, FakeApiClient

from crossview.errors import CredentialsNotFound, CrossviewError, UnknownContext, UpstreamAPIError
from crossview.kube.credentials import ClientPool, ContextResolver
from crossview.models.resources import CredentialSet, CredentialSource


def _write(path: Path, document: dict[str, Any]) -> Path:
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


def _in_cluster_dir(tmp_path: Path, namespace: str | None = "crossplane-system") -> Path:
    sa_dir = tmp_path / "sa"
    sa_dir.mkdir()
    (sa_dir / "token").write_text("sa-token", encoding="utf-8")
    (sa_dir / "ca.crt").write_text("---cert---", encoding="utf-8")
    if namespace is not None:
        (sa_dir / "namespace").write_text(namespace, encoding="utf-8")
    return sa_dir


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadCredentials:
    def test_explicit_kubeconfig(self, resolver: ContextResolver, kubeconfig_file: Path) -> None:
        creds = resolver.load_credentials()
        assert creds.source is CredentialSource.KUBECONFIG
        assert creds.path == str(kubeconfig_file)
        assert [c.name for c in creds.contexts] == ["alpha", "beta"]
        assert creds.current_context == "alpha"

    def test_namespace_defaults_to_default(self, resolver: ContextResolver) -> None:
        by_name = {c.name: c for c in resolver.list_contexts()}
        assert by_name["alpha"].namespace == "team-a"
        assert by_name["beta"].namespace == "default"

    def test_kubeconfig_env_first_entry_wins(self, tmp_path: Path) -> None:
        first = _write(tmp_path / "first", KUBECONFIG)
        second = tmp_path / "second"
        resolver = ContextResolver(
            service_account_dir=str(tmp_path / "none"),
            environ={"KUBECONFIG": f"{first}:{second}", "KUBE_CONFIG_PATH": str(second)},
        )
        assert resolver.candidate_paths()[:2] == [str(first), str(second)]
        assert resolver.load_credentials().path == str(first)

    def test_kube_config_path_used_when_kubeconfig_missing(self, tmp_path: Path) -> None:
        fallback = _write(tmp_path / "fallback", KUBECONFIG)
        resolver = ContextResolver(
            service_account_dir=str(tmp_path / "none"),
            environ={"KUBECONFIG": str(tmp_path / "missing"), "KUBE_CONFIG_PATH": str(fallback)},
        )
        assert resolver.load_credentials().path == str(fallback)

    def test_in_cluster_takes_priority(self, tmp_path: Path, kubeconfig_file: Path) -> None:
        sa_dir = _in_cluster_dir(tmp_path)
        resolver = ContextResolver(
            service_account_dir=str(sa_dir),
            environ={"KUBECONFIG": str(kubeconfig_file)},
        )
        creds = resolver.load_credentials()
        assert creds.source is CredentialSource.IN_CLUSTER
        assert [c.name for c in creds.contexts] == ["in-cluster"]
        assert creds.contexts[0].namespace == "crossplane-system"
        assert resolver.get_current_context() == "in-cluster"

    def test_in_cluster_without_namespace_file(self, tmp_path: Path) -> None:
        sa_dir = _in_cluster_dir(tmp_path, namespace=None)
        resolver = ContextResolver(service_account_dir=str(sa_dir), environ={})
        assert resolver.list_contexts()[0].namespace == "default"

    def test_nothing_found(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        resolver = ContextResolver(
            service_account_dir=str(tmp_path / "none"),
            environ={"KUBECONFIG": str(tmp_path / "missing")},
        )
        with pytest.raises(CredentialsNotFound) as exc_info:
            resolver.load_credentials()
        assert str(tmp_path / "missing") in exc_info.value.searched
        assert exc_info.value.env_vars == ["KUBECONFIG", "KUBE_CONFIG_PATH"]
        assert "KUBECONFIG" in str(exc_info.value)

    def test_malformed_kubeconfig(self, tmp_path: Path) -> None:
        path = tmp_path / "broken"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        resolver = ContextResolver(kubeconfig_path=str(path), service_account_dir=str(tmp_path / "none"))
        with pytest.raises(CrossviewError, match="not a mapping"):
            resolver.load_credentials()


# ---------------------------------------------------------------------------
# Context selection
# ---------------------------------------------------------------------------


class TestContextSelection:
    def test_current_defaults_to_kubeconfig(self, resolver: ContextResolver) -> None:
        assert resolver.get_current_context() == "alpha"

    def test_set_current_context(self, resolver: ContextResolver) -> None:
        resolver.set_current_context("beta")
        assert resolver.get_current_context() == "beta"
        assert resolver.resolve_context() == "beta"

    def test_set_does_not_rewrite_file(self, resolver: ContextResolver, kubeconfig_file: Path) -> None:
        resolver.set_current_context("beta")
        on_disk = yaml.safe_load(kubeconfig_file.read_text(encoding="utf-8"))
        assert on_disk["current-context"] == "alpha"

    def test_set_unknown_context(self, resolver: ContextResolver) -> None:
        with pytest.raises(UnknownContext):
            resolver.set_current_context("gamma")
        assert resolver.get_current_context() == "alpha"

    def test_resolve_explicit(self, resolver: ContextResolver) -> None:
        assert resolver.resolve_context("beta") == "beta"

    def test_resolve_unknown(self, resolver: ContextResolver) -> None:
        with pytest.raises(UnknownContext):
            resolver.resolve_context("gamma")

    def test_resolve_without_current(self, tmp_path: Path) -> None:
        document = copy.deepcopy(KUBECONFIG)
        document["current-context"] = ""
        path = _write(tmp_path / "config", document)
        resolver = ContextResolver(kubeconfig_path=str(path), service_account_dir=str(tmp_path / "none"))
        with pytest.raises(UnknownContext):
            resolver.resolve_context()


# ---------------------------------------------------------------------------
# Kubeconfig edits
# ---------------------------------------------------------------------------


class TestKubeconfigEdits:
    def test_add_merges_without_overwrite(self, resolver: ContextResolver, kubeconfig_file: Path) -> None:
        incoming = {
            "contexts": [
                {"name": "alpha", "context": {"cluster": "evil", "user": "evil"}},
                {"name": "gamma", "context": {"cluster": "cluster-c", "user": "user-c"}},
            ],
            "clusters": [
                {"name": "cluster-a", "cluster": {"server": "https://evil.example"}},
                {"name": "cluster-c", "cluster": {"server": "https://c.example:6443"}},
            ],
            "users": [{"name": "user-c", "user": {"token": "token-c"}}],
        }
        added = resolver.add_kubeconfig(yaml.safe_dump(incoming))

        assert added == ["gamma"]
        assert [c.name for c in resolver.list_contexts()] == ["alpha", "beta", "gamma"]
        on_disk = yaml.safe_load(kubeconfig_file.read_text(encoding="utf-8"))
        servers = {c["name"]: c["cluster"]["server"] for c in on_disk["clusters"]}
        assert servers["cluster-a"] == "https://a.example:6443"
        assert servers["cluster-c"] == "https://c.example:6443"

    def test_add_rejects_invalid_yaml(self, resolver: ContextResolver) -> None:
        with pytest.raises(CrossviewError, match="parse kubeconfig"):
            resolver.add_kubeconfig("contexts: [unterminated")

    def test_remove_cleans_orphans(self, resolver: ContextResolver, kubeconfig_file: Path) -> None:
        resolver.remove_context("beta")
        on_disk = yaml.safe_load(kubeconfig_file.read_text(encoding="utf-8"))
        assert [c["name"] for c in on_disk["contexts"]] == ["alpha"]
        assert [c["name"] for c in on_disk["clusters"]] == ["cluster-a"]
        assert [u["name"] for u in on_disk["users"]] == ["user-a"]

    def test_remove_keeps_shared_entries(self, tmp_path: Path) -> None:
        document = copy.deepcopy(KUBECONFIG)
        document["contexts"].append({"name": "alpha-admin", "context": {"cluster": "cluster-a", "user": "user-a"}})
        path = _write(tmp_path / "config", document)
        resolver = ContextResolver(kubeconfig_path=str(path), service_account_dir=str(tmp_path / "none"))

        resolver.remove_context("alpha-admin")
        on_disk = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert "cluster-a" in [c["name"] for c in on_disk["clusters"]]
        assert "user-a" in [u["name"] for u in on_disk["users"]]

    def test_remove_current_moves_pointer(self, resolver: ContextResolver, kubeconfig_file: Path) -> None:
        resolver.remove_context("alpha")
        on_disk = yaml.safe_load(kubeconfig_file.read_text(encoding="utf-8"))
        assert on_disk["current-context"] == "beta"
        assert resolver.get_current_context() == "beta"

    def test_remove_unknown(self, resolver: ContextResolver) -> None:
        with pytest.raises(UnknownContext):
            resolver.remove_context("gamma")

    def test_edits_refused_in_cluster(self, tmp_path: Path) -> None:
        resolver = ContextResolver(service_account_dir=str(_in_cluster_dir(tmp_path)), environ={})
        with pytest.raises(CrossviewError, match="in-cluster"):
            resolver.add_kubeconfig("contexts: []")
        with pytest.raises(CrossviewError, match="in-cluster"):
            resolver.remove_context("in-cluster")


# ---------------------------------------------------------------------------
# ClientPool
# ---------------------------------------------------------------------------


class _CountingFactory:
    def __init__(self, fail: bool = False) -> None:
        self.built: list[FakeApiClient] = []
        self.contexts: list[str] = []
        self.fail = fail

    async def __call__(self, credentials: CredentialSet, context: str) -> FakeApiClient:
        self.contexts.append(context)
        if self.fail:
            raise RuntimeError("connection refused")
        handle = FakeApiClient()
        self.built.append(handle)
        return handle


class TestClientPool:
    @pytest.mark.asyncio
    async def test_reuses_handle(self, resolver: ContextResolver) -> None:
        factory = _CountingFactory()
        pool = ClientPool(resolver, client_factory=factory)
        first = await pool.client_for()
        second = await pool.client_for("alpha")
        assert first is second
        assert factory.contexts == ["alpha"]

    @pytest.mark.asyncio
    async def test_one_handle_per_context(self, resolver: ContextResolver) -> None:
        factory = _CountingFactory()
        pool = ClientPool(resolver, client_factory=factory)
        alpha = await pool.client_for("alpha")
        beta = await pool.client_for("beta")
        assert alpha is not beta
        assert factory.contexts == ["alpha", "beta"]

    @pytest.mark.asyncio
    async def test_rebuilds_on_changed_material(self, resolver: ContextResolver, kubeconfig_file: Path) -> None:
        factory = _CountingFactory()
        pool = ClientPool(resolver, client_factory=factory)
        alpha = await pool.client_for("alpha")
        beta = await pool.client_for("beta")

        document = copy.deepcopy(KUBECONFIG)
        document["users"][0]["user"]["token"] = "rotated"
        _write(kubeconfig_file, document)
        resolver.reload()

        rebuilt = await pool.client_for("alpha")
        assert rebuilt is not alpha
        assert alpha.closed is True
        assert await pool.client_for("beta") is beta
        assert beta.closed is False

    @pytest.mark.asyncio
    async def test_failed_context_is_remembered(self, resolver: ContextResolver) -> None:
        factory = _CountingFactory(fail=True)
        pool = ClientPool(resolver, client_factory=factory)

        with pytest.raises(UpstreamAPIError):
            await pool.client_for("alpha")
        assert pool.is_failed("alpha")
        with pytest.raises(UpstreamAPIError, match="previous connection attempt failed"):
            await pool.client_for("alpha")
        assert factory.contexts == ["alpha"]

        factory.fail = False
        pool.clear_failed_context("alpha")
        assert await pool.client_for("alpha") is factory.built[0]

    @pytest.mark.asyncio
    async def test_close_releases_all(self, resolver: ContextResolver) -> None:
        factory = _CountingFactory()
        pool = ClientPool(resolver, client_factory=factory)
        await pool.client_for("alpha")
        await pool.client_for("beta")
        await pool.close()
        assert all(handle.closed for handle in factory.built)

    @pytest.mark.asyncio
    async def test_invalidate_forces_rebuild(self, resolver: ContextResolver) -> None:
        factory = _CountingFactory()
        pool = ClientPool(resolver, client_factory=factory)
        first = await pool.client_for("alpha")
        await pool.invalidate("alpha")
        second = await pool.client_for("alpha")
        assert first.closed is True
        assert second is not first
