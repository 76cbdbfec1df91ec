"""Tests for crossview.repository.cluster: cache lifecycle across context edits."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from helpers import KUBECONFIG, FakeApiClient

from crossview.repository.cluster import ClusterRepository


def _single_context(name: str, cluster: str, user: str, server: str) -> str:
    return yaml.safe_dump(
        {
            "contexts": [{"name": name, "context": {"cluster": cluster, "user": user}}],
            "clusters": [{"name": cluster, "cluster": {"server": server}}],
            "users": [{"name": user, "user": {"token": f"token-{name}"}}],
        }
    )


GAMMA = _single_context("gamma", "cluster-g", "user-g", "https://g.example:6443")
BETA = _single_context("beta", "cluster-b", "user-b", "https://b.example:6443")


class TestContextCaches:
    @pytest.mark.asyncio
    async def test_switching_context_keeps_caches(self, repository: ClusterRepository, fake_api: FakeApiClient) -> None:
        await repository.list_all_managed_resources("alpha")
        await repository.set_current_context("beta")
        await repository.set_current_context("alpha")

        result = await repository.list_all_managed_resources("alpha")
        assert result.from_cache is True

    @pytest.mark.asyncio
    async def test_removing_context_drops_caches(self, repository: ClusterRepository, fake_api: FakeApiClient) -> None:
        await repository.list_all_managed_resources("beta")
        await repository.remove_context("beta")
        assert "beta" not in [c.name for c in await repository.list_contexts()]

        assert await repository.add_kubeconfig(BETA) == ["beta"]
        result = await repository.list_all_managed_resources("beta")
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_readding_context_drops_stale_caches(
        self, repository: ClusterRepository, fake_api: FakeApiClient, kubeconfig_file: Path
    ) -> None:
        assert await repository.add_kubeconfig(GAMMA) == ["gamma"]
        await repository.list_all_managed_resources("gamma")
        assert (await repository.list_all_managed_resources("gamma")).from_cache is True

        # gamma disappears from the file behind the repository's back
        kubeconfig_file.write_text(yaml.safe_dump(KUBECONFIG), encoding="utf-8")
        repository.resolver.reload()

        assert await repository.add_kubeconfig(GAMMA) == ["gamma"]
        result = await repository.list_all_managed_resources("gamma")
        assert result.from_cache is False
