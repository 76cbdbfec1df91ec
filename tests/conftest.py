"""Shared fixtures: a kubeconfig on disk and an in-memory Kubernetes API."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from helpers import KUBECONFIG, FakeApiClient

from crossview.kube.credentials import ContextResolver
from crossview.models.config import CrossviewConfig
from crossview.models.resources import CredentialSet
from crossview.repository.cluster import ClusterRepository


@pytest.fixture
def kubeconfig_file(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.write_text(yaml.safe_dump(KUBECONFIG), encoding="utf-8")
    return path


@pytest.fixture
def resolver(kubeconfig_file: Path, tmp_path: Path) -> ContextResolver:
    return ContextResolver(
        kubeconfig_path=str(kubeconfig_file),
        service_account_dir=str(tmp_path / "no-service-account"),
        environ={},
    )


@pytest.fixture
def fake_api() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture
def config() -> CrossviewConfig:
    return CrossviewConfig()


@pytest.fixture
def repository(config: CrossviewConfig, resolver: ContextResolver, fake_api: FakeApiClient) -> ClusterRepository:
    async def _factory(credentials: CredentialSet, context: str) -> FakeApiClient:
        return fake_api

    return ClusterRepository(config, resolver=resolver, client_factory=_factory)
