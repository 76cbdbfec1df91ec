"""Tests for crossview.crossplane: dashboard views and search."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from helpers import obj

from crossview.crossplane.search import (
    SearchFilters,
    failed_resources,
    filter_resources,
    parse_timestamp,
    ready_resources,
    recent_resources,
)
from crossview.crossplane.views import CrossplaneViews
from crossview.errors import UpstreamAPIError
from crossview.models.resources import AggregateResult, Page

XRD_V2 = "apiextensions.crossplane.io/v2"
APIEXT_V1 = "apiextensions.crossplane.io/v1"
PKG_V1 = "pkg.crossplane.io/v1"


def _cond(kind: str, status: str) -> dict[str, str]:
    return {"type": kind, "status": status}


def _xrd(group: str, kind: str, plural: str, claim_kind: str | None = None) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "group": group,
        "names": {"kind": kind, "plural": plural},
        "versions": [{"name": "v1alpha1"}],
    }
    if claim_kind:
        spec["claimNames"] = {"kind": claim_kind, "plural": claim_kind.lower() + "s"}
    return obj(f"{plural}.{group}", spec=spec)


def _repo(objects: dict[tuple[str, str], list[dict[str, Any]]], page_size: int | None = None) -> MagicMock:
    """Repository mock serving *objects* keyed by ``(apiVersion, kind)``."""

    async def _list_resources(
        api_version: str,
        kind: str,
        namespace: str | None = None,
        context: str | None = None,
        limit: int | None = None,
        continue_token: str | None = None,
        plural: str | None = None,
    ) -> Page:
        value = objects.get((api_version, kind), [])
        if isinstance(value, BaseException):
            raise value
        items = [i for i in value if namespace is None or (i.get("metadata") or {}).get("namespace") == namespace]
        start = int(continue_token or 0)
        end = len(items) if not limit else min(len(items), start + limit)
        return Page(items=items[start:end], continue_token=str(end) if end < len(items) else None)

    repo = MagicMock()
    repo.list_resources = AsyncMock(side_effect=_list_resources)
    repo.list_namespaces = AsyncMock(return_value=[{"name": "default"}, {"name": "team-a"}])
    repo.is_connected = AsyncMock(return_value=True)
    repo.list_all_managed_resources = AsyncMock(return_value=AggregateResult(items=[obj("b1")], from_cache=True))
    return repo


# ---------------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------------


class TestPackages:
    @pytest.mark.asyncio
    async def test_providers(self) -> None:
        provider = obj(
            "provider-aws",
            kind="Provider",
            spec={"package": "xpkg.upbound.io/upbound/provider-aws:v1.0.0"},
            status={"currentRevision": "provider-aws-abc", "conditions": [_cond("Installed", "True"), _cond("Healthy", "True")]},
        )
        views = CrossplaneViews(_repo({(PKG_V1, "Provider"): [provider]}))
        [projected] = await views.providers()
        assert projected["name"] == "provider-aws"
        assert projected["package"] == "xpkg.upbound.io/upbound/provider-aws:v1.0.0"
        assert projected["revision"] == "provider-aws-abc"
        assert projected["installed"] is True
        assert projected["healthy"] is True

    @pytest.mark.asyncio
    async def test_function_usage(self) -> None:
        objects = {
            (PKG_V1, "Function"): [
                obj("function-patch-and-transform", status={"conditions": [_cond("Installed", "True")]}),
                obj("function-unused"),
            ],
            (APIEXT_V1, "Composition"): [
                obj("xnet", spec={"pipeline": [{"step": "p", "functionRef": {"name": "function-patch-and-transform"}}]}),
                obj("xdb", spec={"functions": [{"functionRef": {"name": "function-patch-and-transform"}}]}),
                obj("legacy", spec={"resources": []}),
            ],
        }
        functions = {f["name"]: f for f in await CrossplaneViews(_repo(objects)).functions()}
        used = functions["function-patch-and-transform"]
        assert used["usedInCount"] == 2
        assert [c["name"] for c in used["usedInCompositions"]] == ["xnet", "xdb"]
        assert used["installed"] is True
        assert functions["function-unused"]["usedInCount"] == 0


# ---------------------------------------------------------------------------
# Definitions and instances
# ---------------------------------------------------------------------------


class TestDefinitions:
    @pytest.mark.asyncio
    async def test_xrds_fall_back_to_v1(self) -> None:
        objects = {(APIEXT_V1, "CompositeResourceDefinition"): [_xrd("net.example.org", "XNetwork", "xnetworks")]}
        [xrd] = await CrossplaneViews(_repo(objects)).composite_resource_definitions()
        assert xrd["group"] == "net.example.org"
        assert xrd["kind"] == "CompositeResourceDefinition"

    @pytest.mark.asyncio
    async def test_kinds_sorted_and_unique(self) -> None:
        objects = {
            (XRD_V2, "CompositeResourceDefinition"): [
                _xrd("b.example.org", "XNetwork", "xnetworks"),
                _xrd("a.example.org", "XDatabase", "xdatabases"),
                _xrd("c.example.org", "XNetwork", "xnetworks"),
            ]
        }
        assert await CrossplaneViews(_repo(objects)).composite_resource_kinds() == ["XDatabase", "XNetwork"]

    @pytest.mark.asyncio
    async def test_composite_resources(self) -> None:
        objects: dict[tuple[str, str], Any] = {
            (XRD_V2, "CompositeResourceDefinition"): [
                _xrd("net.example.org", "XNetwork", "xnetworks"),
                _xrd("db.example.org", "XDatabase", "xdatabases"),
            ],
            ("net.example.org/v1alpha1", "XNetwork"): [
                obj("net-1", spec={"crossplane": {"compositionRef": {"name": "xnet"}, "resourceRefs": [{"name": "vpc"}]}})
            ],
            ("db.example.org/v1alpha1", "XDatabase"): UpstreamAPIError("list XDatabase", "boom", status=500),
        }
        [xr] = await CrossplaneViews(_repo(objects)).composite_resources()
        assert xr["kind"] == "XNetwork"
        assert xr["apiVersion"] == "net.example.org/v1alpha1"
        assert xr["compositionRef"] == {"name": "xnet"}
        assert xr["resourceRefs"] == [{"name": "vpc"}]

    @pytest.mark.asyncio
    async def test_claims_are_paged(self) -> None:
        objects = {
            (XRD_V2, "CompositeResourceDefinition"): [
                _xrd("db.example.org", "XDatabase", "xdatabases", claim_kind="Database"),
                _xrd("net.example.org", "XNetwork", "xnetworks"),
            ],
            ("db.example.org/v1alpha1", "Database"): [obj(f"db-{i}", "team-a") for i in range(5)],
        }
        repo = _repo(objects)
        claims = await CrossplaneViews(repo, claims_page_size=2).claims()

        assert [c["name"] for c in claims] == [f"db-{i}" for i in range(5)]
        claim_calls = [c for c in repo.list_resources.await_args_list if c.args[1] == "Database"]
        assert len(claim_calls) == 3
        assert all(c.args[2] is None for c in claim_calls)
        assert all(c.args[4] == 2 for c in claim_calls)

    @pytest.mark.asyncio
    async def test_no_claim_types(self) -> None:
        objects = {(XRD_V2, "CompositeResourceDefinition"): [_xrd("net.example.org", "XNetwork", "xnetworks")]}
        assert await CrossplaneViews(_repo(objects)).claims() == []

    @pytest.mark.asyncio
    async def test_slow_type_is_skipped(self) -> None:
        objects = {
            (XRD_V2, "CompositeResourceDefinition"): [
                _xrd("net.example.org", "XNetwork", "xnetworks"),
                _xrd("slow.example.org", "XSlow", "xslows"),
            ],
            ("net.example.org/v1alpha1", "XNetwork"): [obj("net-1")],
        }
        repo = _repo(objects)
        fast = repo.list_resources.side_effect

        async def _maybe_slow(*args: Any, **kwargs: Any) -> Page:
            if args[1] == "XSlow":
                await asyncio.sleep(1.0)
            return await fast(*args, **kwargs)

        repo.list_resources.side_effect = _maybe_slow
        xrs = await CrossplaneViews(repo, type_timeout_s=0.05).composite_resources()
        assert [x["name"] for x in xrs] == ["net-1"]


class TestCrossplaneResources:
    @pytest.mark.asyncio
    async def test_failed_kind_is_skipped(self) -> None:
        objects: dict[tuple[str, str], Any] = {
            (PKG_V1, "Provider"): [obj("provider-aws")],
            (APIEXT_V1, "Composition"): UpstreamAPIError("list Composition", "forbidden", status=403),
            (PKG_V1, "Function"): [obj("function-go-templating")],
        }
        resources = await CrossplaneViews(_repo(objects)).crossplane_resources()
        assert [(r["kind"], r["metadata"]["name"]) for r in resources] == [
            ("Provider", "provider-aws"),
            ("Function", "function-go-templating"),
        ]
        assert resources[0]["apiVersion"] == PKG_V1

    @pytest.mark.asyncio
    async def test_dashboard(self) -> None:
        objects = {(PKG_V1, "Provider"): [obj(f"p{i}") for i in range(12)]}
        dashboard = await CrossplaneViews(_repo(objects)).dashboard()
        assert dashboard["isConnected"] is True
        assert dashboard["namespacesCount"] == 2
        assert dashboard["crossplaneResourcesCount"] == 12
        assert len(dashboard["crossplaneResources"]) == 10

    @pytest.mark.asyncio
    async def test_managed_delegates(self) -> None:
        repo = _repo({})
        result = await CrossplaneViews(repo).managed_resources("alpha", force_refresh=True, limit=5)
        repo.list_all_managed_resources.assert_awaited_once_with("alpha", True, 5)
        assert result.from_cache is True


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearch:
    @pytest.mark.asyncio
    async def test_tags_and_filters(self) -> None:
        objects = {
            (PKG_V1, "Provider"): [obj("provider-aws", metadata={"labels": {"team": "platform"}})],
            (APIEXT_V1, "Composition"): [obj("xnetwork-aws"), obj("xdatabase-gcp")],
        }
        views = CrossplaneViews(_repo(objects))

        results = await views.search(query="aws")
        assert sorted((r["resourceType"], r["name"]) for r in results) == [
            ("Composition", "xnetwork-aws"),
            ("Provider", "provider-aws"),
        ]

        by_label = await views.search(filters=SearchFilters(labels={"team": "platform"}))
        assert [r["name"] for r in by_label] == ["provider-aws"]

        by_type = await views.search(filters=SearchFilters(resource_types=["Composition"]))
        assert len(by_type) == 2

    @pytest.mark.asyncio
    async def test_unknown_quick_filter(self) -> None:
        with pytest.raises(ValueError, match="quick filter"):
            await CrossplaneViews(_repo({})).search(quick="broken")


class TestFilters:
    RESOURCES = [
        {"name": "ok", "kind": "Bucket", "conditions": [_cond("Ready", "True")], "creationTimestamp": "2025-06-01T00:00:00Z"},
        {"name": "bad", "kind": "Bucket", "conditions": [_cond("Synced", "False")], "creationTimestamp": "2025-05-01T00:00:00Z"},
        {"name": "sick", "kind": "Provider", "conditions": [_cond("Healthy", "False")]},
        {"name": "new", "kind": "Queue", "conditions": [], "creationTimestamp": "2025-06-01T12:00:00Z"},
    ]

    def test_status_filters(self) -> None:
        assert [r["name"] for r in filter_resources(self.RESOURCES, filters=SearchFilters(status="ready"))] == ["ok"]
        assert [r["name"] for r in filter_resources(self.RESOURCES, filters=SearchFilters(status="not-ready"))] == ["bad"]
        assert [r["name"] for r in filter_resources(self.RESOURCES, filters=SearchFilters(status="unknown"))] == [
            "sick",
            "new",
        ]

    def test_kind_filter_and_query(self) -> None:
        result = filter_resources(self.RESOURCES, query="O", filters=SearchFilters(kinds=["Bucket"]))
        assert [r["name"] for r in result] == ["ok"]

    def test_created_range(self) -> None:
        filters = SearchFilters(created_after=datetime(2025, 5, 15, tzinfo=UTC))
        assert [r["name"] for r in filter_resources(self.RESOURCES, filters=filters)] == ["ok", "new"]

    def test_quick_filters(self) -> None:
        assert [r["name"] for r in failed_resources(self.RESOURCES)] == ["bad", "sick"]
        assert [r["name"] for r in ready_resources(self.RESOURCES)] == ["ok"]
        now = datetime(2025, 6, 1, 18, tzinfo=UTC)
        assert [r["name"] for r in recent_resources(self.RESOURCES, hours=24, now=now)] == ["ok", "new"]

    def test_parse_timestamp(self) -> None:
        assert parse_timestamp("2025-06-01T00:00:00Z") == datetime(2025, 6, 1, tzinfo=UTC)
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
