"""Tests for EAS build lookups and grouping."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from prdeck.errors import FetchError
from prdeck.models import Build
from prdeck.services.eas import (
    AppIdCache,
    EasService,
    group_by_profile,
    map_build,
    normalize_slug,
)


def _make_build(
    id: str,
    platform: str = "IOS",
    profile: str | None = "production",
    hour: int = 10,
) -> Build:
    return Build(
        id=id,
        status="FINISHED",
        platform=platform,
        profile=profile,
        created_at=datetime(2026, 1, 1, hour, tzinfo=UTC),
    )


def _raw_build(id: str, platform: str = "ANDROID", profile: str | None = "preview") -> dict:
    return {
        "id": id,
        "status": "FINISHED",
        "platform": platform,
        "buildProfile": profile,
        "channel": "main",
        "distribution": "INTERNAL",
        "gitCommitHash": "deadbeef",
        "appVersion": "1.2.0",
        "appBuildVersion": "42",
        "createdAt": "2026-01-01T10:00:00.000Z",
        "completedAt": None,
        "artifacts": {"buildUrl": f"https://expo.dev/artifacts/{id}.apk"},
        "error": None,
        "initiatingActor": {"__typename": "User", "id": "u1", "displayName": "alice"},
    }


class _FakeEas:
    """GraphQL handler that records which operations were called."""

    def __init__(self, builds: list[dict] | None = None) -> None:
        self.builds = builds or []
        self.operations: list[str] = []
        self.variables: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        query = payload["query"]
        self.variables.append(payload["variables"])
        if "AppByFullName" in query:
            self.operations.append("resolve")
            full_name = payload["variables"]["fullName"]
            account, project = full_name.lstrip("@").split("/")
            return httpx.Response(
                200,
                json={
                    "data": {
                        "app": {
                            "byFullName": {
                                "id": f"id-{project}",
                                "slug": project,
                                "ownerAccount": {"name": account},
                            }
                        }
                    }
                },
            )
        self.operations.append("builds")
        return httpx.Response(200, json={"data": {"app": {"byId": {"builds": self.builds}}}})


def _service(handler, cache: AppIdCache | None = None) -> EasService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EasService(client, cache=cache)


# -- Grouping --


class TestGroupByProfile:
    def test_keeps_latest_build_per_platform(self):
        builds = [
            _make_build("old-ios", "IOS", hour=8),
            _make_build("new-ios", "IOS", hour=12),
            _make_build("android", "ANDROID", hour=9),
            _make_build("mid-ios", "IOS", hour=10),
        ]
        [group] = group_by_profile(builds)
        assert group.profile == "production"
        assert [b.id for b in group.builds] == ["new-ios", "android"]

    def test_at_most_one_build_per_platform(self):
        builds = [
            _make_build(f"b{i}", "IOS" if i % 2 else "ANDROID", profile=f"p{i % 3}", hour=i)
            for i in range(20)
        ]
        for group in group_by_profile(builds):
            platforms = [b.platform for b in group.builds]
            assert len(platforms) == len(set(platforms))
            for build in group.builds:
                same = [
                    b for b in builds
                    if b.profile_name == group.profile and b.platform == build.platform
                ]
                assert build.created_at == max(b.created_at for b in same)

    def test_null_profile_groups_as_local(self):
        [group] = group_by_profile([_make_build("x", profile=None)])
        assert group.profile == "local"

    def test_groups_sorted_by_profile(self):
        builds = [
            _make_build("a", profile="production"),
            _make_build("b", profile="development"),
            _make_build("c", profile=None),
            _make_build("d", profile="preview"),
        ]
        profiles = [g.profile for g in group_by_profile(builds)]
        assert profiles == ["development", "local", "preview", "production"]

    def test_empty(self):
        assert group_by_profile([]) == []

    def test_unknown_platform_dropped(self):
        builds = [_make_build("web", platform="WEB"), _make_build("ios", platform="IOS")]
        [group] = group_by_profile(builds)
        assert [b.id for b in group.builds] == ["ios"]


# -- Mapping --


def test_normalize_slug():
    assert normalize_slug("acme/app") == "@acme/app"
    assert normalize_slug(" @acme/app ") == "@acme/app"


def test_map_build():
    build = map_build(_raw_build("b1"))
    assert build.platform == "ANDROID"
    assert build.profile == "preview"
    assert build.artifact_url == "https://expo.dev/artifacts/b1.apk"
    assert build.error_message is None
    assert build.initiated_by == "alice"
    assert build.completed_at is None
    assert build.created_at == datetime(2026, 1, 1, 10, tzinfo=UTC)


def test_map_build_error_and_no_artifacts():
    raw = _raw_build("b2")
    raw["artifacts"] = None
    raw["error"] = {"message": "Gradle failed"}
    raw["status"] = "ERRORED"
    build = map_build(raw)
    assert build.artifact_url is None
    assert build.error_message == "Gradle failed"


# -- App id cache --


def test_app_id_cache_keyed_by_exact_slug():
    from prdeck.models import EasApp

    cache = AppIdCache()
    app = EasApp(app_id="1", account_name="acme", project_name="app")
    cache.put("acme/app", app)
    assert cache.get("acme/app") is app
    assert cache.get("@acme/app") is None
    cache.put("acme/other", EasApp(app_id="2", account_name="acme", project_name="other"))
    assert cache.get("acme/app") is None


# -- Service --


class TestEasService:
    @pytest.mark.asyncio
    async def test_fetch_builds_groups_results(self):
        fake = _FakeEas(
            [_raw_build("a1", "ANDROID"), _raw_build("i1", "IOS"), _raw_build("p1", profile="production")]
        )
        groups = await _service(fake).fetch_builds("acme/app", "tok")
        assert [g.profile for g in groups] == ["preview", "production"]
        assert fake.operations == ["resolve", "builds"]
        assert fake.variables[0] == {"fullName": "@acme/app"}
        assert fake.variables[1] == {"appId": "id-app", "offset": 0, "limit": 20}

    @pytest.mark.asyncio
    async def test_slug_resolved_once(self):
        fake = _FakeEas()
        service = _service(fake)
        await service.fetch_builds("acme/app", "tok")
        await service.fetch_builds("acme/app", "tok")
        assert fake.operations.count("resolve") == 1
        assert fake.operations.count("builds") == 2

    @pytest.mark.asyncio
    async def test_slug_change_resolves_again(self):
        fake = _FakeEas()
        service = _service(fake)
        await service.fetch_builds("acme/app", "tok")
        await service.fetch_builds("acme/other", "tok")
        assert fake.operations.count("resolve") == 2
        assert service.cache.get("acme/other").app_id == "id-other"

    @pytest.mark.asyncio
    async def test_authorization_header(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return _FakeEas()(request)

        await _service(handler).fetch_builds("acme/app", "expo-tok")
        assert seen == ["Bearer expo-tok", "Bearer expo-tok"]

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        with pytest.raises(FetchError, match="EAS API error: 401 Unauthorized"):
            await _service(handler).fetch_builds("acme/app", "tok")

    @pytest.mark.asyncio
    async def test_graphql_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"data": None, "errors": [{"message": "Entity not authorized"}]}
            )

        with pytest.raises(FetchError, match="EAS GraphQL error: Entity not authorized"):
            await _service(handler).fetch_builds("acme/app", "tok")

    @pytest.mark.asyncio
    async def test_failed_resolution_is_not_cached(self):
        fake = _FakeEas()
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(500)
            return fake(request)

        service = _service(handler)
        with pytest.raises(FetchError):
            await service.fetch_builds("acme/app", "tok")
        await service.fetch_builds("acme/app", "tok")
        assert fake.operations == ["resolve", "builds"]

    @pytest.mark.asyncio
    async def test_build_list_failure_has_no_partial_result(self):
        fake = _FakeEas()

        def handler(request: httpx.Request) -> httpx.Response:
            if b"ViewBuilds" in request.content:
                return httpx.Response(502)
            return fake(request)

        with pytest.raises(FetchError, match="502"):
            await _service(handler).fetch_builds("acme/app", "tok")
