"""EAS (Expo Application Services) build lookups over GraphQL."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from prdeck.errors import FetchError
from prdeck.http import EAS_GRAPHQL_URL, describe_status
from prdeck.models import PLATFORMS, Build, BuildGroup, EasApp, parse_timestamp

logger = logging.getLogger(__name__)

BUILD_LIMIT = 20

APP_BY_FULL_NAME_QUERY = """
query AppByFullName($fullName: String!) {
  app {
    byFullName(fullName: $fullName) {
      id
      slug
      ownerAccount {
        name
      }
    }
  }
}
"""

VIEW_BUILDS_QUERY = """
query ViewBuilds($appId: String!, $offset: Int!, $limit: Int!) {
  app {
    byId(appId: $appId) {
      builds(offset: $offset, limit: $limit) {
        id
        status
        platform
        buildProfile
        channel
        distribution
        gitCommitHash
        appVersion
        appBuildVersion
        createdAt
        completedAt
        artifacts {
          buildUrl
        }
        error {
          message
        }
        initiatingActor {
          __typename
          id
          displayName
        }
      }
    }
  }
}
"""


def normalize_slug(slug: str) -> str:
    """``acme/app`` or ``@acme/app`` -> ``@acme/app``."""
    return "@" + slug.strip().lstrip("@")


def map_build(data: dict[str, Any]) -> Build:
    artifacts = data.get("artifacts") or {}
    error = data.get("error") or {}
    actor = data.get("initiatingActor") or {}
    return Build(
        id=data["id"],
        status=data["status"],
        platform=data["platform"],
        created_at=parse_timestamp(data["createdAt"]),
        profile=data.get("buildProfile"),
        channel=data.get("channel"),
        distribution=data.get("distribution"),
        git_commit_hash=data.get("gitCommitHash"),
        app_version=data.get("appVersion"),
        app_build_version=data.get("appBuildVersion"),
        completed_at=parse_timestamp(data.get("completedAt")),
        artifact_url=artifacts.get("buildUrl"),
        error_message=error.get("message"),
        initiated_by=actor.get("displayName"),
    )


def group_by_profile(builds: list[Build]) -> list[BuildGroup]:
    """Keep the newest build per platform for each profile, profiles sorted.

    Builds for platforms other than Android and iOS are dropped.
    """
    by_profile: dict[str, list[Build]] = {}
    for build in builds:
        if build.platform not in PLATFORMS:
            logger.debug("Skipping build %s for platform %s", build.id, build.platform)
            continue
        by_profile.setdefault(build.profile_name, []).append(build)

    groups: list[BuildGroup] = []
    for profile, profile_builds in by_profile.items():
        profile_builds.sort(key=lambda b: b.created_at, reverse=True)
        latest_by_platform: dict[str, Build] = {}
        for build in profile_builds:
            latest_by_platform.setdefault(build.platform, build)
        groups.append(BuildGroup(profile=profile, builds=list(latest_by_platform.values())))

    groups.sort(key=lambda g: g.profile)
    return groups


class AppIdCache:
    """Remembers the resolved app for a single project slug.

    The key is the exact slug string; asking for a different slug evicts the
    previous entry.
    """

    def __init__(self) -> None:
        self._slug: str | None = None
        self._app: EasApp | None = None

    def get(self, slug: str) -> EasApp | None:
        if self._slug == slug:
            return self._app
        return None

    def put(self, slug: str, app: EasApp) -> None:
        self._slug = slug
        self._app = app


class EasService:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: AppIdCache | None = None,
        url: str = EAS_GRAPHQL_URL,
    ) -> None:
        self._client = client
        self._url = url
        self.cache = cache or AppIdCache()

    async def graphql(self, query: str, variables: dict[str, Any], token: str) -> dict[str, Any]:
        response = await self._client.post(
            self._url,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"Bearer {token}"},
        )
        if not response.is_success:
            raise FetchError(
                f"EAS API error: {describe_status(response)}",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(f"EAS API error: invalid JSON response ({e})") from e

        errors = payload.get("errors")
        if errors:
            raise FetchError(f"EAS GraphQL error: {errors[0].get('message', 'unknown')}")
        return payload.get("data") or {}

    async def resolve_app(self, project_slug: str, token: str) -> EasApp:
        cached = self.cache.get(project_slug)
        if cached is not None:
            return cached

        data = await self.graphql(
            APP_BY_FULL_NAME_QUERY, {"fullName": normalize_slug(project_slug)}, token
        )
        try:
            raw = data["app"]["byFullName"]
            app = EasApp(
                app_id=raw["id"],
                account_name=raw["ownerAccount"]["name"],
                project_name=raw["slug"],
            )
        except (KeyError, TypeError) as e:
            raise FetchError(f"EAS project '{project_slug}' not found") from e

        logger.info("Resolved EAS project %s to app %s", project_slug, app.app_id)
        self.cache.put(project_slug, app)
        return app

    async def list_builds(self, app_id: str, token: str, limit: int = BUILD_LIMIT) -> list[Build]:
        data = await self.graphql(
            VIEW_BUILDS_QUERY, {"appId": app_id, "offset": 0, "limit": limit}, token
        )
        try:
            raw_builds = data["app"]["byId"]["builds"]
        except (KeyError, TypeError) as e:
            raise FetchError(f"EAS API error: no builds for app {app_id}") from e
        return [map_build(b) for b in raw_builds]

    async def fetch_builds(self, project_slug: str, token: str) -> list[BuildGroup]:
        app = await self.resolve_app(project_slug, token)
        builds = await self.list_builds(app.app_id, token)
        return group_by_profile(builds)
