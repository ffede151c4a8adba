"""GitHub issue-search queries for the review queue and the user's own PRs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from prdeck.errors import FetchError
from prdeck.http import GITHUB_API_URL, describe_status, github_headers
from prdeck.models import (
    Author,
    PRQueue,
    PullRequestRecord,
    ReviewRequest,
    parse_timestamp,
)
from prdeck.services.enrichment import EnrichmentPipeline

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 50


def review_requested_query(username: str) -> str:
    return f"review-requested:{username} is:pr is:open"


def authored_query(username: str) -> str:
    return f"author:{username} is:pr is:open"


def extract_repo_name(repository_url: str) -> str:
    """``https://api.github.com/repos/owner/name`` -> ``owner/name``."""
    parts = repository_url.rstrip("/").split("/")
    return f"{parts[-2]}/{parts[-1]}"


def map_search_item(item: dict[str, Any]) -> PullRequestRecord:
    """Map one raw search/issues item into a PullRequestRecord."""
    user = item.get("user") or {}
    return PullRequestRecord(
        id=item["id"],
        number=item["number"],
        title=item.get("title", ""),
        author=Author(login=user.get("login", ""), avatar_url=user.get("avatar_url")),
        repo_name=extract_repo_name(item["repository_url"]),
        created_at=parse_timestamp(item["created_at"]),
        updated_at=parse_timestamp(item.get("updated_at")),
        html_url=item.get("html_url", ""),
        draft=bool(item.get("draft", False)),
        labels=tuple(label.get("name", "") for label in item.get("labels") or []),
    )


class GitHubService:
    """Fetches and enriches the two PR lists shown on the PR tab."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        pipeline: EnrichmentPipeline | None = None,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self.pipeline = pipeline or EnrichmentPipeline(client, base_url=base_url)

    async def search_issues(self, query: str, token: str) -> list[PullRequestRecord]:
        response = await self._client.get(
            f"{self._base_url}/search/issues",
            params={
                "q": query,
                "sort": "updated",
                "order": "desc",
                "per_page": SEARCH_PAGE_SIZE,
            },
            headers=github_headers(token),
        )
        if not response.is_success:
            try:
                message = response.json().get("message")
            except (ValueError, AttributeError):
                message = None
            raise FetchError(
                message or f"GitHub API error: {describe_status(response)}",
                status=response.status_code,
            )

        items = response.json().get("items") or []
        logger.debug("Search %r returned %d items", query, len(items))
        return [map_search_item(item) for item in items]

    async def fetch_review_requests(self, username: str, token: str) -> list[ReviewRequest]:
        records = await self.search_issues(review_requested_query(username), token)
        return await self.pipeline.enrich(records, token)

    async def fetch_my_prs(self, username: str, token: str) -> list[ReviewRequest]:
        records = await self.search_issues(authored_query(username), token)
        return await self.pipeline.enrich(records, token)

    async def fetch_queue(self, username: str, token: str) -> PRQueue:
        """Fetch both lists concurrently; either search failing fails the queue."""
        reviews, mine = await asyncio.gather(
            self.fetch_review_requests(username, token),
            self.fetch_my_prs(username, token),
        )
        return PRQueue(review_requests=reviews, my_prs=mine)
