"""Per-PR enrichment: diff stats, CI status and the linked Notion page.

Every sub-request goes through one shared semaphore so that the total number
of outstanding GitHub calls stays bounded no matter how many PRs are being
enriched. A failed sub-request only blanks its own field.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx

from prdeck.http import GITHUB_API_URL, github_headers
from prdeck.models import DiffStats, NotionLink, PullRequestRecord, ReviewRequest

logger = logging.getLogger(__name__)

ENRICH_CONCURRENCY = 5

NOTION_BOT_LOGIN = "notion-workspace"
FULL_MEDIA_TYPE = "application/vnd.github.v3.full+json"

PENDING_RUN_STATES = {"in_progress", "queued"}
FAILED_CONCLUSIONS = {"failure", "timed_out", "cancelled", "action_required"}
NEUTRAL_CONCLUSIONS = {"neutral", "skipped"}

_NOTION_ANCHOR_RE = re.compile(
    r'<a[^>]+href="(https?://[^"]*notion\.so[^"]*)"[^>]*>([^<]+)</a>'
)


def aggregate_ci_status(check_runs: list[dict[str, Any]]) -> str | None:
    """Collapse a commit's check runs into a single CI status."""
    if not check_runs:
        return None
    if any(run.get("status") in PENDING_RUN_STATES for run in check_runs):
        return "pending"
    conclusions = [run.get("conclusion") or "" for run in check_runs]
    if any(c in FAILED_CONCLUSIONS for c in conclusions):
        return "failure"
    if all(c in NEUTRAL_CONCLUSIONS for c in conclusions):
        return "neutral"
    return "success"


def extract_notion_link(html: str) -> NotionLink | None:
    """Return the first notion.so anchor found in rendered comment HTML."""
    match = _NOTION_ANCHOR_RE.search(html)
    if match is None:
        return None
    url, text = match.group(1), match.group(2)
    title = "Notion" if text.startswith("http") else text
    return NotionLink(url=url, title=title)


def pick_notion_link(comments: list[dict[str, Any]]) -> NotionLink | None:
    """Prefer the Notion bot's comment, else the first link in any comment."""
    bot_comment = next(
        (
            c
            for c in comments
            if NOTION_BOT_LOGIN in ((c.get("user") or {}).get("login") or "").lower()
        ),
        None,
    )
    if bot_comment and bot_comment.get("body_html"):
        link = extract_notion_link(bot_comment["body_html"])
        if link:
            return link

    for comment in comments:
        body_html = comment.get("body_html")
        if not body_html:
            continue
        link = extract_notion_link(body_html)
        if link:
            return link
    return None


class EnrichmentPipeline:
    def __init__(
        self,
        client: httpx.AsyncClient,
        concurrency: int = ENRICH_CONCURRENCY,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._limiter = asyncio.Semaphore(concurrency)

    async def _get_json(
        self,
        path: str,
        token: str,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> Any:
        headers = github_headers(token, accept) if accept else github_headers(token)
        async with self._limiter:
            response = await self._client.get(
                f"{self._base_url}{path}", params=params, headers=headers
            )
        response.raise_for_status()
        return response.json()

    async def fetch_details(
        self, pr: PullRequestRecord, token: str
    ) -> tuple[str | None, DiffStats | None]:
        """Return (head sha, diff stats) for a PR; (None, None) on failure."""
        try:
            data = await self._get_json(
                f"/repos/{pr.repo_name}/pulls/{pr.number}", token
            )
            sha = (data.get("head") or {}).get("sha") or None
            additions = data.get("additions")
            deletions = data.get("deletions")
        except Exception as e:
            logger.debug("PR details unavailable for %s#%d: %s", pr.repo_name, pr.number, e)
            return None, None

        diff_stats = None
        if additions is not None and deletions is not None:
            diff_stats = DiffStats(additions=additions, deletions=deletions)
        return sha, diff_stats

    async def fetch_ci_status(self, repo_name: str, sha: str, token: str) -> str | None:
        try:
            data = await self._get_json(
                f"/repos/{repo_name}/commits/{sha}/check-runs",
                token,
                params={"per_page": 100},
            )
            return aggregate_ci_status(data.get("check_runs") or [])
        except Exception as e:
            logger.debug("CI status unavailable for %s@%s: %s", repo_name, sha, e)
            return None

    async def fetch_notion_link(
        self, pr: PullRequestRecord, token: str
    ) -> NotionLink | None:
        try:
            comments = await self._get_json(
                f"/repos/{pr.repo_name}/issues/{pr.number}/comments",
                token,
                params={"per_page": 30},
                accept=FULL_MEDIA_TYPE,
            )
            return pick_notion_link(comments)
        except Exception as e:
            logger.debug("Comments unavailable for %s#%d: %s", pr.repo_name, pr.number, e)
            return None

    async def _details_and_ci(
        self, pr: PullRequestRecord, token: str
    ) -> tuple[DiffStats | None, str | None]:
        sha, diff_stats = await self.fetch_details(pr, token)
        ci_status = await self.fetch_ci_status(pr.repo_name, sha, token) if sha else None
        return diff_stats, ci_status

    async def _enrich_one(self, pr: PullRequestRecord, token: str) -> ReviewRequest:
        (diff_stats, ci_status), notion_link = await asyncio.gather(
            self._details_and_ci(pr, token),
            self.fetch_notion_link(pr, token),
        )
        return ReviewRequest(
            pr=pr,
            ci_status=ci_status,
            notion_link=notion_link,
            diff_stats=diff_stats,
        )

    async def enrich(
        self, records: list[PullRequestRecord], token: str
    ) -> list[ReviewRequest]:
        """Enrich every record; output order and length match the input."""
        if not records:
            return []
        results = await asyncio.gather(*(self._enrich_one(pr, token) for pr in records))
        return list(results)
