from __future__ import annotations

from prdeck.models import PRQueue, ReviewRequest


def dedupe_my_prs(
    review_requests: list[ReviewRequest], my_prs: list[ReviewRequest]
) -> list[ReviewRequest]:
    """Drop my PRs that already show up in the review queue."""
    review_ids = {pr.id for pr in review_requests}
    return [pr for pr in my_prs if pr.id not in review_ids]


def filter_prs(prs: list[ReviewRequest], query: str) -> list[ReviewRequest]:
    """Case-insensitive match on title, repo or author; blank query keeps all."""
    if not query.strip():
        return prs
    q = query.lower()
    return [
        pr
        for pr in prs
        if q in pr.title.lower()
        or q in pr.repo_name.lower()
        or q in pr.author.login.lower()
    ]


def reconcile(
    queue: PRQueue | None, query: str = ""
) -> tuple[list[ReviewRequest], list[ReviewRequest]]:
    """Return the (reviews, my PRs) lists as they should be displayed."""
    if queue is None:
        return [], []
    mine = dedupe_my_prs(queue.review_requests, queue.my_prs)
    return filter_prs(queue.review_requests, query), filter_prs(mine, query)
