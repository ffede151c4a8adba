from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

T = TypeVar("T")

AGE_FRESH = "fresh"
AGE_AGING = "aging"
AGE_STALE = "stale"

BUILD_STATUSES = (
    "FINISHED",
    "ERRORED",
    "IN_PROGRESS",
    "IN_QUEUE",
    "NEW",
    "CANCELED",
    "PENDING_CANCEL",
)

PLATFORMS = ("ANDROID", "IOS")

DEFAULT_PROFILE = "local"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by GitHub/EAS (``Z`` allowed)."""
    if not value:
        return None
    then = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if then.tzinfo is None:
        then = then.replace(tzinfo=UTC)
    return then


def age_category(created_at: datetime, now: datetime | None = None) -> str:
    """Bucket a creation time into fresh (<24h), aging (<48h) or stale."""
    now = now or datetime.now(UTC)
    delta = now - created_at
    if delta < timedelta(hours=24):
        return AGE_FRESH
    if delta < timedelta(hours=48):
        return AGE_AGING
    return AGE_STALE


@dataclass(frozen=True)
class Author:
    login: str
    avatar_url: str | None = None


@dataclass(frozen=True)
class NotionLink:
    url: str
    title: str


@dataclass(frozen=True)
class DiffStats:
    additions: int
    deletions: int


@dataclass(frozen=True)
class PullRequestRecord:
    id: int
    number: int
    title: str
    author: Author
    repo_name: str  # owner/name
    created_at: datetime
    html_url: str
    draft: bool = False
    updated_at: datetime | None = None
    labels: tuple[str, ...] = ()


@dataclass
class ReviewRequest:
    pr: PullRequestRecord
    ci_status: str | None = None  # success, failure, pending, neutral
    notion_link: NotionLink | None = None
    diff_stats: DiffStats | None = None

    @property
    def id(self) -> int:
        return self.pr.id

    @property
    def number(self) -> int:
        return self.pr.number

    @property
    def title(self) -> str:
        return self.pr.title

    @property
    def repo_name(self) -> str:
        return self.pr.repo_name

    @property
    def author(self) -> Author:
        return self.pr.author

    def age(self, now: datetime | None = None) -> str:
        return age_category(self.pr.created_at, now)


@dataclass
class Build:
    id: str
    status: str  # one of BUILD_STATUSES
    platform: str  # ANDROID | IOS
    created_at: datetime
    profile: str | None = None
    channel: str | None = None
    distribution: str | None = None
    git_commit_hash: str | None = None
    app_version: str | None = None
    app_build_version: str | None = None
    completed_at: datetime | None = None
    artifact_url: str | None = None
    error_message: str | None = None
    initiated_by: str | None = None

    @property
    def profile_name(self) -> str:
        return self.profile or DEFAULT_PROFILE


@dataclass
class BuildGroup:
    profile: str
    builds: list[Build] = field(default_factory=list)


@dataclass(frozen=True)
class EasApp:
    app_id: str
    account_name: str
    project_name: str

    def build_url(self, build_id: str) -> str:
        return (
            f"https://expo.dev/accounts/{self.account_name}"
            f"/projects/{self.project_name}/builds/{build_id}"
        )


@dataclass
class PRQueue:
    review_requests: list[ReviewRequest] = field(default_factory=list)
    my_prs: list[ReviewRequest] = field(default_factory=list)


@dataclass
class QueueState(Generic[T]):
    """Snapshot of one polled queue as seen by the presentation layer."""

    items: T | None = None
    is_loading: bool = False
    error: str | None = None
    last_updated: datetime | None = None
