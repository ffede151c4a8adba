from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from rich.markup import escape
from textual.app import ComposeResult
from textual.binding import Binding
from textual.widget import Widget
from textual.widgets import Static

from prdeck.models import Build, EasApp, ReviewRequest

CI_LABELS = {
    "success": "[green]● CI passed[/]",
    "failure": "[red]● CI failed[/]",
    "pending": "[yellow]● CI running[/]",
    "neutral": "[dim]● CI skipped[/]",
}

BUILD_STATUS_LABELS = {
    "FINISHED": "[green]● Success[/]",
    "ERRORED": "[red]● Error[/]",
    "IN_PROGRESS": "[yellow]● In progress[/]",
    "IN_QUEUE": "[yellow]● Queued[/]",
    "NEW": "[yellow]● New[/]",
    "CANCELED": "[dim]● Canceled[/]",
    "PENDING_CANCEL": "[dim]● Canceling[/]",
}


def _time_ago(then: datetime | None, now: datetime | None = None) -> str:
    """Return a short human-readable time-ago string."""
    if then is None:
        return "?"
    now = now or datetime.now(UTC)
    minutes = int((now - then).total_seconds() / 60)
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    days = hours // 24
    return f"{days}d"


class PRCard(Widget, can_focus=True):
    """Card representing one pull request."""

    DEFAULT_CSS = """
    PRCard {
        height: auto;
        min-height: 3;
        padding: 0 1;
        border: solid $secondary;
    }

    PRCard:focus {
        border: heavy $accent;
    }

    PRCard .card-title {
        text-style: bold;
    }

    PRCard .card-meta {
        color: $text-muted;
    }

    PRCard .age-fresh {
        color: $success;
    }

    PRCard .age-aging {
        color: $warning;
    }

    PRCard .age-stale {
        color: $error;
    }
    """

    BINDINGS = [
        Binding("enter", "open", "Open PR"),
        Binding("y", "copy_link", "Copy link"),
    ]

    def __init__(
        self,
        review: ReviewRequest,
        show_age: bool = True,
        show_ci_badge: bool = True,
        show_notion_link: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.review = review
        self.show_age = show_age
        self.show_ci_badge = show_ci_badge
        self.show_notion_link = show_notion_link

    def compose(self) -> ComposeResult:
        yield Static(self._render_title(), classes="card-title")
        yield Static(self._render_meta(), classes="card-meta")
        badges = self._render_badges()
        if badges:
            yield Static(badges)
        if self.show_age:
            age = self.review.age()
            yield Static(
                f"{age} · opened {_time_ago(self.review.pr.created_at)} ago",
                classes=f"age-{age}",
            )

    def _render_title(self) -> str:
        draft = "[dim](draft)[/] " if self.review.pr.draft else ""
        return f"{draft}#{self.review.number} {escape(self.review.title)}"

    def _render_meta(self) -> str:
        parts = [escape(self.review.repo_name), escape(self.review.author.login)]
        if self.review.pr.labels:
            parts.append(escape(", ".join(self.review.pr.labels)))
        return " · ".join(parts)

    def _render_badges(self) -> str:
        parts: list[str] = []
        if self.show_ci_badge and self.review.ci_status:
            parts.append(CI_LABELS[self.review.ci_status])
        if self.review.diff_stats:
            parts.append(
                f"[green]+{self.review.diff_stats.additions}[/] "
                f"[red]-{self.review.diff_stats.deletions}[/]"
            )
        if self.show_notion_link and self.review.notion_link:
            link = self.review.notion_link
            parts.append(f"[link={link.url}]{escape(link.title)}[/link]")
        return "  ".join(parts)

    def action_open(self) -> None:
        if self.review.pr.html_url:
            self.app.open_url(self.review.pr.html_url)

    def action_copy_link(self) -> None:
        if self.review.pr.html_url:
            self.app.copy_to_clipboard(self.review.pr.html_url)
            self.app.notify(f"Copied link to #{self.review.number}")


class BuildCard(Widget, can_focus=True):
    """Card representing the latest build of one platform."""

    DEFAULT_CSS = """
    BuildCard {
        height: auto;
        min-height: 3;
        padding: 0 1;
        border: solid $secondary;
    }

    BuildCard:focus {
        border: heavy $accent;
    }

    BuildCard .card-title {
        text-style: bold;
    }

    BuildCard .card-meta {
        color: $text-muted;
    }

    BuildCard .build-error {
        color: $error;
    }
    """

    BINDINGS = [Binding("enter", "open", "Open build")]

    def __init__(self, build: Build, app_info: EasApp | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.build = build
        self.app_info = app_info

    def compose(self) -> ComposeResult:
        yield Static(self._render_title(), classes="card-title")
        yield Static(self._render_meta(), classes="card-meta")
        if self.build.error_message:
            yield Static(escape(self.build.error_message), classes="build-error")
        if self.build.artifact_url:
            yield Static(f"[link={self.build.artifact_url}]Download artifact[/link]")
        if self.app_info is not None:
            url = self.app_info.build_url(self.build.id)
            yield Static(f"[link={url}]Open on expo.dev[/link]")

    def _render_title(self) -> str:
        status = BUILD_STATUS_LABELS.get(self.build.status, self.build.status)
        version = self.build.app_version or "?"
        if self.build.app_build_version:
            version += f" ({self.build.app_build_version})"
        return f"{self.build.platform} {version}  {status}"

    def _render_meta(self) -> str:
        parts = [f"{_time_ago(self.build.created_at)} ago"]
        if self.build.git_commit_hash:
            parts.append(self.build.git_commit_hash[:7])
        if self.build.distribution:
            parts.append(self.build.distribution.lower())
        if self.build.initiated_by:
            parts.append(escape(self.build.initiated_by))
        return " · ".join(parts)

    def action_open(self) -> None:
        if self.app_info is not None:
            self.app.open_url(self.app_info.build_url(self.build.id))
        elif self.build.artifact_url:
            self.app.open_url(self.build.artifact_url)
