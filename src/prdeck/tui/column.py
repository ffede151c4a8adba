from __future__ import annotations

from typing import Any

from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Vertical, VerticalScroll
from textual.widgets import Static

from prdeck.models import BuildGroup, EasApp, ReviewRequest
from prdeck.tui.card import BuildCard, PRCard


class PRSection(Vertical):
    """A titled list of PR cards ("Reviews" or "My PRs")."""

    DEFAULT_CSS = """
    PRSection {
        height: auto;
        margin: 0 0 1 0;
    }

    PRSection .section-header {
        text-style: bold;
        margin: 0 0 1 0;
    }

    PRSection .empty-label {
        color: $text-muted;
        text-align: center;
    }
    """

    def __init__(self, heading: str, empty_message: str, show_age: bool, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.heading = heading
        self.empty_message = empty_message
        self.show_age = show_age

    def compose(self) -> ComposeResult:
        yield Static(f"{self.heading} (0)", classes="section-header")

    def update_prs(
        self,
        prs: list[ReviewRequest],
        show_ci_badge: bool = True,
        show_notion_link: bool = True,
    ) -> None:
        """Replace the cards with the given PRs."""
        self.query_one(".section-header", Static).update(f"{self.heading} ({len(prs)})")
        for child in list(self.children)[1:]:
            child.remove()
        if not prs:
            self.mount(Static(self.empty_message, classes="empty-label"))
            return
        self.mount_all(
            PRCard(
                pr,
                show_age=self.show_age,
                show_ci_badge=show_ci_badge,
                show_notion_link=show_notion_link,
            )
            for pr in prs
        )


class BuildsView(VerticalScroll):
    """Latest builds grouped by build profile."""

    DEFAULT_CSS = """
    BuildsView {
        height: 1fr;
        padding: 0 1;
    }

    BuildsView .profile-header {
        text-style: bold italic;
        color: $text-muted;
        margin: 1 0 0 0;
    }

    BuildsView .empty-label {
        color: $text-muted;
        text-align: center;
    }
    """

    def update_groups(self, groups: list[BuildGroup], app_info: EasApp | None = None) -> None:
        self.remove_children()
        if not groups:
            self.mount(Static("No builds yet", classes="empty-label"))
            return
        widgets: list[Static | BuildCard] = []
        for group in groups:
            widgets.append(Static(escape(group.profile), classes="profile-header"))
            widgets.extend(BuildCard(build, app_info) for build in group.builds)
        self.mount_all(widgets)
