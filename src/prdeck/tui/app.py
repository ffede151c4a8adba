from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import Footer, Header, Input, Static

from prdeck.config import Settings, config_mtime, get_config
from prdeck.dashboard import Dashboard
from prdeck.models import QueueState
from prdeck.reconcile import dedupe_my_prs, reconcile
from prdeck.tui.card import _time_ago
from prdeck.tui.column import BuildsView, PRSection

NOT_CONFIGURED_MESSAGE = (
    "GitHub token and username are not set. Run `prdeck config --edit`."
)

CONFIG_CHECK_SECONDS = 5


class PRDeckApp(App):
    """Review queue and build status dashboard."""

    TITLE = "prdeck"
    AUTO_FOCUS = None

    CSS = """
    Screen {
        layout: vertical;
    }

    #tab-bar {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }

    #search {
        margin: 0 1;
    }

    #error-banner {
        display: none;
        margin: 0 1;
        padding: 0 1;
        color: $error;
        border: round $error;
    }

    #error-banner.visible {
        display: block;
    }

    #pr-view {
        height: 1fr;
        padding: 0 1;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        padding: 0 1;
        background: $boost;
    }

    #status-keys {
        width: 1fr;
    }

    #status-updated {
        width: auto;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
        Binding("r", "refresh", "Refresh", show=True),
        Binding("R", "reload_settings", "Reload settings", show=True),
        Binding("tab", "switch_tab", "Switch tab", show=True, priority=True),
        Binding("slash", "focus_search", "Search", show=True),
        Binding("escape", "clear_search", "Clear search", show=False),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        dashboard: Dashboard | None = None,
        load_settings: Callable[[], Settings] = get_config,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._load_settings = load_settings
        self.settings = settings or load_settings()
        self._config_mtime = config_mtime()
        self.dashboard = dashboard or Dashboard()
        self.search = ""
        self._closing = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="tab-bar")
        yield Input(placeholder="Filter by title, repo or author", id="search")
        yield Static("", id="error-banner")
        with VerticalScroll(id="pr-view"):
            yield PRSection("Reviews", "No reviews waiting", show_age=True, id="reviews")
            yield PRSection("My PRs", "No open PRs", show_age=False, id="my-prs")
        yield BuildsView(id="builds-view")
        with Horizontal(id="status-bar"):
            yield Static(
                "r refresh · R reload settings · tab switch · / search · q quit",
                id="status-keys",
            )
            yield Static("", id="status-updated")
        yield Footer()

    def on_mount(self) -> None:
        self.dashboard.prs.subscribe(self._on_prs_changed)
        self.dashboard.builds.subscribe(self._on_builds_changed)
        self.dashboard.apply_settings(self.settings)
        self._show_active_tab()
        self._render_prs()
        self.set_interval(30, self._update_status_bar)
        self.set_interval(CONFIG_CHECK_SECONDS, self._reload_if_changed)

    async def on_unmount(self) -> None:
        self._closing = True
        await self.dashboard.aclose()

    # -- Rendering --

    def _on_prs_changed(self, state: QueueState) -> None:
        if not self._closing:
            self._render_prs()

    def _on_builds_changed(self, state: QueueState) -> None:
        if not self._closing:
            self._render_builds()

    def _active_state(self) -> QueueState:
        if self.settings.active_tab == "builds":
            return self.dashboard.builds.state
        return self.dashboard.prs.state

    def _render_prs(self) -> None:
        queue = self.dashboard.prs.state.items
        reviews, mine = reconcile(queue, self.search)
        show_ci = self.settings.show_ci_badge
        show_notion = self.settings.show_notion_link
        self.query_one("#reviews", PRSection).update_prs(reviews, show_ci, show_notion)
        self.query_one("#my-prs", PRSection).update_prs(mine, show_ci, show_notion)

        if queue is not None:
            total_mine = len(dedupe_my_prs(queue.review_requests, queue.my_prs))
            self.query_one("#search", Input).placeholder = (
                f"Filter {len(queue.review_requests)} reviews and {total_mine} PRs"
            )
        self._update_status_bar()

    def _render_builds(self) -> None:
        groups = self.dashboard.builds.state.items or []
        app_info = self.dashboard.eas.cache.get(self.settings.expo_project_slug)
        self.query_one("#builds-view", BuildsView).update_groups(groups, app_info)
        self._update_status_bar()

    def _update_status_bar(self) -> None:
        state = self._active_state()
        banner = self.query_one("#error-banner", Static)
        error = state.error
        if not self.settings.is_configured and self.settings.active_tab == "prs":
            error = NOT_CONFIGURED_MESSAGE
        if error:
            banner.update(escape(error))
            banner.add_class("visible")
        else:
            banner.remove_class("visible")

        if state.is_loading:
            updated = "refreshing..."
        elif state.last_updated is not None:
            updated = f"updated {_time_ago(state.last_updated)} ago"
        else:
            updated = "never updated"
        self.query_one("#status-updated", Static).update(updated)

    def _show_active_tab(self) -> None:
        builds = self.settings.active_tab == "builds"
        self.query_one("#pr-view").display = not builds
        self.query_one("#search").display = not builds
        self.query_one("#builds-view").display = builds

        tabs = "[b]PRs[/b]"
        if self.settings.is_expo_configured:
            tabs = "[b]Builds[/b]  PRs" if builds else "[b]PRs[/b]  Builds"
        self.query_one("#tab-bar", Static).update(tabs)
        if builds:
            self._render_builds()
        else:
            self._update_status_bar()

    # -- Actions --

    def action_refresh(self) -> None:
        self.dashboard.refresh(self.settings.active_tab)

    def action_reload_settings(self) -> None:
        """Re-read the config file and re-apply it to both pollers.

        The tab picked in the app wins over the file's ``active_tab`` unless
        the builds tab is no longer configured.
        """
        try:
            settings = self._load_settings()
        except ValueError as e:
            self.notify(f"Invalid config: {e}", severity="error")
            return
        tab = self.settings.active_tab
        if tab == "builds" and not settings.is_expo_configured:
            tab = "prs"
        self.settings = replace(settings, active_tab=tab)
        self.dashboard.apply_settings(self.settings)
        self._show_active_tab()
        self._render_prs()
        self.notify("Settings reloaded")

    def _reload_if_changed(self) -> None:
        mtime = config_mtime()
        if mtime != self._config_mtime:
            self._config_mtime = mtime
            self.action_reload_settings()

    def action_switch_tab(self) -> None:
        if not self.settings.is_expo_configured:
            return
        tab = "prs" if self.settings.active_tab == "builds" else "builds"
        self.settings = replace(self.settings, active_tab=tab)
        self.dashboard.apply_settings(self.settings)
        self._show_active_tab()

    def action_focus_search(self) -> None:
        if self.settings.active_tab == "prs":
            self.query_one("#search", Input).focus()

    def action_clear_search(self) -> None:
        search = self.query_one("#search", Input)
        search.value = ""
        self.set_focus(None)

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "search":
            self.search = event.value
            self._render_prs()
