from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CONFIG_DIR = Path.home() / ".config" / "prdeck"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_POLLING_INTERVAL = 5
MIN_POLLING_INTERVAL = 1
MAX_POLLING_INTERVAL = 60

TABS = ("prs", "builds")

DEFAULT_CONFIG = """\
[github]
# Personal access token with `repo` scope. GITHUB_TOKEN is used when empty.
token = ""
username = ""

[expo]
# EAS access token. EXPO_TOKEN is used when empty.
token = ""
# Project in "account/project" form, e.g. "acme/mobile-app"
project_slug = ""

[polling]
# Minutes between refreshes (1-60)
interval = 5

[display]
show_notion_link = true
show_ci_badge = true
# Tab shown on startup: prs | builds
active_tab = "prs"
"""


def clamp_polling_interval(value: Any) -> int:
    """Round and clamp a polling interval in minutes into 1..60."""
    try:
        minutes = round(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_POLLING_INTERVAL
    return max(MIN_POLLING_INTERVAL, min(MAX_POLLING_INTERVAL, minutes))


@dataclass
class Settings:
    token: str  # GitHub token
    username: str  # GitHub login
    expo_token: str
    expo_project_slug: str  # account/project
    polling_interval: int  # minutes
    show_notion_link: bool = True
    show_ci_badge: bool = True
    active_tab: str = "prs"  # prs | builds

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.username)

    @property
    def is_expo_configured(self) -> bool:
        return bool(self.expo_token and self.expo_project_slug)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        github = data.get("github", {})
        expo = data.get("expo", {})
        polling = data.get("polling", {})
        display = data.get("display", {})

        active_tab = display.get("active_tab", "prs")
        if active_tab not in TABS:
            raise ValueError(
                f"display.active_tab must be one of {', '.join(TABS)}; got '{active_tab}'."
            )

        return cls(
            token=github.get("token", "") or os.environ.get("GITHUB_TOKEN", ""),
            username=github.get("username", ""),
            expo_token=expo.get("token", "") or os.environ.get("EXPO_TOKEN", ""),
            expo_project_slug=expo.get("project_slug", "").strip(),
            polling_interval=clamp_polling_interval(
                polling.get("interval", DEFAULT_POLLING_INTERVAL)
            ),
            show_notion_link=display.get("show_notion_link", True),
            show_ci_badge=display.get("show_ci_badge", True),
            active_tab=active_tab,
        )

    @classmethod
    def load(cls) -> Settings:
        if CONFIG_FILE.exists():
            with open(CONFIG_FILE, "rb") as f:
                data = tomllib.load(f)
        else:
            data = {}
        return cls.from_dict(data)


def get_config() -> Settings:
    return Settings.load()


def ensure_config() -> Path:
    """Create default config file if it doesn't exist. Returns config path."""
    if not CONFIG_FILE.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        CONFIG_FILE.write_text(DEFAULT_CONFIG)
    return CONFIG_FILE


def config_mtime() -> float | None:
    """Modification time of the config file, or None when it doesn't exist."""
    try:
        return CONFIG_FILE.stat().st_mtime
    except FileNotFoundError:
        return None
