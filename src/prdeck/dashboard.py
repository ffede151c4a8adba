"""Wires settings, services and the two pollers together."""

from __future__ import annotations

import logging

import httpx

from prdeck.config import Settings
from prdeck.http import create_client
from prdeck.models import BuildGroup, PRQueue
from prdeck.poller import Poller
from prdeck.services.eas import EasService
from prdeck.services.github import GitHubService

logger = logging.getLogger(__name__)


class Dashboard:
    """Owns one HTTP client, both services and the PR/build pollers."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        github: GitHubService | None = None,
        eas: EasService | None = None,
    ) -> None:
        self.client = client or create_client()
        self.github = github or GitHubService(self.client)
        self.eas = eas or EasService(self.client)
        self.prs: Poller[PRQueue] = Poller("prs")
        self.builds: Poller[list[BuildGroup]] = Poller("builds")
        self.settings: Settings | None = None

    def apply_settings(self, settings: Settings) -> None:
        """Re-evaluate both pollers against a fresh settings snapshot."""
        self.settings = settings
        username, token = settings.username, settings.token
        slug, expo_token = settings.expo_project_slug, settings.expo_token

        async def fetch_prs() -> PRQueue:
            return await self.github.fetch_queue(username, token)

        async def fetch_builds() -> list[BuildGroup]:
            return await self.eas.fetch_builds(slug, expo_token)

        self.prs.configure(
            fetch_prs if settings.is_configured else None,
            enabled=settings.is_configured,
            interval_minutes=settings.polling_interval,
            key=(username, token),
        )
        self.builds.configure(
            fetch_builds if settings.is_expo_configured else None,
            enabled=settings.is_expo_configured and settings.active_tab == "builds",
            interval_minutes=settings.polling_interval,
            key=(slug, expo_token),
        )

    def refresh(self, tab: str) -> None:
        poller = self.builds if tab == "builds" else self.prs
        poller.refresh()

    async def aclose(self) -> None:
        await self.prs.aclose()
        await self.builds.aclose()
        await self.client.aclose()
