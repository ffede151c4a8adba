from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys

import click

# Restore the default excepthook so Rich (installed by Textual) doesn't
# hijack tracebacks with fancy formatting that breaks CI and log parsing.
sys.excepthook = sys.__excepthook__

from prdeck.config import ensure_config, get_config
from prdeck.errors import FetchError
from prdeck.http import create_client
from prdeck.models import BuildGroup, PRQueue, ReviewRequest
from prdeck.reconcile import reconcile
from prdeck.services.eas import EasService
from prdeck.services.github import GitHubService

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write debug logs to this file.",
)
def cli(log_file: str | None) -> None:
    """prdeck: pull-request review queue and EAS build dashboard."""
    if log_file:
        logging.basicConfig(filename=log_file, level=logging.DEBUG, format=LOG_FORMAT)


@cli.command()
def board() -> None:
    """Open the dashboard TUI."""
    from prdeck.tui.app import PRDeckApp

    app = PRDeckApp()
    app.run()


@cli.command()
@click.option("--edit", is_flag=True, help="Open config in $EDITOR.")
def config(edit: bool) -> None:
    """View or edit configuration."""
    config_path = ensure_config()

    if edit:
        editor = os.environ.get("EDITOR", "vi")
        subprocess.run([editor, str(config_path)])
    else:
        click.echo(config_path.read_text())


def _format_pr(pr: ReviewRequest, show_age: bool) -> str:
    line = f"  {pr.repo_name}#{pr.number} {pr.title} ({pr.author.login})"
    extras: list[str] = []
    if show_age:
        extras.append(pr.age())
    if pr.ci_status:
        extras.append(f"ci:{pr.ci_status}")
    if pr.diff_stats:
        extras.append(f"+{pr.diff_stats.additions}/-{pr.diff_stats.deletions}")
    if extras:
        line += f" [{', '.join(extras)}]"
    if pr.notion_link:
        line += f"\n    {pr.notion_link.title}: {pr.notion_link.url}"
    return line


async def _fetch_queue(username: str, token: str) -> PRQueue:
    async with create_client() as client:
        return await GitHubService(client).fetch_queue(username, token)


async def _fetch_builds(slug: str, token: str) -> list[BuildGroup]:
    async with create_client() as client:
        return await EasService(client).fetch_builds(slug, token)


@cli.command()
@click.option("--filter", "query", default="", help="Only show PRs matching this text.")
def prs(query: str) -> None:
    """Fetch the review queue once and print it."""
    settings = get_config()
    if not settings.is_configured:
        click.echo("GitHub token and username are not configured.", err=True)
        raise SystemExit(1)

    try:
        queue = asyncio.run(_fetch_queue(settings.username, settings.token))
    except FetchError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    reviews, mine = reconcile(queue, query)
    click.echo(f"Reviews ({len(reviews)})")
    for pr in reviews:
        click.echo(_format_pr(pr, show_age=True))
    click.echo(f"My PRs ({len(mine)})")
    for pr in mine:
        click.echo(_format_pr(pr, show_age=False))


@cli.command()
def builds() -> None:
    """Fetch the latest EAS builds once and print them by profile."""
    settings = get_config()
    if not settings.is_expo_configured:
        click.echo("Expo token and project slug are not configured.", err=True)
        raise SystemExit(1)

    try:
        groups = asyncio.run(
            _fetch_builds(settings.expo_project_slug, settings.expo_token)
        )
    except FetchError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    if not groups:
        click.echo("No builds yet.")
    for group in groups:
        click.echo(group.profile)
        for build in group.builds:
            version = build.app_version or "?"
            click.echo(f"  {build.platform:<8} {build.status:<14} {version}")
            if build.artifact_url:
                click.echo(f"    {build.artifact_url}")
