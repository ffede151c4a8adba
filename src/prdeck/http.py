"""Shared httpx client construction."""

from __future__ import annotations

import httpx

GITHUB_API_URL = "https://api.github.com"
EAS_GRAPHQL_URL = "https://api.expo.dev/graphql"

DEFAULT_TIMEOUT = 30.0


def create_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Return the AsyncClient every service shares for one app session."""
    return httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=transport)


def github_headers(token: str, accept: str = "application/vnd.github.v3+json") -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": accept,
    }


def describe_status(response: httpx.Response) -> str:
    """Return "<status> <reason>" for error messages."""
    return f"{response.status_code} {response.reason_phrase}".rstrip()
