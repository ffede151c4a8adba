from __future__ import annotations


class FetchError(Exception):
    """Raised when a top-level request (search, build list, app lookup) fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(message)
