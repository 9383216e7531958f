"""
Supabase client construction and shared persistence helpers.

The client is built from explicit Settings and handed to repository functions;
no module-level client is created at import time.
"""

from __future__ import annotations

from typing import Any, Callable, List, Mapping

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from postgrest.exceptions import APIError
from supabase import Client, create_client  # type: ignore[import-not-found]

from services.settings import Settings

# Postgres SQLSTATE for unique_violation.
UNIQUE_VIOLATION_CODE = "23505"

# PostgREST caps every response at the server's max-rows (1000 on Supabase).
DEFAULT_PAGE_SIZE = 1000


class RepositoryError(RuntimeError):
    """A datastore call failed. `code` carries the Postgres error code when known."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


def create_supabase_client(settings: Settings) -> Client:
    """Create the Supabase client used by every repository call."""

    return create_client(settings.supabase_url, settings.supabase_key)


def is_unique_violation(error: Any) -> bool:
    """Check whether an error (exception or PostgREST error payload) is a duplicate key."""

    code = str(getattr(error, "code", "") or "")
    message = str(getattr(error, "message", "") or error)
    if isinstance(error, Mapping):
        code = str(error.get("code") or "")
        message = str(error.get("message") or "")
    return (
        code == UNIQUE_VIOLATION_CODE
        or "duplicate key" in message
        or "unique constraint" in message
    )


def execute(query: Any, action: str) -> List[dict[str, Any]]:
    """
    Execute a PostgREST query and return its rows.

    Raises:
        RepositoryError: if the request fails or the response carries an error
    """

    try:
        response = query.execute()
    except APIError as exc:
        raise RepositoryError(f"Failed to {action}: {exc.message}", code=exc.code) from exc

    error = getattr(response, "error", None)
    if error:
        raise RepositoryError(f"Failed to {action}: {error}", code=getattr(error, "code", None))

    data = getattr(response, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def fetch_all(
    build_query: Callable[[], Any],
    action: str,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[dict[str, Any]]:
    """
    Execute a select page by page and return every row.

    `build_query` must return a fresh, deterministically ordered query each
    time it is called. Pages advance by the number of rows actually received,
    so a server cap below `page_size` does not drop rows.

    Raises:
        RepositoryError: if any page fails
    """

    all_rows: List[dict[str, Any]] = []
    offset = 0
    while True:
        page_rows = execute(build_query().range(offset, offset + page_size - 1), action)
        if not page_rows:
            break
        all_rows.extend(page_rows)
        offset += len(page_rows)
    return all_rows


__all__ = [
    "Client",
    "RepositoryError",
    "create_supabase_client",
    "execute",
    "fetch_all",
    "is_unique_violation",
]
