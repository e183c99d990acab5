"""
Jira Cloud issue activity source.

Pages through ``GET /rest/api/3/search/jql`` for issues the authenticated
user created or is assigned to and that were updated since the start bound,
and emits one ``issue_created`` event per issue created since then plus one
``issue_updated`` event when the last update differs from the creation time.

Authentication is HTTP basic with the account e-mail and an API token.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import aiohttp
import jmespath

from timetrace.core.exceptions import FetchError, FetchTimeoutError
from timetrace.models import EventName

from .base import EventSource
from .utils import ms_to_datetime, parse_timestamp


if TYPE_CHECKING:
    from collections.abc import Iterable

    from pydantic import SecretStr

    from timetrace.models import Event


logger = logging.getLogger(__name__)


SEARCH_PATH = "/rest/api/3/search/jql"

# One row per issue with the fields needed to build events
_ISSUE_ROWS = jmespath.compile(
    "issues[].{key: key, summary: fields.summary, created: fields.created, updated: fields.updated}"
)

# e.g. "2024-01-15T09:30:00.000+0100"
_JIRA_TIMESTAMP_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def build_jql(since: int) -> str:
    """JQL for the current user's issues updated at or after ``since``.

    JQL dates have minute precision in the user's time zone; the bound is
    rounded down and the caller filters by ``since`` afterwards.
    """
    start = ms_to_datetime(since, local=True).strftime("%Y-%m-%d %H:%M")
    return (
        "(creator = currentUser() OR assignee = currentUser()) "
        f'AND updated >= "{start}" ORDER BY updated ASC'
    )


class JiraEventSource(EventSource):
    """Issue creation and update events from Jira Cloud.

    Args:
        base_url: Site URL, e.g. ``https://example.atlassian.net``.
        email: Account e-mail used for basic authentication.
        api_token: API token for ``email``.
        name: Source name (default ``"jira"``).
        kinds: Default kinds to fetch (empty = all supported).
        timeout: Total seconds allowed for the whole paginated search.
        page_size: Issues requested per page.
        max_pages: Upper bound on pages fetched per call.
        enabled: Administrative switch; a disabled source is inactive.
    """

    supported_kinds: ClassVar[frozenset[EventName]] = frozenset(
        {EventName.ISSUE_CREATED, EventName.ISSUE_UPDATED}
    )

    def __init__(
        self,
        *,
        base_url: str,
        email: str,
        api_token: SecretStr | str | None,
        name: str = "jira",
        kinds: Iterable[EventName | str] = (),
        timeout: float = 30.0,
        page_size: int = 100,
        max_pages: int = 50,
        enabled: bool = True,
    ) -> None:
        super().__init__(name, kinds)
        self._base_url = base_url.rstrip("/")
        self._email = email
        self._api_token = api_token if isinstance(api_token, str | None) else api_token.get_secret_value()
        self._timeout = timeout
        self._page_size = page_size
        self._max_pages = max_pages
        self._enabled = enabled

    def is_active(self) -> bool:
        return bool(self._enabled and self._base_url and self._email and self._api_token)

    async def fetch(self, kinds: frozenset[EventName], since: int) -> list[Event]:
        wanted = self.resolve_kinds(kinds)
        if not wanted:
            return []
        if not self.is_active():
            raise FetchError(self.name, "Jira credentials are not configured")

        auth = aiohttp.BasicAuth(self._email, self._api_token or "")
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        try:
            async with aiohttp.ClientSession(
                auth=auth, timeout=timeout, headers={"Accept": "application/json"}
            ) as session:
                issues = await self._search(session, build_jql(since))
        except TimeoutError as e:
            raise FetchTimeoutError(
                self.name, f"Jira search did not finish within {self._timeout}s"
            ) from e
        except aiohttp.ClientResponseError as e:
            raise FetchError(self.name, f"Jira search failed with HTTP {e.status}: {e.message}") from e
        except (aiohttp.ClientError, OSError, ValueError) as e:
            raise FetchError(self.name, f"Jira search failed: {e}") from e

        return self.to_events(issues, wanted, since)

    async def _search(self, session: aiohttp.ClientSession, jql: str) -> list[dict[str, Any]]:
        """Collect issue rows across pages, following ``nextPageToken``."""
        url = f"{self._base_url}{SEARCH_PATH}"
        params = {
            "jql": jql,
            "fields": "summary,created,updated",
            "maxResults": str(self._page_size),
        }
        rows: list[dict[str, Any]] = []

        for _ in range(self._max_pages):
            async with session.get(url, params=params) as resp:
                resp.raise_for_status()
                data = await resp.json()
            if not isinstance(data, dict):
                raise ValueError(f"unexpected search response type: {type(data).__name__}")

            rows.extend(_ISSUE_ROWS.search(data) or [])

            next_token = data.get("nextPageToken")
            if data.get("isLast", True) or not next_token:
                break
            params["nextPageToken"] = next_token
        else:
            logger.warning("jira_page_limit_reached source=%s pages=%s", self.name, self._max_pages)

        return rows

    def to_events(
        self, rows: Iterable[dict[str, Any]], kinds: frozenset[EventName], since: int
    ) -> list[Event]:
        """Build events from issue rows, keeping those with ``time >= since``."""
        events: list[Event] = []
        for row in rows:
            key = row.get("key") or "?"
            details = f"{key}: {row.get('summary') or ''}"
            try:
                created = parse_timestamp(row["created"], *_JIRA_TIMESTAMP_FORMATS)
                updated = (
                    parse_timestamp(row["updated"], *_JIRA_TIMESTAMP_FORMATS)
                    if row.get("updated")
                    else None
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("invalid_issue_timestamps source=%s issue=%s error=%s", self.name, key, e)
                continue

            candidates = [(EventName.ISSUE_CREATED, created)]
            if updated is not None and updated != created:
                candidates.append((EventName.ISSUE_UPDATED, updated))

            for kind, time in candidates:
                if kind in kinds and time >= since:
                    event = self.make_event(time, kind, details)
                    if event is not None:
                        events.append(event)
        return events
