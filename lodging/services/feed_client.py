"""HTTP client for channel-manager calendar feeds."""

from __future__ import annotations

from typing import Optional

import httpx

from lodging.utils.config import Settings, get_settings
from lodging.utils.ical import CalendarFormatError, ParsedCalendar, parse_calendar
from lodging.utils.logger import get_logger


logger = get_logger(__name__)


class FeedFetchError(Exception):
    """Raised when a feed is unreachable, times out, or is not iCalendar."""


class FeedClient:
    """Downloads and parses one room's external calendar."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    def fetch_feed_events(self, url: str) -> ParsedCalendar:
        if not url:
            raise FeedFetchError("no feed URL configured")
        try:
            with httpx.Client(
                timeout=self._settings.feed_fetch_timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = client.get(url, headers={"Accept": "text/calendar"})
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FeedFetchError(
                f"feed fetch timed out after {self._settings.feed_fetch_timeout_seconds}s: {url}"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise FeedFetchError(
                f"feed returned HTTP {exc.response.status_code}: {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"feed unreachable: {url} ({exc})") from exc

        try:
            parsed = parse_calendar(response.text)
        except CalendarFormatError as exc:
            raise FeedFetchError(f"feed is not a calendar: {url} ({exc})") from exc

        logger.info(
            "Feed fetched | url=%s | raw_events=%s | parsed_events=%s | warnings=%s",
            url,
            parsed.raw_count,
            len(parsed.events),
            len(parsed.warnings),
        )
        return parsed
