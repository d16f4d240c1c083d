from collections.abc import Callable, Mapping, Sequence
from typing import Any

import requests  # type: ignore[import-untyped]
from aws_lambda_powertools import Logger
from pydantic import BaseModel, ValidationError

from .timeseries import Reading, TimestampFormat, to_readings

logger = Logger(service="farmwatch")

Rows = list[dict[str, Any]]


class FeedError(Exception):
    """Base class for feed failures; the message is meant for the dashboard user."""


class FeedNotConfiguredError(FeedError):
    def __init__(self, message: str = "No sensor feed URL is configured for this farm.") -> None:
        super().__init__(message)


class FeedUnavailableError(FeedError):
    pass


class FeedFormatError(FeedError):
    def __init__(self, message: str = "The sensor feed returned data in an invalid format.") -> None:
        super().__init__(message)


class EmptyFeedError(FeedError):
    def __init__(self, message: str = "The sensor feed has no data yet.") -> None:
        super().__init__(message)


class FeedEnvelope(BaseModel):
    success: bool
    data: list[dict[str, Any]]


def parse_feed_payload(payload: Any) -> Rows:
    """Accept either a bare array of reading objects or {"success": true, "data": [...]}."""
    if isinstance(payload, Mapping):
        try:
            envelope = FeedEnvelope.model_validate(payload)
        except ValidationError as e:
            raise FeedFormatError() from e
        if not envelope.success:
            raise FeedFormatError()
        rows = envelope.data
    elif isinstance(payload, list):
        if not all(isinstance(item, Mapping) for item in payload):
            raise FeedFormatError()
        rows = [dict(item) for item in payload]
    else:
        raise FeedFormatError()

    if not rows:
        raise EmptyFeedError()
    return rows


class FeedClient:
    """Fetches a farm's reading feed (a spreadsheet web app returning JSON)."""

    def __init__(self, timeout_secs: int = 15, user_agent: str = "farmwatch-dashboard/1.0") -> None:
        self.timeout_secs = timeout_secs
        self.user_agent = user_agent

    def fetch_rows(self, url: str | None) -> Rows:
        if not url:
            raise FeedNotConfiguredError()
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        try:
            resp = requests.get(url, headers=headers, timeout=self.timeout_secs)
        except requests.RequestException as e:
            logger.warning("feed_request_failed", error=str(e))
            raise FeedUnavailableError("Could not reach the sensor feed. Please try again later.") from e
        logger.info("feed_response", status=resp.status_code)
        if resp.status_code >= 400:
            raise FeedUnavailableError(f"The sensor feed request failed: HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise FeedFormatError() from e
        return parse_feed_payload(payload)

    def fetch_readings(self, url: str | None, fmt: TimestampFormat = TimestampFormat.AUTO) -> tuple[Reading, ...]:
        return to_readings(self.fetch_rows(url), fmt)


class FeedLoader:
    """Loads readings for the current selection and drops responses that arrive late.

    Each call to `load` starts a new generation. When a fetch finishes after a
    newer selection (or `cancel`) has begun, its result is discarded and None is
    returned, so an old farm's data never replaces the one on screen.
    """

    def __init__(self, fetch_rows: Callable[[str | None], Sequence[Mapping[str, Any]]]) -> None:
        self._fetch_rows = fetch_rows
        self._generation = 0
        self.selection: str | None = None

    def begin(self, selection: str | None) -> int:
        self._generation += 1
        self.selection = selection
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def cancel(self) -> None:
        """Supersede any in-flight fetch, e.g. when the user navigates away."""
        self.begin(None)

    def load(
        self,
        selection: str,
        url: str | None,
        fmt: TimestampFormat = TimestampFormat.AUTO,
    ) -> tuple[Reading, ...] | None:
        token = self.begin(selection)
        try:
            rows = self._fetch_rows(url)
        except FeedError:
            if not self.is_current(token):
                logger.info("stale_feed_error_discarded", selection=selection)
                return None
            raise
        if not self.is_current(token):
            logger.info("stale_feed_discarded", selection=selection, current=self.selection)
            return None
        return to_readings(rows, fmt)
