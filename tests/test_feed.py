from typing import Any
from unittest.mock import patch

import pytest
import requests  # type: ignore[import-untyped]

from farmwatch.feed import (
    EmptyFeedError,
    FeedClient,
    FeedError,
    FeedFormatError,
    FeedLoader,
    FeedNotConfiguredError,
    FeedUnavailableError,
    parse_feed_payload,
)
from farmwatch.timeseries import TimestampFormat

ROWS = [
    {"TimeStamp": "2025-03-10 08:00:00", "PH": "6.5"},
    {"TimeStamp": "2025-03-10 20:00:00", "PH": "6.8"},
]


def _response(payload: Any = None, status_code: int = 200, invalid_json: bool = False) -> Any:
    class _Resp:
        def __init__(self) -> None:
            self.status_code = status_code
            self.headers: dict[str, str] = {}

        def json(self) -> Any:
            if invalid_json:
                raise ValueError("Expecting value")
            return payload

    return _Resp()


def test_parse_bare_array() -> None:
    assert parse_feed_payload(ROWS) == ROWS


def test_parse_envelope() -> None:
    assert parse_feed_payload({"success": True, "data": ROWS}) == ROWS


def test_empty_envelope_is_no_data_not_format_error() -> None:
    with pytest.raises(EmptyFeedError):
        parse_feed_payload({"success": True, "data": []})


def test_empty_array_is_no_data() -> None:
    with pytest.raises(EmptyFeedError):
        parse_feed_payload([])


@pytest.mark.parametrize(
    "payload",
    [
        {"success": False, "data": ROWS},
        {"data": ROWS},
        {"success": True, "data": "nope"},
        {"success": True, "data": [1, 2]},
        [1, 2, 3],
        ["2025-03-10"],
        "text",
        42,
        None,
    ],
)
def test_invalid_shapes_are_format_errors(payload: Any) -> None:
    with pytest.raises(FeedFormatError):
        parse_feed_payload(payload)


def test_error_messages_are_distinct() -> None:
    assert str(EmptyFeedError()) != str(FeedFormatError())
    assert isinstance(EmptyFeedError(), FeedError)


def test_fetch_readings_happy_path() -> None:
    client = FeedClient(timeout_secs=3)
    with patch("farmwatch.feed.requests.get", return_value=_response({"success": True, "data": ROWS})) as get:
        readings = client.fetch_readings("https://example.com/feed")

    assert [r.metric("PH") for r in readings] == [6.5, 6.8]
    assert get.call_args.kwargs["timeout"] == 3


def test_fetch_uses_explicit_timestamp_format() -> None:
    client = FeedClient()
    rows = [{"TimeStamp": "03/04/2025, 10:00"}]
    with patch("farmwatch.feed.requests.get", return_value=_response(rows)):
        readings = client.fetch_readings("https://example.com/feed", TimestampFormat.DAY_FIRST)
    assert readings[0].instant.month == 4
    assert readings[0].instant.day == 3


def test_missing_url_is_not_configured() -> None:
    with pytest.raises(FeedNotConfiguredError):
        FeedClient().fetch_rows("")


def test_http_error_is_unavailable() -> None:
    with patch("farmwatch.feed.requests.get", return_value=_response(status_code=503)):
        with pytest.raises(FeedUnavailableError) as exc:
            FeedClient().fetch_rows("https://example.com/feed")
    assert "503" in str(exc.value)


def test_network_error_is_unavailable() -> None:
    with patch("farmwatch.feed.requests.get", side_effect=requests.ConnectionError("down")):
        with pytest.raises(FeedUnavailableError):
            FeedClient().fetch_rows("https://example.com/feed")


def test_undecodable_body_is_format_error() -> None:
    with patch("farmwatch.feed.requests.get", return_value=_response(invalid_json=True)):
        with pytest.raises(FeedFormatError):
            FeedClient().fetch_rows("https://example.com/feed")


def test_loader_returns_readings_for_current_selection() -> None:
    loader = FeedLoader(lambda url: ROWS)
    readings = loader.load("farm-a", "https://example.com/a")
    assert readings is not None and len(readings) == 2
    assert loader.selection == "farm-a"


def test_loader_discards_stale_response() -> None:
    loader: FeedLoader

    def slow_fetch(url: str | None) -> list[dict[str, Any]]:
        if url == "https://example.com/a":
            # The user picks farm B while farm A is still loading
            newer = loader.load("farm-b", "https://example.com/b")
            assert newer is not None and newer[0].metric("PH") == 9.0
        return [{"TimeStamp": "2025-03-10 08:00:00", "PH": "1.0" if url.endswith("a") else "9.0"}]  # type: ignore[union-attr]

    loader = FeedLoader(slow_fetch)
    assert loader.load("farm-a", "https://example.com/a") is None
    assert loader.selection == "farm-b"


def test_loader_discards_stale_errors() -> None:
    loader: FeedLoader

    def failing_fetch(url: str | None) -> list[dict[str, Any]]:
        loader.cancel()
        raise FeedUnavailableError("down")

    loader = FeedLoader(failing_fetch)
    assert loader.load("farm-a", "https://example.com/a") is None


def test_loader_propagates_current_errors() -> None:
    def failing_fetch(url: str | None) -> list[dict[str, Any]]:
        raise EmptyFeedError()

    loader = FeedLoader(failing_fetch)
    with pytest.raises(EmptyFeedError):
        loader.load("farm-a", "https://example.com/a")


def test_cancel_supersedes_in_flight_fetch() -> None:
    loader: FeedLoader

    def fetch(url: str | None) -> list[dict[str, Any]]:
        loader.cancel()
        return ROWS

    loader = FeedLoader(fetch)
    assert loader.load("farm-a", "https://example.com/a") is None
    assert loader.selection is None
