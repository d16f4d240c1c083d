from datetime import UTC, date, datetime, timedelta
from unittest.mock import patch

import pytest

from farmwatch.timeseries import (
    Reading,
    TimestampFormat,
    Window,
    WindowMode,
    WindowNavigator,
    available_months,
    latest,
    month_bounds,
    newest_first,
    parse_timestamp,
    shift_months,
    to_readings,
    week_bounds,
)

NOW = datetime(2030, 1, 1, 12, 0, 0)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2025-03-10 08:00:00", datetime(2025, 3, 10, 8, 0, 0)),
        ("2024-02-29 23:59:59", datetime(2024, 2, 29, 23, 59, 59)),
        ("2025-01-22 19:35", datetime(2025, 1, 22, 19, 35, 0)),
        ("2025-01-22", datetime(2025, 1, 22)),
        ("'2025-01-22 19:35:00", datetime(2025, 1, 22, 19, 35, 0)),
        ("  2025-1-2 3:04:05 ", datetime(2025, 1, 2, 3, 4, 5)),
    ],
)
def test_parse_dashed(text: str, expected: datetime) -> None:
    assert parse_timestamp(text, now=NOW) == expected


def test_parse_dashed_recovers_every_field() -> None:
    start = datetime(2023, 12, 25, 0, 0, 0)
    for i in range(0, 400):
        expected = start + timedelta(days=i, hours=i % 24, minutes=(i * 7) % 60, seconds=(i * 13) % 60)
        text = expected.strftime("%Y-%m-%d %H:%M:%S")
        assert parse_timestamp(text, now=NOW) == expected


def test_parse_slash_day_first_when_first_part_exceeds_twelve() -> None:
    assert parse_timestamp("19/06/2025, 00:35", now=NOW) == datetime(2025, 6, 19, 0, 35)


def test_parse_slash_month_first() -> None:
    assert parse_timestamp("06/19/2025, 00:35", now=NOW) == datetime(2025, 6, 19, 0, 35)


def test_parse_slash_ambiguous_is_month_first_and_logged() -> None:
    with patch("farmwatch.timeseries.logger") as logger:
        result = parse_timestamp("03/04/2025, 10:00", now=NOW)
    assert result == datetime(2025, 3, 4, 10, 0)
    logger.warning.assert_called_once()
    assert logger.warning.call_args.args[0] == "ambiguous_timestamp"


def test_parse_slash_same_day_and_month_is_not_ambiguous() -> None:
    with patch("farmwatch.timeseries.logger") as logger:
        result = parse_timestamp("04/04/2025, 10:00", now=NOW)
    assert result == datetime(2025, 4, 4, 10, 0)
    logger.warning.assert_not_called()


def test_feed_load_logs_one_summary_for_ambiguous_dates() -> None:
    rows = [{"TimeStamp": f"03/04/2025, 10:{m:02d}"} for m in range(30)]
    rows.append({"TimeStamp": "19/06/2025, 00:35"})
    with patch("farmwatch.timeseries.logger") as logger:
        readings = to_readings(rows, now=NOW)
    assert readings[0].instant == datetime(2025, 3, 4, 10, 0)
    logger.warning.assert_called_once()
    assert logger.warning.call_args.args[0] == "ambiguous_timestamps"
    assert logger.warning.call_args.kwargs["count"] == 30
    assert logger.warning.call_args.kwargs["total"] == 31


def test_feed_load_with_explicit_format_logs_nothing() -> None:
    with patch("farmwatch.timeseries.logger") as logger:
        to_readings([{"TimeStamp": "03/04/2025, 10:00"}], TimestampFormat.DAY_FIRST, now=NOW)
    logger.warning.assert_not_called()


def test_explicit_day_first_format_skips_heuristic() -> None:
    with patch("farmwatch.timeseries.logger") as logger:
        result = parse_timestamp("03/04/2025, 10:00", TimestampFormat.DAY_FIRST, now=NOW)
    assert result == datetime(2025, 4, 3, 10, 0)
    logger.warning.assert_not_called()


def test_explicit_format_does_not_try_other_formats() -> None:
    assert parse_timestamp("06/19/2025, 00:35", TimestampFormat.DASHED, now=NOW) == NOW
    assert parse_timestamp("2025-03-10 08:00:00", TimestampFormat.MONTH_FIRST, now=NOW) == NOW


@pytest.mark.parametrize("text", ["", "   ", None, "''"])
def test_empty_timestamp_is_now(text: str | None) -> None:
    assert parse_timestamp(text, now=NOW) == NOW


@pytest.mark.parametrize("text", ["garbage", "ab/cd/2025, 10:00", "2025-02-30 10:00:00"])
def test_unparseable_timestamp_is_now(text: str) -> None:
    assert parse_timestamp(text, now=NOW) == NOW


def test_generic_fallback() -> None:
    assert parse_timestamp("March 10, 2025 08:00", now=NOW) == datetime(2025, 3, 10, 8, 0)


def test_generic_fallback_converts_aware_times_to_local() -> None:
    expected = datetime(2025, 3, 10, 8, 0, tzinfo=UTC).astimezone().replace(tzinfo=None)
    assert parse_timestamp("2025-03-10T08:00:00Z", now=NOW) == expected


def test_parse_without_now_falls_back_to_current_time() -> None:
    before = datetime.now().replace(microsecond=0)
    result = parse_timestamp("garbage")
    assert before <= result <= datetime.now()


def test_reading_metric_values() -> None:
    r = Reading.from_mapping({"TimeStamp": "2025-03-10 08:00:00", "PH": "6.5", "N": 7, "K": "", "P": "n/a"})
    assert r.metric("PH") == 6.5
    assert r.metric("N") == 7.0
    assert r.metric("K") is None
    assert r.metric("P") is None
    assert r.metric("missing") is None
    assert r.timestamp == "2025-03-10 08:00:00"


def test_reading_raw_is_read_only() -> None:
    source = {"TimeStamp": "2025-03-10 08:00:00", "PH": "6.5"}
    r = Reading.from_mapping(source)
    source["PH"] = "7.0"
    assert r.raw["PH"] == "6.5"
    with pytest.raises(TypeError):
        r.raw["PH"] = "1"  # type: ignore[index]


def test_week_starts_monday_for_every_anchor() -> None:
    anchor = date(2024, 1, 1)
    for i in range(0, 800):
        a = anchor + timedelta(days=i)
        start, end = week_bounds(a)
        assert start.weekday() == 0
        assert end == start + timedelta(days=6)
        assert start <= a <= end


def test_sunday_anchor_maps_to_previous_monday() -> None:
    assert week_bounds(date(2025, 3, 16)) == (date(2025, 3, 10), date(2025, 3, 16))


@pytest.mark.parametrize(
    "anchor, last",
    [
        (date(2024, 2, 10), date(2024, 2, 29)),
        (date(2025, 2, 10), date(2025, 2, 28)),
        (date(1900, 2, 1), date(1900, 2, 28)),
        (date(2000, 2, 1), date(2000, 2, 29)),
        (date(2025, 4, 30), date(2025, 4, 30)),
        (date(2025, 12, 1), date(2025, 12, 31)),
    ],
)
def test_month_end_is_last_calendar_day(anchor: date, last: date) -> None:
    start, end = month_bounds(anchor)
    assert start == anchor.replace(day=1)
    assert end == last


def test_day_window_uses_calendar_dates() -> None:
    for i in range(0, 60):
        d = date(2025, 1, 1) + timedelta(days=i)
        late = datetime.combine(d, datetime.min.time()) + timedelta(hours=23, minutes=59, seconds=59)
        early_next = late + timedelta(seconds=2)
        for anchor in (d, d + timedelta(days=1)):
            w = Window(WindowMode.DAY, anchor)
            assert not (w.contains(late) and w.contains(early_next))
        assert Window(WindowMode.DAY, d).contains(late)
        assert Window(WindowMode.DAY, d + timedelta(days=1)).contains(early_next)


def test_day_window_filters_feed() -> None:
    readings = to_readings(
        [
            {"TimeStamp": "2025-03-10 08:00:00", "PH": "6.5"},
            {"TimeStamp": "2025-03-10 20:00:00", "PH": "6.8"},
        ]
    )
    assert Window(WindowMode.DAY, date(2025, 3, 10)).filter(readings) == readings
    assert Window(WindowMode.DAY, date(2025, 3, 11)).filter(readings) == ()


def test_week_and_month_windows_are_inclusive() -> None:
    readings = to_readings(
        [
            {"TimeStamp": "2025-03-09 23:59:59"},
            {"TimeStamp": "2025-03-10 00:00:00"},
            {"TimeStamp": "2025-03-16 23:59:59"},
            {"TimeStamp": "2025-03-17 00:00:00"},
            {"TimeStamp": "2025-03-31 23:00:00"},
            {"TimeStamp": "2025-04-01 00:00:00"},
        ]
    )
    week = Window(WindowMode.WEEK, date(2025, 3, 12)).filter(readings)
    assert [r.timestamp for r in week] == ["2025-03-10 00:00:00", "2025-03-16 23:59:59"]
    month = Window(WindowMode.MONTH, date(2025, 3, 12)).filter(readings)
    assert len(month) == 5


def test_window_accepts_datetime_anchor() -> None:
    w = Window(WindowMode.DAY, datetime(2025, 3, 10, 15, 30))
    assert w.anchor == date(2025, 3, 10)


def test_window_keys_and_labels() -> None:
    assert Window(WindowMode.DAY, date(2025, 3, 10)).key == "2025-03-10"
    assert Window(WindowMode.WEEK, date(2025, 3, 12)).key == "2025-03-10_2025-03-16"
    assert Window(WindowMode.MONTH, date(2025, 3, 12)).key == "03-2025"
    assert "2025" in Window(WindowMode.MONTH, date(2025, 3, 12)).label


@pytest.mark.parametrize(
    "anchor, months, expected",
    [
        (date(2025, 3, 31), -1, date(2025, 2, 28)),
        (date(2024, 3, 31), -1, date(2024, 2, 29)),
        (date(2025, 1, 15), -1, date(2024, 12, 15)),
        (date(2025, 12, 15), 1, date(2026, 1, 15)),
    ],
)
def test_shift_months_clamps_day(anchor: date, months: int, expected: date) -> None:
    assert shift_months(anchor, months) == expected


TODAY = date(2025, 3, 12)


def _feed() -> tuple[Reading, ...]:
    return to_readings(
        [
            {"TimeStamp": "2025-02-12 10:00:00", "PH": "6.1"},
            {"TimeStamp": "2025-03-05 10:00:00", "PH": "6.2"},
            {"TimeStamp": "2025-03-11 10:00:00", "PH": "6.3"},
            {"TimeStamp": "2025-03-12 09:00:00", "PH": "6.4"},
            {"TimeStamp": "2025-03-12 18:00:00", "PH": "6.5"},
        ]
    )


def _assert_consistent(nav: WindowNavigator) -> None:
    assert nav.readings == nav.window.filter(nav.all_readings)


def test_navigator_starts_on_today() -> None:
    nav = WindowNavigator(_feed(), today=lambda: TODAY)
    assert nav.window == Window(WindowMode.DAY, TODAY)
    assert [r.metric("PH") for r in nav.readings] == [6.4, 6.5]


def test_next_day_never_passes_today() -> None:
    nav = WindowNavigator(_feed(), today=lambda: TODAY)
    assert nav.next_day() is False
    assert nav.anchor == TODAY

    nav.previous_day()
    assert nav.anchor == TODAY - timedelta(days=1)
    assert [r.metric("PH") for r in nav.readings] == [6.3]
    assert nav.next_day() is True
    assert nav.anchor == TODAY
    assert nav.next_day() is False
    assert nav.anchor == TODAY
    _assert_consistent(nav)


def test_previous_week_and_month_switch_mode() -> None:
    nav = WindowNavigator(_feed(), today=lambda: TODAY)

    nav.previous_week()
    assert nav.window.mode == WindowMode.WEEK
    assert nav.anchor == date(2025, 3, 5)
    assert [r.metric("PH") for r in nav.readings] == [6.2]
    _assert_consistent(nav)

    nav.previous_month()
    assert nav.window.mode == WindowMode.MONTH
    assert nav.anchor == date(2025, 2, 5)
    assert [r.metric("PH") for r in nav.readings] == [6.1]
    _assert_consistent(nav)


def test_current_periods_reset_anchor_to_today() -> None:
    nav = WindowNavigator(_feed(), today=lambda: TODAY, anchor=date(2024, 1, 1))
    assert nav.readings == ()

    nav.current_week()
    assert nav.window == Window(WindowMode.WEEK, TODAY)
    assert len(nav.readings) == 3

    nav.current_month()
    assert nav.window == Window(WindowMode.MONTH, TODAY)
    assert len(nav.readings) == 4

    nav.current_day()
    assert nav.window == Window(WindowMode.DAY, TODAY)
    assert len(nav.readings) == 2


def test_select_month() -> None:
    nav = WindowNavigator(_feed(), today=lambda: TODAY)
    nav.select_month(2025, 2)
    assert nav.window.mode == WindowMode.MONTH
    assert nav.window.key == "02-2025"
    assert len(nav.readings) == 1


def test_duplicates_are_preserved_in_order() -> None:
    rows = [{"TimeStamp": "2025-03-12 09:00:00", "PH": "1"}, {"TimeStamp": "2025-03-12 09:00:00", "PH": "2"}]
    nav = WindowNavigator(to_readings(rows), today=lambda: TODAY)
    assert [r.metric("PH") for r in nav.readings] == [1.0, 2.0]


def test_available_months_newest_first() -> None:
    assert available_months(_feed()) == [(2025, 3), (2025, 2)]


def test_newest_first_and_latest() -> None:
    feed = _feed()
    ordered = newest_first(feed)
    assert [r.metric("PH") for r in ordered] == [6.5, 6.4, 6.3, 6.2, 6.1]
    last = latest(feed)
    assert last is not None and last.metric("PH") == 6.5
    assert latest(()) is None
