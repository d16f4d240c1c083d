"""Sensor reading ingestion and day/week/month windowing.

Readings arrive as loosely typed objects from a spreadsheet-backed feed. Their
timestamps come from several exporters that never agreed on a format, so the
parser tries a fixed sequence of formats and falls back to "now" instead of
failing. Windows are pure predicates over local calendar dates; nothing here
knows about Streamlit.
"""

import calendar
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import StrEnum
from types import MappingProxyType
from typing import Any

import pandas as pd
from aws_lambda_powertools import Logger

from .metrics import TIMESTAMP_KEY

logger = Logger(service="farmwatch")


class TimestampFormat(StrEnum):
    AUTO = "auto"
    DASHED = "dashed"  # 2025-01-22 19:35:00
    MONTH_FIRST = "month_first"  # 06/19/2025, 00:35
    DAY_FIRST = "day_first"  # 19/06/2025, 00:35


class WindowMode(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


_DASHED_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T](\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$")
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})\s*,\s*(?:(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?)?$")


def _build(year: int, month: int, day: int, hour: int, minute: int, second: int) -> datetime | None:
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def _parse_dashed(text: str) -> datetime | None:
    m = _DASHED_RE.match(text)
    if m is None:
        return None
    year, month, day, hour, minute, second = (int(g) if g else 0 for g in m.groups())
    return _build(year, month, day, hour, minute, second)


def _parse_slash(text: str, fmt: TimestampFormat) -> datetime | None:
    m = _SLASH_RE.match(text)
    if m is None:
        return None
    a, b, year, hour, minute, second = (int(g) if g else 0 for g in m.groups())
    if fmt == TimestampFormat.DAY_FIRST or (fmt == TimestampFormat.AUTO and a > 12):
        day, month = a, b
    else:
        month, day = a, b
    return _build(year, month, day, hour, minute, second)


def _clean(value: Any) -> str:
    return "" if value is None else str(value).replace("'", "").strip()


def is_ambiguous_timestamp(value: Any) -> bool:
    """True for slash dates whose first two parts could each be the month, e.g. 03/04/2025."""
    m = _SLASH_RE.match(_clean(value))
    if m is None:
        return False
    a, b = int(m.group(1)), int(m.group(2))
    return a <= 12 and b <= 12 and a != b


def _parse_generic(text: str) -> datetime | None:
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    result = parsed.to_pydatetime()
    if result.tzinfo is not None:
        # Convert to local wall-clock time to compare with the other formats
        result = result.astimezone().replace(tzinfo=None)
    return result.replace(microsecond=0)


def parse_timestamp(
    value: Any,
    fmt: TimestampFormat = TimestampFormat.AUTO,
    now: datetime | None = None,
    audit: bool = True,
) -> datetime:
    """Parse a feed timestamp into a naive local datetime.

    Never raises. Empty or unparseable input yields `now` (the current local
    time when not given) so downstream date comparisons always have a value.
    With `audit`, an ambiguous slash date read month-first is logged as a
    warning; bulk callers turn it off and log one summary instead.
    """
    fallback = now if now is not None else datetime.now().replace(microsecond=0)
    text = _clean(value)
    if not text:
        return fallback

    if fmt == TimestampFormat.DASHED:
        return _parse_dashed(text) or fallback
    if fmt in (TimestampFormat.MONTH_FIRST, TimestampFormat.DAY_FIRST):
        return _parse_slash(text, fmt) or fallback

    parsed = _parse_dashed(text)
    if parsed is None and "," in text:
        parsed = _parse_slash(text, fmt)
        if parsed is not None and audit and is_ambiguous_timestamp(text):
            logger.warning("ambiguous_timestamp", value=text, assumed="month_first")
    if parsed is None:
        parsed = _parse_generic(text)
    if parsed is None:
        logger.debug("unparseable_timestamp", value=text)
        return fallback
    return parsed


@dataclass(frozen=True)
class Reading:
    """One sensor sample: the raw feed object plus its parsed instant."""

    raw: Mapping[str, Any]
    instant: datetime
    timestamp_key: str = TIMESTAMP_KEY

    @classmethod
    def from_mapping(
        cls,
        raw: Mapping[str, Any],
        fmt: TimestampFormat = TimestampFormat.AUTO,
        timestamp_key: str = TIMESTAMP_KEY,
        now: datetime | None = None,
        audit: bool = True,
    ) -> "Reading":
        frozen = MappingProxyType(dict(raw))
        return cls(frozen, parse_timestamp(frozen.get(timestamp_key), fmt, now, audit), timestamp_key)

    @property
    def timestamp(self) -> str:
        value = self.raw.get(self.timestamp_key)
        return "" if value is None else str(value)

    def metric(self, key: str) -> float | None:
        """Return the numeric value stored under `key`, or None when absent or non-numeric."""
        value = self.raw.get(key)
        if value is None:
            return None
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(str(value).strip())
        except ValueError:
            return None


def to_readings(
    rows: Iterable[Mapping[str, Any]],
    fmt: TimestampFormat = TimestampFormat.AUTO,
    timestamp_key: str = TIMESTAMP_KEY,
    now: datetime | None = None,
) -> tuple[Reading, ...]:
    """Wrap feed rows as readings, logging at most one ambiguous-date warning per call."""
    readings = tuple(Reading.from_mapping(r, fmt, timestamp_key, now, audit=False) for r in rows)
    if fmt == TimestampFormat.AUTO:
        ambiguous = [r.timestamp for r in readings if is_ambiguous_timestamp(r.timestamp)]
        if ambiguous:
            logger.warning(
                "ambiguous_timestamps",
                count=len(ambiguous),
                total=len(readings),
                example=ambiguous[0],
                assumed="month_first",
            )
    return readings


def week_bounds(anchor: date) -> tuple[date, date]:
    # weekday() is 0 for Monday
    start = anchor - timedelta(days=anchor.weekday())
    return start, start + timedelta(days=6)


def month_bounds(anchor: date) -> tuple[date, date]:
    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last_day)


def shift_months(anchor: date, months: int) -> date:
    """Move `anchor` by whole months, clamping the day to the target month's length."""
    index = anchor.year * 12 + (anchor.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _as_date(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


@dataclass(frozen=True)
class Window:
    mode: WindowMode
    anchor: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "anchor", _as_date(self.anchor))

    @property
    def bounds(self) -> tuple[date, date]:
        if self.mode == WindowMode.WEEK:
            return week_bounds(self.anchor)
        if self.mode == WindowMode.MONTH:
            return month_bounds(self.anchor)
        return self.anchor, self.anchor

    @property
    def start(self) -> date:
        return self.bounds[0]

    @property
    def end(self) -> date:
        return self.bounds[1]

    def contains(self, instant: date) -> bool:
        start, end = self.bounds
        return start <= _as_date(instant) <= end

    def filter(self, readings: Iterable[Reading]) -> tuple[Reading, ...]:
        start, end = self.bounds
        return tuple(r for r in readings if start <= r.instant.date() <= end)

    @property
    def label(self) -> str:
        start, end = self.bounds
        if self.mode == WindowMode.DAY:
            return self.anchor.strftime("%d %B %Y")
        if self.mode == WindowMode.WEEK:
            return f"{start.strftime('%d %b')} - {end.strftime('%d %b %Y')}"
        return self.anchor.strftime("%B %Y")

    @property
    def key(self) -> str:
        """Identifier used in export file names."""
        start, end = self.bounds
        if self.mode == WindowMode.DAY:
            return self.anchor.isoformat()
        if self.mode == WindowMode.WEEK:
            return f"{start.isoformat()}_{end.isoformat()}"
        return f"{self.anchor.month:02d}-{self.anchor.year}"


class WindowNavigator:
    """Holds the reading list of one feed selection and the active window over it.

    Every navigation step recomputes the window from the new anchor and mode and
    re-filters the full list. The window and its readings are swapped in as one
    tuple so readers never see a window paired with another window's readings.
    """

    def __init__(
        self,
        readings: Iterable[Reading],
        today: Callable[[], date] = date.today,
        mode: WindowMode = WindowMode.DAY,
        anchor: date | None = None,
    ) -> None:
        self._all: tuple[Reading, ...] = tuple(readings)
        self._today = today
        self._state: tuple[Window, tuple[Reading, ...]]
        self._apply(Window(mode, anchor if anchor is not None else today()))

    def _apply(self, window: Window) -> None:
        self._state = (window, window.filter(self._all))

    @property
    def all_readings(self) -> tuple[Reading, ...]:
        return self._all

    @property
    def window(self) -> Window:
        return self._state[0]

    @property
    def readings(self) -> tuple[Reading, ...]:
        return self._state[1]

    @property
    def anchor(self) -> date:
        return self.window.anchor

    def previous_day(self) -> None:
        self._apply(Window(WindowMode.DAY, self.anchor - timedelta(days=1)))

    def next_day(self) -> bool:
        """Advance one day; refused (returns False) when that would pass today."""
        candidate = self.anchor + timedelta(days=1)
        if candidate > _as_date(self._today()):
            return False
        self._apply(Window(WindowMode.DAY, candidate))
        return True

    def current_day(self) -> None:
        self._apply(Window(WindowMode.DAY, self._today()))

    def previous_week(self) -> None:
        self._apply(Window(WindowMode.WEEK, self.anchor - timedelta(days=7)))

    def current_week(self) -> None:
        self._apply(Window(WindowMode.WEEK, self._today()))

    def previous_month(self) -> None:
        self._apply(Window(WindowMode.MONTH, shift_months(self.anchor, -1)))

    def current_month(self) -> None:
        self._apply(Window(WindowMode.MONTH, self._today()))

    def select_month(self, year: int, month: int) -> None:
        self._apply(Window(WindowMode.MONTH, date(year, month, 1)))


def available_months(readings: Iterable[Reading]) -> list[tuple[int, int]]:
    """(year, month) pairs that have at least one reading, newest first."""
    months = {(r.instant.year, r.instant.month) for r in readings}
    return sorted(months, reverse=True)


def newest_first(readings: Iterable[Reading]) -> list[Reading]:
    return sorted(readings, key=lambda r: r.instant, reverse=True)


def latest(readings: Iterable[Reading]) -> Reading | None:
    """Last reading in feed order; the feed appends new samples at the end."""
    last: Reading | None = None
    for r in readings:
        last = r
    return last
