import math
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import pandas as pd

from .timeseries import Reading, Window

CSV_MEDIA_TYPE = "text/csv;charset=utf-8"


def export_columns(readings: Sequence[Reading]) -> list[str]:
    """Union of reading keys in first-seen order, so the first reading's keys lead."""
    columns: dict[str, None] = {}
    for r in readings:
        for key in r.raw:
            columns.setdefault(key, None)
    return list(columns)


def window_frame(readings: Sequence[Reading]) -> pd.DataFrame:
    """Tabular view of readings with one column per key and blanks where a reading lacks one.

    Values keep their feed representation (object dtype) so integers are not
    widened to floats by missing cells.
    """
    columns = export_columns(readings)
    rows = [[r.raw.get(c) for c in columns] for r in readings]
    return pd.DataFrame(rows, columns=columns, dtype=object)


def _cell(value: Any) -> Any:
    """Write values the way the JSON feed spells them: lowercase booleans, floats in plain decimal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return format(Decimal(repr(value)), "f")
    return value


def export_csv(readings: Sequence[Reading]) -> bytes | None:
    """Serialize readings to comma-separated text with a UTF-8 byte-order mark.

    Returns None for an empty window.
    """
    if not readings:
        return None
    frame = window_frame(readings).map(_cell)
    text = frame.to_csv(index=False, lineterminator="\n", na_rep="")
    # Rows are joined with newlines; no terminator after the last row
    if text.endswith("\n"):
        text = text[:-1]
    return text.encode("utf-8-sig")


def export_filename(window: Window) -> str:
    return f"data_{window.key}.csv"
