"""Column type inference by sampling."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Sequence

from dateutil import parser as dateparser

from astrolabe.models.entities import ColumnInfo, ColumnType

DEFAULT_SAMPLE_SIZE = 100
MATCH_THRESHOLD = 0.8
BOOLEAN_WORDS = frozenset({"true", "false", "yes", "no"})

# Bare numerals such as "2024" or "20240101" are numbers, never dates.
NUMERIC_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return bool(NUMERIC_RE.match(str(value).strip()))


def is_date(value: Any) -> bool:
    if isinstance(value, date):
        return True
    if isinstance(value, (bool, int, float)):
        return False
    text = str(value).strip()
    if not text or NUMERIC_RE.match(text):
        return False
    try:
        dateparser.parse(text)
    except (ValueError, OverflowError):
        return False
    return True


def is_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    return str(value).strip().lower() in BOOLEAN_WORDS


# Precedence order: the first type clearing the threshold wins.
_CANDIDATES: tuple[tuple[ColumnType, Callable[[Any], bool]], ...] = (
    (ColumnType.NUMBER, is_number),
    (ColumnType.DATE, is_date),
    (ColumnType.BOOLEAN, is_boolean),
)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ColumnTypeInferencer:
    """Classify a column as number, date, boolean or text."""

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE, threshold: float = MATCH_THRESHOLD) -> None:
        self.sample_size = sample_size
        self.threshold = threshold

    def sample(self, values: Iterable[Any]) -> list[Any]:
        picked: list[Any] = []
        for value in values:
            if _is_missing(value):
                continue
            picked.append(value)
            if len(picked) >= self.sample_size:
                break
        return picked

    def infer(self, values: Iterable[Any]) -> ColumnType:
        sample = self.sample(values)
        if not sample:
            return ColumnType.TEXT
        total = len(sample)
        for column_type, matches in _CANDIDATES:
            hits = sum(1 for value in sample if matches(value))
            if hits / total >= self.threshold:
                return column_type
        return ColumnType.TEXT

    def infer_columns(self, rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> list[ColumnInfo]:
        return [
            ColumnInfo(name=column, type=self.infer(row.get(column) for row in rows if isinstance(row, Mapping)))
            for column in columns
        ]


def infer_column_type(values: Iterable[Any], sample_size: int = DEFAULT_SAMPLE_SIZE) -> ColumnType:
    """Convenience wrapper around :class:`ColumnTypeInferencer`."""
    return ColumnTypeInferencer(sample_size=sample_size).infer(values)


__all__ = ["ColumnTypeInferencer", "infer_column_type", "is_boolean", "is_date", "is_number"]
