from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

T = TypeVar('T')


def normalize_sort_text(value: str | None) -> str:
    return (value or '').strip().lower()


def matches_search(term: str | None, *values: Any) -> bool:
    needle = normalize_sort_text(term)
    if not needle:
        return True
    return any(needle in normalize_sort_text(str(value)) for value in values if value is not None)


def filter_records(records: Iterable[T], term: str | None, fields: Callable[[T], Sequence[Any]]) -> list[T]:
    return [record for record in records if matches_search(term, *fields(record))]


def value_sort_key(value: Any) -> tuple[int, float, str]:
    if value is None or value == '':
        return (2, 0.0, '')
    if isinstance(value, datetime):
        return (0, value.timestamp(), '')
    if isinstance(value, int) and not isinstance(value, bool):
        value = Decimal(value)
    if isinstance(value, float) and math.isfinite(value):
        return (0, value, '')
    if isinstance(value, Decimal) and value.is_finite():
        return (0, float(value), '')
    text = str(value).strip()
    try:
        number = Decimal(text)
    except InvalidOperation:
        number = None
    # Words such as "nan" or "infinity" sort as text.
    if number is not None and number.is_finite():
        return (0, float(number), '')
    return (1, 0.0, normalize_sort_text(text))



def sort_records(records: Iterable[T], key: Callable[[T], Any], *, descending: bool = False) -> list[T]:
    return sorted(records, key=lambda record: value_sort_key(key(record)), reverse=descending)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    number: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_items / self.size)) if self.size > 0 else 1

    @property
    def has_previous(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages


def paginate(records: Sequence[T], *, page: int, size: int) -> Page[T]:
    size = max(size, 1)
    total_pages = max(1, math.ceil(len(records) / size))
    number = min(max(page, 1), total_pages)
    start = (number - 1) * size
    return Page(items=list(records[start : start + size]), number=number, size=size, total_items=len(records))
