"""Aggregation requests and their results.

A term aggregation buckets the matched items by the value of one property
(content type, language, a field value) and counts the items per bucket.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

_NUMERIC_STRING = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


# ----- Requests -----


@dataclass(slots=True)
class Aggregation:
    name: str


@dataclass(slots=True)
class TermAggregation(Aggregation):
    limit: int = 10
    min_count: int = 1


@dataclass(slots=True)
class ContentTypeTermAggregation(TermAggregation):
    pass


@dataclass(slots=True)
class LanguageTermAggregation(TermAggregation):
    pass


@dataclass(slots=True)
class FieldTermAggregation(TermAggregation):
    field_identifier: str = ""


# ----- Results -----


def _comparable(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return value
    if isinstance(value, str) and _NUMERIC_STRING.match(value.strip()):
        return Decimal(value.strip())
    return value


def loose_equals(left: Any, right: Any) -> bool:
    """Compare two bucket keys, treating numeric strings and numbers alike.

    ``loose_equals("5", 5)`` and ``loose_equals("5.0", 5)`` are True; any
    other pair compares with ordinary equality.
    """
    if left is right:
        return True
    return bool(_comparable(left) == _comparable(right))


@dataclass(slots=True, frozen=True)
class TermAggregationResultEntry:
    key: Any
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"Bucket count must not be negative, got {self.count}")


@dataclass(slots=True, frozen=True)
class AggregationResult:
    name: str


@dataclass(slots=True, frozen=True)
class TermAggregationResult(AggregationResult):
    """Buckets of a term aggregation in the order the engine returned them."""

    entries: Tuple[TermAggregationResultEntry, ...] = ()

    @classmethod
    def create(
        cls, name: str, entries: Iterable[TermAggregationResultEntry]
    ) -> TermAggregationResult:
        return cls(name=name, entries=tuple(entries))

    def get_entries(self) -> List[TermAggregationResultEntry]:
        return list(self.entries)

    def get_entry(self, key: Any) -> Optional[TermAggregationResultEntry]:
        for entry in self.entries:
            if loose_equals(entry.key, key):
                return entry
        return None

    def has_entry(self, key: Any) -> bool:
        return self.get_entry(key) is not None

    def count(self) -> int:
        return len(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Tuple[Any, int]]:
        for entry in self.entries:
            yield entry.key, entry.count


@dataclass(slots=True)
class AggregationResultCollection:
    """Aggregation results of one search, keyed by aggregation name."""

    results: Dict[str, AggregationResult] = field(default_factory=dict)

    def get(self, name: str) -> AggregationResult:
        try:
            return self.results[name]
        except KeyError:
            raise KeyError(f"No aggregation result named '{name}'") from None

    def has(self, name: str) -> bool:
        return name in self.results

    def __iter__(self) -> Iterator[AggregationResult]:
        return iter(self.results.values())

    def __len__(self) -> int:
        return len(self.results)
