from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from .aggregation import AggregationResultCollection


@dataclass(slots=True)
class SearchHit:
    """Represents a single search hit."""

    value_object: Any
    score: Optional[float] = None
    # Language the hit matched in
    index: Optional[str] = None
    highlight: Optional[str] = None


@dataclass(slots=True)
class SearchResult:
    """Result envelope of a content or location search.

    `max_score` is only set by engines that support scoring. `total_count`
    is None when the query was run with ``perform_count=False``.
    """

    hits: List[SearchHit] = field(default_factory=list)
    total_count: Optional[int] = 0
    max_score: Optional[float] = None
    time: float = 0.0
    timed_out: bool = False
    aggregations: AggregationResultCollection = field(default_factory=AggregationResultCollection)

    def __iter__(self) -> Iterator[SearchHit]:
        return iter(self.hits)

    def __len__(self) -> int:
        return len(self.hits)
