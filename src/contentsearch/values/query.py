from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .aggregation import Aggregation
from .criterion import Criterion, SortClause


@dataclass
class Query:
    """Content query.

    `query` criteria affect scoring, `filter` criteria only restrict the hit
    set. Either may be omitted, in which case everything matches.
    """

    query: Optional[Criterion] = None
    filter: Optional[Criterion] = None
    sort_clauses: List[SortClause] = field(default_factory=list)
    offset: int = 0
    limit: int = 25
    aggregations: List[Aggregation] = field(default_factory=list)
    perform_count: bool = True


@dataclass
class LocationQuery(Query):
    """Query over locations instead of content items."""
