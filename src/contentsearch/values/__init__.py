from .aggregation import (
    Aggregation,
    AggregationResult,
    AggregationResultCollection,
    ContentTypeTermAggregation,
    FieldTermAggregation,
    LanguageTermAggregation,
    TermAggregation,
    TermAggregationResult,
    TermAggregationResultEntry,
    loose_equals,
)
from .content import Content, ContentInfo, Location
from .language_filter import LanguageFilter, normalize_language_filter
from .query import LocationQuery, Query
from .search_result import SearchHit, SearchResult

__all__ = [
    "Aggregation",
    "AggregationResult",
    "AggregationResultCollection",
    "ContentTypeTermAggregation",
    "FieldTermAggregation",
    "LanguageTermAggregation",
    "TermAggregation",
    "TermAggregationResult",
    "TermAggregationResultEntry",
    "loose_equals",
    "Content",
    "ContentInfo",
    "Location",
    "LanguageFilter",
    "normalize_language_filter",
    "LocationQuery",
    "Query",
    "SearchHit",
    "SearchResult",
]
