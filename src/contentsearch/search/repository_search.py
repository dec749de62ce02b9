"""Search service dispatching to a pluggable search handler.

Validates queries before the engine sees them, restricts results to what the
current user may read and hydrates hits into full value objects.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import List, Optional, Sequence, Set, Type

from contentsearch.exceptions import InvalidQuery, NotFound
from contentsearch.search.handler import Capable, SearchHandler
from contentsearch.search.permissions import PermissionCriterionResolver, UnrestrictedPermissions
from contentsearch.search.service import Capability, SearchService
from contentsearch.storage.memory import ContentLoader
from contentsearch.values.aggregation import Aggregation, TermAggregation
from contentsearch.values.content import Content
from contentsearch.values.criterion import (
    Criterion,
    Depth,
    Field,
    FullText,
    LogicalAnd,
    LogicalOr,
    Operator,
    SortClause,
    Subtree,
    walk,
)
from contentsearch.values.language_filter import (
    LanguageFilter,
    LanguageFilterLike,
    normalize_language_filter,
)
from contentsearch.values.query import LocationQuery, Query
from contentsearch.values.search_result import SearchResult

logger = logging.getLogger(__name__)

_PATH_STRING = re.compile(r"^/(\d+/)+$")


class RepositorySearchService(SearchService):
    """`SearchService` on top of a `SearchHandler` and a `ContentLoader`."""

    def __init__(
        self,
        handler: SearchHandler,
        content_loader: ContentLoader,
        *,
        permission_resolver: Optional[PermissionCriterionResolver] = None,
        default_languages: Optional[List[str]] = None,
    ) -> None:
        self._handler = handler
        self._loader = content_loader
        self._permissions = permission_resolver or UnrestrictedPermissions()
        self._default_languages = list(default_languages or [])

    # ----- Queries -----

    def find_content(
        self,
        query: Query,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> SearchResult:
        """Search content and load each hit.

        Hits whose content can no longer be loaded are dropped and
        ``total_count`` is lowered accordingly. Aggregations are computed by the
        engine over the full match set and still include the dropped items.
        """
        lf = self._language_filter(language_filter)
        result = self._find_content_info(query, lf, filter_on_user_permissions)

        missing: List[int] = []
        kept = []
        for hit in result.hits:
            content_id = hit.value_object.id
            try:
                hit.value_object = self._loader.load_content(content_id, lf)
            except NotFound:
                missing.append(content_id)
                continue
            kept.append(hit)

        if missing:
            logger.warning("Dropping %d search hit(s) for missing content: %s", len(missing), missing)
            result.hits = kept
            if result.total_count is not None:
                result.total_count = max(result.total_count - len(missing), 0)
        return result

    def find_content_info(
        self,
        query: Query,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> SearchResult:
        lf = self._language_filter(language_filter)
        return self._find_content_info(query, lf, filter_on_user_permissions)

    def find_single(
        self,
        filter: Criterion,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> Content:
        if not isinstance(filter, Criterion):
            raise InvalidQuery(f"Filter must be a Criterion, got {type(filter).__name__}")
        self._validate_criterion(filter, allow_location_only=False)
        lf = self._language_filter(language_filter)

        if filter_on_user_permissions:
            permission = self._permissions.get_permissions_criterion("content", "read")
            if permission is False:
                raise NotFound("Content", "*")
            if permission is not True:
                filter = LogicalAnd([filter, permission])

        logger.debug("find_single filter=%r languages=%s", filter, lf.languages)
        info = self._handler.find_single(filter, lf)
        return self._loader.load_content(info.id, lf)

    def suggest(
        self,
        prefix: str,
        field_paths: Sequence[str] = (),
        limit: int = 10,
        filter: Optional[Criterion] = None,
    ) -> List[str]:
        if not isinstance(prefix, str):
            raise InvalidQuery("Suggestion prefix must be a string")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidQuery(f"Suggestion limit must be a positive integer, got {limit!r}")
        if isinstance(field_paths, str) or not all(isinstance(p, str) for p in field_paths):
            raise InvalidQuery("Field paths must be a sequence of strings")
        if filter is not None:
            self._validate_criterion(filter, allow_location_only=False)
        return self._handler.suggest(prefix, list(field_paths), limit, filter)

    def find_locations(
        self,
        query: LocationQuery,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> SearchResult:
        self._validate_query(query, LocationQuery, allow_location_only=True)
        lf = self._language_filter(language_filter)

        if filter_on_user_permissions:
            restricted = self._with_permissions(query)
            if restricted is None:
                return self._empty_result(query)
            query = restricted

        logger.debug("find_locations query=%r languages=%s", query, lf.languages)
        return self._handler.find_locations(query, lf)

    def supports(self, capability_flag: int) -> bool:
        if not isinstance(self._handler, Capable):
            return False
        try:
            return bool(self._handler.supports(capability_flag))
        except Exception:
            logger.warning("Search engine failed to report capability %r", capability_flag, exc_info=True)
            return False

    # ----- Helpers -----

    def _find_content_info(
        self, query: Query, lf: LanguageFilter, filter_on_user_permissions: bool
    ) -> SearchResult:
        self._validate_query(query, Query, allow_location_only=False)

        if filter_on_user_permissions:
            restricted = self._with_permissions(query)
            if restricted is None:
                return self._empty_result(query)
            query = restricted

        logger.debug("find_content query=%r languages=%s", query, lf.languages)
        return self._handler.find_content(query, lf)

    def _language_filter(self, value: LanguageFilterLike) -> LanguageFilter:
        return normalize_language_filter(value, default_languages=self._default_languages)

    def _with_permissions(self, query: Query) -> Optional[Query]:
        """Return the query AND-ed with the read permission criterion, None if nothing is readable."""
        permission = self._permissions.get_permissions_criterion("content", "read")
        if permission is True:
            return query
        if permission is False:
            return None
        combined = permission if query.filter is None else LogicalAnd([query.filter, permission])
        return replace(query, filter=combined)

    @staticmethod
    def _empty_result(query: Query) -> SearchResult:
        return SearchResult(hits=[], total_count=0 if query.perform_count else None)

    def _validate_query(self, query: Query, expected: Type[Query], *, allow_location_only: bool) -> None:
        if not isinstance(query, expected):
            raise InvalidQuery(f"Expected {expected.__name__}, got {type(query).__name__}")

        for name in ("offset", "limit"):
            value = getattr(query, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidQuery(f"Query {name} must be an integer, got {value!r}")
            if value < 0:
                raise InvalidQuery(f"Query {name} must not be negative, got {value}")

        for criterion in (query.query, query.filter):
            if criterion is not None:
                self._validate_criterion(criterion, allow_location_only=allow_location_only)

        for clause in query.sort_clauses:
            if not isinstance(clause, SortClause):
                raise InvalidQuery(f"Unsupported sort clause {clause!r}")
            if clause.location_only and not allow_location_only:
                raise InvalidQuery(f"{type(clause).__name__} can only be used in location searches")

        self._validate_aggregations(query.aggregations)

    def _validate_criterion(self, criterion: Criterion, *, allow_location_only: bool) -> None:
        for node in walk(criterion):
            if not isinstance(node, Criterion):
                raise InvalidQuery(f"Unsupported criterion {node!r}")
            if isinstance(node, (LogicalAnd, LogicalOr)) and not node.criteria:
                raise InvalidQuery(f"{type(node).__name__} requires at least one criterion")
            if node.location_only and not allow_location_only:
                raise InvalidQuery(f"{type(node).__name__} can only be used in location searches")
            _validate_arguments(node)

    def _validate_aggregations(self, aggregations: Sequence[Aggregation]) -> None:
        if not aggregations:
            return
        if not self.supports(Capability.AGGREGATIONS):
            raise InvalidQuery("The configured search engine does not support aggregations")

        names = set()
        for aggregation in aggregations:
            if not isinstance(aggregation, Aggregation):
                raise InvalidQuery(f"Unsupported aggregation {aggregation!r}")
            if aggregation.name in names:
                raise InvalidQuery(f"Duplicate aggregation name '{aggregation.name}'")
            names.add(aggregation.name)
            if isinstance(aggregation, TermAggregation) and (
                aggregation.limit < 1 or aggregation.min_count < 0
            ):
                raise InvalidQuery(f"Invalid limit or min_count for aggregation '{aggregation.name}'")


_FIELD_OPERATORS = {Operator.EQ, Operator.IN, Operator.LIKE, Operator.CONTAINS}
_DEPTH_OPERATORS = {Operator.EQ, Operator.IN, Operator.GTE, Operator.LTE, Operator.BETWEEN}
_SINGLE_VALUE_OPERATORS = {Operator.EQ, Operator.LIKE, Operator.CONTAINS, Operator.GTE, Operator.LTE}


def _operator(node: Criterion, allowed: Set[Operator]) -> Operator:
    try:
        operator = Operator(node.operator)
    except ValueError:
        raise InvalidQuery(f"Unknown operator {node.operator!r} in {type(node).__name__}") from None
    if operator not in allowed:
        raise InvalidQuery(f"Operator {operator.value!r} is not supported by {type(node).__name__}")
    return operator


def _validate_arguments(node: Criterion) -> None:
    """Check the values a single criterion carries."""
    name = type(node).__name__
    if isinstance(node, FullText):
        if not isinstance(node.value, str):
            raise InvalidQuery(f"FullText value must be a string, got {node.value!r}")
        if node.fields is not None and (
            isinstance(node.fields, str) or not all(isinstance(f, str) for f in node.fields)
        ):
            raise InvalidQuery("FullText fields must be a sequence of strings")
        return

    values = getattr(node, "values", None)
    if values is None:
        return
    if not values:
        raise InvalidQuery(f"{name} requires at least one value")

    if isinstance(node, Field) and not (isinstance(node.identifier, str) and node.identifier):
        raise InvalidQuery(f"Field identifier must be a non-empty string, got {node.identifier!r}")
    if isinstance(node, (Field, Depth)):
        operator = _operator(node, _FIELD_OPERATORS if isinstance(node, Field) else _DEPTH_OPERATORS)
        if operator == Operator.BETWEEN and len(values) != 2:
            raise InvalidQuery(f"{name} BETWEEN takes exactly two values, got {len(values)}")
        if operator in _SINGLE_VALUE_OPERATORS and len(values) != 1:
            raise InvalidQuery(f"{name} {operator.name} takes a single value, got {len(values)}")
    if isinstance(node, Depth) and not all(
        isinstance(v, int) and not isinstance(v, bool) for v in values
    ):
        raise InvalidQuery(f"Depth values must be integers, got {values!r}")
    if isinstance(node, Subtree):
        for path in values:
            if not isinstance(path, str) or not _PATH_STRING.match(path):
                raise InvalidQuery(f"Invalid path string {path!r}, expected e.g. '/1/2/'")
