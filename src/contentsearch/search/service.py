"""Search service contract.

Defines the operations every search-engine-backed service provides and the
capability flags describing the optional features of the active engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import IntFlag
from typing import List, Optional, Sequence

from contentsearch.values.content import Content
from contentsearch.values.criterion import Criterion
from contentsearch.values.language_filter import LanguageFilterLike
from contentsearch.values.query import LocationQuery, Query
from contentsearch.values.search_result import SearchResult


class Capability(IntFlag):
    """Optional search engine features, queried one at a time via `supports()`.

    The values are bit-stable and may be persisted in configuration.
    """

    # Hits carry a relevance score and results are ordered by it when unsorted
    SCORING = 1
    FACETS = 2
    # Index can be extended with custom fields that criteria may target
    CUSTOM_FIELDS = 4
    SPELLCHECK = 8
    # Hits carry a text fragment with the matched words wrapped in <mark>
    HIGHLIGHT = 16
    SUGGEST = 32
    # FullText accepts boolean operators, phrases and wildcards
    ADVANCED_FULLTEXT = 64
    AGGREGATIONS = 128


class SearchService(ABC):
    """Abstract interface for content and location search."""

    CAPABILITY_SCORING = Capability.SCORING
    CAPABILITY_FACETS = Capability.FACETS
    CAPABILITY_CUSTOM_FIELDS = Capability.CUSTOM_FIELDS
    CAPABILITY_SPELLCHECK = Capability.SPELLCHECK
    CAPABILITY_HIGHLIGHT = Capability.HIGHLIGHT
    CAPABILITY_SUGGEST = Capability.SUGGEST
    CAPABILITY_ADVANCED_FULLTEXT = Capability.ADVANCED_FULLTEXT
    CAPABILITY_AGGREGATIONS = Capability.AGGREGATIONS

    @abstractmethod
    def find_content(
        self,
        query: Query,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> SearchResult:
        """Find content items matching `query`; hits carry `Content` objects.

        `language_filter` selects the prioritized languages searched and loaded,
        ``{"languages": [...], "useAlwaysAvailable": True}``. When
        `filter_on_user_permissions` is True only readable items are returned.

        Raises `InvalidQuery` if the query is not valid.
        """

    @abstractmethod
    def find_content_info(
        self,
        query: Query,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> SearchResult:
        """Like `find_content` but hits carry `ContentInfo` without loading fields."""

    @abstractmethod
    def find_single(
        self,
        filter: Criterion,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> Content:
        """Return the one content item matching `filter`.

        Raises `NotFound` if nothing matched (also when permissions hide the
        match), `AmbiguousResult` if more than one item matched and
        `InvalidQuery` if the criterion is not valid.
        """

    @abstractmethod
    def suggest(
        self,
        prefix: str,
        field_paths: Sequence[str] = (),
        limit: int = 10,
        filter: Optional[Criterion] = None,
    ) -> List[str]:
        """Suggest up to `limit` indexed values starting with `prefix`."""

    @abstractmethod
    def find_locations(
        self,
        query: LocationQuery,
        language_filter: LanguageFilterLike = None,
        filter_on_user_permissions: bool = True,
    ) -> SearchResult:
        """Find locations matching `query`; hits carry `Location` objects."""

    @abstractmethod
    def supports(self, capability_flag: int) -> bool:
        """Return True if the configured engine supports the capability.

        Returns False, never raises, when the engine cannot be asked.
        """
        raise NotImplementedError
