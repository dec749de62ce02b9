"""Search handler SPI implemented by search engines.

The service layer validates input, applies permissions and hydrates results;
a handler only executes queries against its index and maintains that index.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from contentsearch.values.content import Content, ContentInfo, Location
from contentsearch.values.criterion import Criterion
from contentsearch.values.language_filter import LanguageFilter
from contentsearch.values.query import LocationQuery, Query
from contentsearch.values.search_result import SearchResult


@runtime_checkable
class Capable(Protocol):
    """Engines able to report which optional capabilities they implement."""

    def supports(self, capability_flag: int) -> bool:
        ...


class SearchHandler(ABC):
    """Abstract interface for search engine implementations."""

    @abstractmethod
    def find_content(self, query: Query, language_filter: LanguageFilter) -> SearchResult:
        """Execute a content query; hits carry `ContentInfo` objects."""

    @abstractmethod
    def find_single(self, filter: Criterion, language_filter: LanguageFilter) -> ContentInfo:
        """Return the only match; raise `NotFound` or `AmbiguousResult` otherwise."""

    @abstractmethod
    def find_locations(self, query: LocationQuery, language_filter: LanguageFilter) -> SearchResult:
        """Execute a location query; hits carry `Location` objects."""

    @abstractmethod
    def suggest(
        self,
        prefix: str,
        field_paths: Sequence[str],
        limit: int,
        filter: Optional[Criterion] = None,
    ) -> List[str]:
        """Return up to `limit` completions for `prefix`."""

    @abstractmethod
    def index_content(self, content: Content, locations: Iterable[Location] = ()) -> None:
        """Index or reindex a content item and its locations."""

    @abstractmethod
    def delete_content(self, content_id: int) -> None:
        """Remove a content item and its locations from the index."""

    @abstractmethod
    def purge_index(self) -> None:
        """Remove everything from the index."""
        raise NotImplementedError
