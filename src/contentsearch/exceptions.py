"""Custom exception hierarchy for contentsearch.

These exceptions allow callers to discriminate error categories
and handle them appropriately while preserving the original context.
"""

from __future__ import annotations

from typing import Any


class ContentSearchError(Exception):
    """Base class for all contentsearch exceptions."""


class ConfigError(ContentSearchError):
    """Raised when configuration loading or validation fails."""


class InvalidQuery(ContentSearchError, ValueError):
    """Raised when a query, criterion or language filter is structurally invalid."""


class NotFound(ContentSearchError, LookupError):
    """Raised when a lookup matched nothing (including after permission filtering)."""

    def __init__(self, what: str, identifier: Any = "*") -> None:
        super().__init__(f"Could not find '{what}' with identifier '{identifier}'")
        self.what = what
        self.identifier = identifier


class AmbiguousResult(ContentSearchError):
    """Raised when a single-item lookup matched more than one item."""

    def __init__(self, count: int) -> None:
        super().__init__(f"Expected exactly one result, found {count}")
        self.count = count


class SearchError(ContentSearchError):
    """Raised for search indexing/query issues inside a backend."""
