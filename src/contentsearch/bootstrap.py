"""Wiring of settings, logging, content store, engine and search service.

Usage::

    stack = SearchStack.from_settings(load_settings())
    stack.publish(content, locations)
    result = stack.service.find_content(Query(query=FullText("news")))
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable, Optional

from contentsearch.config import Settings, load_settings
from contentsearch.exceptions import ConfigError
from contentsearch.search.permissions import PermissionCriterionResolver
from contentsearch.search.repository_search import RepositorySearchService
from contentsearch.search.service import Capability
from contentsearch.search.whoosh_engine import DEFAULT_CAPABILITIES, WhooshSearchEngine
from contentsearch.storage.memory import InMemoryContentStore
from contentsearch.values.content import Content, Location

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for applications embedding the search stack."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigError(f"Unknown log level: {level!r}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT, stream=sys.stdout)


def parse_capabilities(names: Optional[Iterable[str]]) -> Capability:
    """Turn capability names such as "SCORING" into a flag set."""
    if names is None:
        return DEFAULT_CAPABILITIES
    flags = Capability(0)
    for name in names:
        try:
            flags |= Capability[name.upper()]
        except KeyError:
            raise ConfigError(f"Unknown search capability: {name!r}") from None
    return flags


class SearchStack:
    """Application state holding the content store, engine and service."""

    def __init__(
        self,
        settings: Settings,
        *,
        permission_resolver: Optional[PermissionCriterionResolver] = None,
    ) -> None:
        self.settings = settings
        self.store = InMemoryContentStore()
        self.engine = WhooshSearchEngine(
            capabilities=parse_capabilities(settings.search.capability_names),
            highlight_char_limit=settings.search.highlight_char_limit,
        )
        self.service = RepositorySearchService(
            self.engine,
            self.store,
            permission_resolver=permission_resolver,
            default_languages=settings.search.default_languages,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        permission_resolver: Optional[PermissionCriterionResolver] = None,
    ) -> SearchStack:
        settings = settings or load_settings()
        configure_logging(settings.app.log_level)
        return cls(settings, permission_resolver=permission_resolver)

    def publish(self, content: Content, locations: Iterable[Location] = ()) -> None:
        """Store a content item and (re)index it."""
        locations = list(locations)
        self.store.save(content, locations)
        self.engine.index_content(content, locations)

    def remove(self, content_id: int) -> None:
        self.engine.delete_content(content_id)
        self.store.remove(content_id)
