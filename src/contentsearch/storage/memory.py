"""In-memory content store.

Holds content items and locations in dictionaries and loads them the way the
search service needs: content restricted to the translations a language
filter allows.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol

from contentsearch.exceptions import NotFound
from contentsearch.values.content import Content, ContentInfo, Location
from contentsearch.values.language_filter import LanguageFilter


class ContentLoader(Protocol):
    """Loads value objects for search hits."""

    def load_content(self, content_id: int, language_filter: Optional[LanguageFilter] = None) -> Content:
        ...

    def load_content_info(self, content_id: int) -> ContentInfo:
        ...

    def load_location(self, location_id: int) -> Location:
        ...


class InMemoryContentStore:
    """Dictionary-backed `ContentLoader`."""

    def __init__(self) -> None:
        self._content: Dict[int, Content] = {}
        self._locations: Dict[int, Location] = {}

    def save(self, content: Content, locations: Iterable[Location] = ()) -> None:
        self._content[content.id] = content
        for location in locations:
            if location.content_id != content.id:
                raise ValueError(
                    f"Location {location.id} belongs to content {location.content_id}, not {content.id}"
                )
            self._locations[location.id] = location

    def remove(self, content_id: int) -> None:
        self._content.pop(content_id, None)
        for location_id in [lid for lid, loc in self._locations.items() if loc.content_id == content_id]:
            del self._locations[location_id]

    def locations_of(self, content_id: int) -> List[Location]:
        return [loc for loc in self._locations.values() if loc.content_id == content_id]

    def load_content_info(self, content_id: int) -> ContentInfo:
        return self._get(content_id).info

    def load_content(self, content_id: int, language_filter: Optional[LanguageFilter] = None) -> Content:
        content = self._get(content_id)
        if language_filter is None or not language_filter.languages:
            return content

        languages = [code for code in language_filter.languages if code in content.fields]
        if not languages and language_filter.use_always_available and content.info.always_available:
            languages = [content.info.main_language]
        if not languages:
            raise NotFound("Content", content_id)
        return content.with_languages(languages)

    def load_location(self, location_id: int) -> Location:
        try:
            return self._locations[location_id]
        except KeyError:
            raise NotFound("Location", location_id) from None

    def _get(self, content_id: int) -> Content:
        try:
            return self._content[content_id]
        except KeyError:
            raise NotFound("Content", content_id) from None
