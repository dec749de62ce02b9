"""Content, ContentInfo and Location value objects.

These are the records a search returns. `ContentInfo` is the lightweight
summary (no field values), `Content` adds the translated field values and
`Location` places a content item in the content tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class ContentInfo:
    """Summary metadata of a content item.

    Attributes
    ----------
    id: int
        Content id, unique within the repository.
    content_type: str
        Identifier of the content type, e.g. "article".
    name: str
        Name in the main language.
    main_language: str
        Language code of the main translation, e.g. "eng-GB".
    always_available: bool
        When True the main translation is used as fallback for languages the
        content is not translated into.
    """

    id: int
    content_type: str
    name: str
    main_language: str
    always_available: bool = False
    published: bool = True
    modified: datetime = field(default_factory=_utcnow)
    main_location_id: Optional[int] = None


@dataclass(slots=True)
class Content:
    """A content item with its translated field values."""

    info: ContentInfo
    # language code -> field identifier -> value
    fields: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def id(self) -> int:
        return self.info.id

    @property
    def languages(self) -> List[str]:
        return list(self.fields)

    def get_field_value(self, identifier: str, language: Optional[str] = None) -> Any:
        """Return the value of a field, in `language` or else the main language."""
        translation = self.fields.get(language or self.info.main_language)
        if translation is None:
            translation = self.fields.get(self.info.main_language, {})
        return translation.get(identifier)

    def with_languages(self, languages: List[str]) -> Content:
        """Return a copy holding only the given translations."""
        kept = {code: dict(values) for code, values in self.fields.items() if code in languages}
        return Content(info=self.info, fields=kept)


@dataclass(slots=True, frozen=True)
class Location:
    """Placement of a content item in the content tree."""

    id: int
    content_id: int
    parent_id: Optional[int]
    # Ancestor ids from the root down to and including this location
    path: Tuple[int, ...] = ()
    priority: int = 0
    hidden: bool = False
    is_main: bool = True

    @property
    def path_string(self) -> str:
        ids = self.path or (self.id,)
        return "/" + "/".join(str(i) for i in ids) + "/"

    @property
    def depth(self) -> int:
        # The root location has depth 0
        return max(len(self.path) - 1, 0)
