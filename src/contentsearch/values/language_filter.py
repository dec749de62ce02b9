"""Language filter accepted by the search service.

Callers may pass the model itself or the mapping shape
``{"languages": [...], "useAlwaysAvailable": bool}``.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from contentsearch.exceptions import InvalidQuery


class LanguageFilter(BaseModel):
    """Prioritized languages a search is performed on and loads fields in."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    languages: List[str] = []
    # Fall back to the main translation of always-available content
    use_always_available: bool = Field(default=True, alias="useAlwaysAvailable")

    def matches(self, content_languages: List[str], always_available: bool) -> bool:
        """Return True if content with these translations is eligible."""
        if not self.languages:
            return True
        if any(code in content_languages for code in self.languages):
            return True
        return self.use_always_available and always_available


LanguageFilterLike = Union[LanguageFilter, Mapping[str, Any], None]


def normalize_language_filter(
    value: LanguageFilterLike, *, default_languages: Optional[List[str]] = None
) -> LanguageFilter:
    """Coerce a mapping or None into a `LanguageFilter`.

    Raises `InvalidQuery` for unknown options or wrongly typed values.
    """
    if isinstance(value, LanguageFilter):
        result = value
    elif value is None:
        result = LanguageFilter()
    elif isinstance(value, Mapping):
        try:
            result = LanguageFilter.model_validate(dict(value))
        except ValidationError as exc:
            raise InvalidQuery(f"Invalid language filter: {exc}") from exc
    else:
        raise InvalidQuery(f"Language filter must be a mapping, got {type(value).__name__}")

    if not result.languages and default_languages:
        result = result.model_copy(update={"languages": list(default_languages)})
    return result
