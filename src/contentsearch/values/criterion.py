"""Criterion tree and sort clauses used by `Query` objects.

Criteria are plain value objects; translating them into engine queries is the
job of a search handler. Logical criteria can be built with the ``&``, ``|``
and ``~`` operators::

    ContentTypeIdentifier("article") & ~LanguageCode("ger-DE")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterator, Optional, Sequence, Tuple, Union


class Operator(str, Enum):
    EQ = "="
    IN = "in"
    LIKE = "like"
    CONTAINS = "contains"
    GTE = ">="
    LTE = "<="
    BETWEEN = "between"


def _as_tuple(value: Any) -> Tuple[Any, ...]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return (value,)


class Criterion:
    """Base class of all criteria."""

    __slots__ = ()

    # Location-only criteria are rejected in content searches
    location_only: ClassVar[bool] = False

    def __and__(self, other: Criterion) -> LogicalAnd:
        return LogicalAnd([self, other])

    def __or__(self, other: Criterion) -> LogicalOr:
        return LogicalOr([self, other])

    def __invert__(self) -> LogicalNot:
        return LogicalNot(self)


@dataclass(slots=True)
class MatchAll(Criterion):
    pass


@dataclass(slots=True)
class MatchNone(Criterion):
    pass


@dataclass(slots=True)
class ContentId(Criterion):
    value: Union[int, Sequence[int]]

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class ContentTypeIdentifier(Criterion):
    value: Union[str, Sequence[str]]

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class LanguageCode(Criterion):
    """Matches content translated into one of the given languages."""

    value: Union[str, Sequence[str]]
    match_always_available: bool = True

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class Field(Criterion):
    """Matches on the value of a content field.

    EQ and IN compare whole values, LIKE accepts ``*`` wildcards and CONTAINS
    matches words within the field text.
    """

    identifier: str
    operator: Operator
    value: Any

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class FullText(Criterion):
    """Full text match; the value may use the engine's advanced query syntax."""

    value: str
    fields: Optional[Sequence[str]] = None


@dataclass(slots=True)
class LocationId(Criterion):
    value: Union[int, Sequence[int]]

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class ParentLocationId(Criterion):
    value: Union[int, Sequence[int]]

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class Subtree(Criterion):
    """Matches items located below (or at) the given path strings, e.g. "/1/2/"."""

    value: Union[str, Sequence[str]]

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class Visibility(Criterion):
    visible: bool = True


@dataclass(slots=True)
class Depth(Criterion):
    location_only: ClassVar[bool] = True

    operator: Operator
    value: Union[int, Sequence[int]]

    @property
    def values(self) -> Tuple[Any, ...]:
        return _as_tuple(self.value)


@dataclass(slots=True)
class IsMainLocation(Criterion):
    location_only: ClassVar[bool] = True

    value: bool = True


@dataclass(slots=True)
class LogicalAnd(Criterion):
    criteria: Sequence[Criterion]


@dataclass(slots=True)
class LogicalOr(Criterion):
    criteria: Sequence[Criterion]


@dataclass(slots=True)
class LogicalNot(Criterion):
    criterion: Criterion


def walk(criterion: Criterion) -> Iterator[Criterion]:
    """Yield the criterion and every criterion nested below it, depth first."""
    yield criterion
    if isinstance(criterion, (LogicalAnd, LogicalOr)):
        for child in criterion.criteria:
            yield from walk(child)
    elif isinstance(criterion, LogicalNot):
        yield from walk(criterion.criterion)


# ----- Sort clauses -----


class SortDirection(str, Enum):
    ASC = "ascending"
    DESC = "descending"


@dataclass(slots=True)
class SortClause:
    direction: SortDirection = SortDirection.ASC

    location_only: ClassVar[bool] = False

    @property
    def reverse(self) -> bool:
        return self.direction == SortDirection.DESC


@dataclass(slots=True)
class ContentIdSort(SortClause):
    pass


@dataclass(slots=True)
class ContentNameSort(SortClause):
    pass


@dataclass(slots=True)
class DateModifiedSort(SortClause):
    pass


@dataclass(slots=True)
class ScoreSort(SortClause):
    direction: SortDirection = SortDirection.DESC


@dataclass(slots=True)
class LocationDepthSort(SortClause):
    location_only: ClassVar[bool] = True


@dataclass(slots=True)
class LocationPrioritySort(SortClause):
    location_only: ClassVar[bool] = True
