from typing import Any, Dict, Iterable, List, Optional, Sequence

import pytest

from contentsearch.exceptions import AmbiguousResult, InvalidQuery, NotFound
from contentsearch.search.handler import SearchHandler
from contentsearch.search.permissions import CriterionPermissions
from contentsearch.search.repository_search import RepositorySearchService
from contentsearch.search.service import Capability, SearchService
from contentsearch.storage.memory import InMemoryContentStore
from contentsearch.values.aggregation import ContentTypeTermAggregation
from contentsearch.values.content import Content, ContentInfo, Location
from contentsearch.values.criterion import (
    ContentId,
    ContentTypeIdentifier,
    Criterion,
    Depth,
    Field,
    FullText,
    IsMainLocation,
    LocationDepthSort,
    LogicalAnd,
    LogicalOr,
    MatchAll,
    Operator,
    Subtree,
)
from contentsearch.values.language_filter import LanguageFilter
from contentsearch.values.query import LocationQuery, Query
from contentsearch.values.search_result import SearchHit, SearchResult

# ---------- Helpers ----------


class RecordingHandler(SearchHandler):
    """Handler returning canned hits and recording what it was asked."""

    def __init__(self, infos: Optional[List[ContentInfo]] = None) -> None:
        self.infos = infos or []
        self.calls: List[Dict[str, Any]] = []

    def find_content(self, query: Query, language_filter: LanguageFilter) -> SearchResult:
        self.calls.append({"op": "find_content", "query": query, "language_filter": language_filter})
        return SearchResult(hits=[SearchHit(info) for info in self.infos], total_count=len(self.infos))

    def find_single(self, filter: Criterion, language_filter: LanguageFilter) -> ContentInfo:
        self.calls.append({"op": "find_single", "filter": filter, "language_filter": language_filter})
        if not self.infos:
            raise NotFound("Content", "*")
        if len(self.infos) > 1:
            raise AmbiguousResult(len(self.infos))
        return self.infos[0]

    def find_locations(self, query: LocationQuery, language_filter: LanguageFilter) -> SearchResult:
        self.calls.append({"op": "find_locations", "query": query, "language_filter": language_filter})
        return SearchResult(hits=[], total_count=0)

    def suggest(
        self,
        prefix: str,
        field_paths: Sequence[str],
        limit: int,
        filter: Optional[Criterion] = None,
    ) -> List[str]:
        self.calls.append({"op": "suggest", "prefix": prefix, "field_paths": field_paths, "limit": limit})
        return [prefix + "ing"][:limit]

    def index_content(self, content: Content, locations: Iterable[Location] = ()) -> None:
        pass

    def delete_content(self, content_id: int) -> None:
        pass

    def purge_index(self) -> None:
        pass


class CapableHandler(RecordingHandler):
    def __init__(self, capabilities: int, infos: Optional[List[ContentInfo]] = None) -> None:
        super().__init__(infos)
        self.capabilities = capabilities

    def supports(self, capability_flag: int) -> bool:
        return bool(self.capabilities & capability_flag)


class BrokenCapableHandler(RecordingHandler):
    def supports(self, capability_flag: int) -> bool:
        raise RuntimeError("engine offline")


def make_content(content_id: int, languages: Sequence[str] = ("eng-GB",), **info: Any) -> Content:
    values = {
        "id": content_id,
        "content_type": "article",
        "name": f"Content {content_id}",
        "main_language": languages[0],
    }
    values.update(info)
    return Content(
        info=ContentInfo(**values),
        fields={code: {"title": f"Title {content_id} {code}"} for code in languages},
    )


def make_service(handler: SearchHandler, *contents: Content, **kwargs: Any) -> RepositorySearchService:
    store = InMemoryContentStore()
    for content in contents:
        store.save(content)
    return RepositorySearchService(handler, store, **kwargs)


# ---------- Contract ----------


def test_capability_values_are_bit_stable() -> None:
    assert SearchService.CAPABILITY_SCORING == 1
    assert SearchService.CAPABILITY_FACETS == 2
    assert SearchService.CAPABILITY_CUSTOM_FIELDS == 4
    assert SearchService.CAPABILITY_SPELLCHECK == 8
    assert SearchService.CAPABILITY_HIGHLIGHT == 16
    assert SearchService.CAPABILITY_SUGGEST == 32
    assert SearchService.CAPABILITY_ADVANCED_FULLTEXT == 64
    assert SearchService.CAPABILITY_AGGREGATIONS == 128
    assert Capability.SCORING | Capability.FACETS == 3


def test_search_service_is_abstract() -> None:
    with pytest.raises(TypeError):
        SearchService()  # type: ignore[abstract]


# ---------- supports() ----------


def test_supports_false_for_missing_capability() -> None:
    service = make_service(CapableHandler(Capability.SCORING | Capability.SUGGEST))
    assert service.supports(SearchService.CAPABILITY_FACETS) is False
    assert service.supports(SearchService.CAPABILITY_SCORING) is True


def test_supports_false_when_engine_cannot_be_asked() -> None:
    service = make_service(RecordingHandler())
    for flag in Capability:
        assert service.supports(flag) is False


def test_supports_false_when_engine_errors() -> None:
    service = make_service(BrokenCapableHandler())
    assert service.supports(Capability.FACETS) is False


# ---------- find_content / find_content_info ----------


def test_find_content_hydrates_hits() -> None:
    content = make_content(1)
    handler = RecordingHandler([content.info])
    service = make_service(handler, content)

    result = service.find_content(Query(filter=ContentId(1)))

    assert result.total_count == 1
    assert isinstance(result.hits[0].value_object, Content)
    assert result.hits[0].value_object.get_field_value("title") == "Title 1 eng-GB"


def test_find_content_info_returns_summaries() -> None:
    content = make_content(1)
    service = make_service(RecordingHandler([content.info]), content)

    result = service.find_content_info(Query())

    assert isinstance(result.hits[0].value_object, ContentInfo)


def test_find_content_drops_hits_for_missing_content(caplog: pytest.LogCaptureFixture) -> None:
    present = make_content(1)
    vanished = make_content(2)
    service = make_service(RecordingHandler([present.info, vanished.info]), present)

    with caplog.at_level("WARNING"):
        result = service.find_content(Query())

    assert [hit.value_object.id for hit in result.hits] == [1]
    assert result.total_count == 1
    assert "missing content" in caplog.text


def test_language_filter_defaults() -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    service.find_content(Query(), {"languages": ["ger-DE", "eng-GB"]})

    lf = handler.calls[-1]["language_filter"]
    assert lf.languages == ["ger-DE", "eng-GB"]
    assert lf.use_always_available is True


def test_language_filter_accepts_mapping_shape() -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    service.find_content_info(Query(), {"languages": ["eng-GB"], "useAlwaysAvailable": False})

    assert handler.calls[-1]["language_filter"].use_always_available is False


def test_default_languages_apply_when_none_given() -> None:
    handler = RecordingHandler()
    service = make_service(handler, default_languages=["nor-NO"])

    service.find_content_info(Query())

    assert handler.calls[-1]["language_filter"].languages == ["nor-NO"]


@pytest.mark.parametrize(
    "language_filter",
    [
        {"languages": "eng-GB"},
        {"langs": ["eng-GB"]},
        ["eng-GB"],
    ],
)
def test_malformed_language_filter_is_invalid(language_filter: Any) -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    with pytest.raises(InvalidQuery):
        service.find_content(Query(), language_filter)
    assert handler.calls == []


# ---------- Validation ----------


@pytest.mark.parametrize(
    "query",
    [
        Query(offset=-1),
        Query(limit=-5),
        Query(limit="10"),  # type: ignore[arg-type]
        Query(filter=Depth(Operator.EQ, 2)),
        Query(query=LogicalAnd([ContentId(1), IsMainLocation()])),
        Query(filter=LogicalOr([])),
        Query(sort_clauses=[LocationDepthSort()]),
        Query(filter="content_id = 1"),  # type: ignore[arg-type]
        Query(filter=Field("title", ">=", 1)),
        Query(filter=Field("title", "matches", "x")),
        Query(filter=Field("title", Operator.EQ, [])),
        Query(filter=Field("title", Operator.LIKE, ["a*", "b*"])),
        Query(query=FullText(123)),  # type: ignore[arg-type]
        Query(query=FullText("news", fields="title")),  # type: ignore[arg-type]
        Query(filter=ContentId([])),
        Query(filter=Subtree("/1/2/11")),
        Query(filter=Subtree("1/2/")),
        Query(filter=ContentId(1) & ~Subtree(42)),  # type: ignore[arg-type]
    ],
)
def test_invalid_content_queries_never_reach_the_engine(query: Query) -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    with pytest.raises(InvalidQuery):
        service.find_content(query)
    assert handler.calls == []


@pytest.mark.parametrize(
    "criterion",
    [
        Depth(Operator.GTE, []),
        Depth(Operator.BETWEEN, [1, 2, 3]),
        Depth(Operator.BETWEEN, 2),
        Depth(Operator.LIKE, 2),
        Depth(Operator.EQ, "2"),
        Depth("deeper", 2),  # type: ignore[arg-type]
    ],
)
def test_invalid_location_criteria_never_reach_the_engine(criterion: Criterion) -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    with pytest.raises(InvalidQuery):
        service.find_locations(LocationQuery(filter=criterion))
    assert handler.calls == []


def test_operator_given_as_plain_string_is_accepted() -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    service.find_locations(LocationQuery(filter=Depth(">=", 1) & Subtree("/1/2/")))  # type: ignore[arg-type]

    assert handler.calls[-1]["op"] == "find_locations"


def test_find_locations_requires_location_query() -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    with pytest.raises(InvalidQuery):
        service.find_locations(Query())  # type: ignore[arg-type]
    assert handler.calls == []


def test_find_locations_allows_location_criteria() -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    service.find_locations(
        LocationQuery(filter=Depth(Operator.GTE, 1), sort_clauses=[LocationDepthSort()])
    )

    assert handler.calls[-1]["op"] == "find_locations"


def test_aggregations_require_capability() -> None:
    handler = CapableHandler(Capability.SCORING)
    service = make_service(handler)

    with pytest.raises(InvalidQuery):
        service.find_content(Query(aggregations=[ContentTypeTermAggregation("types")]))
    assert handler.calls == []


def test_duplicate_aggregation_names_rejected() -> None:
    service = make_service(CapableHandler(Capability.AGGREGATIONS))
    aggregations = [ContentTypeTermAggregation("types"), ContentTypeTermAggregation("types")]

    with pytest.raises(InvalidQuery):
        service.find_content(Query(aggregations=aggregations))


# ---------- Permissions ----------


def test_permission_criterion_is_and_ed_into_filter() -> None:
    handler = RecordingHandler()
    permission = ContentTypeIdentifier("folder")
    service = make_service(handler, permission_resolver=CriterionPermissions(permission))
    original = Query(filter=ContentId(1))

    service.find_content_info(original)

    sent = handler.calls[-1]["query"]
    assert isinstance(sent.filter, LogicalAnd)
    assert list(sent.filter.criteria) == [ContentId(1), permission]
    # The caller's query is left untouched
    assert original.filter == ContentId(1)


def test_no_read_access_returns_empty_result() -> None:
    handler = RecordingHandler([make_content(1).info])
    service = make_service(handler, permission_resolver=CriterionPermissions(False))

    result = service.find_content(Query())

    assert result.hits == []
    assert result.total_count == 0
    assert handler.calls == []


def test_permissions_skipped_when_not_requested() -> None:
    handler = RecordingHandler()
    service = make_service(handler, permission_resolver=CriterionPermissions(False))

    service.find_content_info(Query(filter=MatchAll()), filter_on_user_permissions=False)

    assert handler.calls[-1]["query"].filter == MatchAll()


# ---------- find_single ----------


def test_find_single_returns_content() -> None:
    content = make_content(7)
    service = make_service(RecordingHandler([content.info]), content)

    found = service.find_single(ContentId(7))

    assert found.id == 7


def test_find_single_ambiguous() -> None:
    service = make_service(RecordingHandler([make_content(1).info, make_content(2).info]))

    with pytest.raises(AmbiguousResult) as excinfo:
        service.find_single(ContentTypeIdentifier("article"))
    assert excinfo.value.count == 2


def test_find_single_not_found() -> None:
    service = make_service(RecordingHandler([]))

    with pytest.raises(NotFound):
        service.find_single(ContentId(404))


def test_find_single_without_read_access_is_not_found() -> None:
    handler = RecordingHandler([make_content(1).info])
    service = make_service(handler, permission_resolver=CriterionPermissions(False))

    with pytest.raises(NotFound):
        service.find_single(ContentId(1))
    assert handler.calls == []


def test_find_single_rejects_non_criterion() -> None:
    service = make_service(RecordingHandler())
    with pytest.raises(InvalidQuery):
        service.find_single(Query())  # type: ignore[arg-type]


# ---------- suggest ----------


def test_suggest_forwards_defaults() -> None:
    handler = RecordingHandler()
    service = make_service(handler)

    assert service.suggest("search") == ["searching"]
    assert handler.calls[-1]["limit"] == 10
    assert handler.calls[-1]["field_paths"] == []


@pytest.mark.parametrize("limit", [0, -1, True])
def test_suggest_rejects_bad_limit(limit: Any) -> None:
    with pytest.raises(InvalidQuery):
        make_service(RecordingHandler()).suggest("a", limit=limit)
