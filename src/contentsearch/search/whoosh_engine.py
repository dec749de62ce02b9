"""In-memory search engine over content and locations using Whoosh.

Keeps two RAM indexes (one document per content item, one per location) and
translates the criterion tree into Whoosh queries. Intended as the reference
backend for the search service and for tests; nothing is persisted.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from whoosh import query as wq
from whoosh import scoring, sorting
from whoosh.analysis import StandardAnalyzer, StemmingAnalyzer
from whoosh.fields import ID, KEYWORD, NUMERIC, STORED, TEXT, Schema
from whoosh.filedb.filestore import RamStorage
from whoosh.highlight import Formatter, get_text
from whoosh.qparser import MultifieldParser, OrGroup

from contentsearch.exceptions import AmbiguousResult, InvalidQuery, NotFound, SearchError
from contentsearch.search.handler import SearchHandler
from contentsearch.search.service import Capability
from contentsearch.values import criterion as c
from contentsearch.values.aggregation import (
    AggregationResultCollection,
    ContentTypeTermAggregation,
    FieldTermAggregation,
    LanguageTermAggregation,
    TermAggregation,
    TermAggregationResult,
    TermAggregationResultEntry,
)
from contentsearch.values.content import Content, ContentInfo, Location
from contentsearch.values.language_filter import LanguageFilter
from contentsearch.values.query import LocationQuery, Query
from contentsearch.values.search_result import SearchHit, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = (
    Capability.SCORING
    | Capability.HIGHLIGHT
    | Capability.SUGGEST
    | Capability.ADVANCED_FULLTEXT
    | Capability.AGGREGATIONS
)

_STEMMING = StemmingAnalyzer()
_WORDS = StandardAnalyzer()


class _MarkFormatter(Formatter):
    """Wraps matched terms in <mark> tags."""

    between = " ... "

    def format_token(self, text: str, token: Any, replace: bool = False) -> str:
        return "<mark>%s</mark>" % get_text(text, token, replace)


def _make_schema() -> Schema:
    schema = Schema(
        doc_id=ID(stored=True, unique=True),
        content_id=ID(stored=True),
        content_id_sort=NUMERIC(sortable=True, bits=64),
        content_type=ID(stored=True),
        name=TEXT(stored=True, analyzer=_STEMMING, field_boost=1.8),
        name_sort=ID(sortable=True),
        # Store content for snippet highlighting
        text=TEXT(stored=True, analyzer=_STEMMING),
        # Unstemmed words, source of suggestions
        words=TEXT(analyzer=_WORDS),
        languages=KEYWORD(stored=True, commas=True, scorable=False),
        always_available=ID(),
        modified=NUMERIC(sortable=True, bits=64),
        location_ids=KEYWORD(commas=True, scorable=False),
        parent_location_ids=KEYWORD(commas=True, scorable=False),
        path_strings=KEYWORD(commas=True, scorable=False),
        visible=ID(),
        depth=NUMERIC(sortable=True),
        priority=NUMERIC(sortable=True),
        is_main=ID(),
        # Plain dicts rebuilt into value objects on the way out
        info=STORED(),
        location=STORED(),
        field_values=STORED(),
    )
    # Per content field: exact values, stemmed text and unstemmed words
    schema.add("fx_*", KEYWORD(commas=True, lowercase=True, scorable=False), glob=True)
    schema.add("ft_*", TEXT(analyzer=_STEMMING), glob=True)
    schema.add("fw_*", TEXT(analyzer=_WORDS), glob=True)
    return schema


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _exact_token(value: Any) -> str:
    # Commas separate keywords, so they cannot appear inside one
    return str(value).strip().lower().replace(",", "‚")


def _operator(value: Any) -> c.Operator:
    try:
        return c.Operator(value)
    except ValueError:
        raise InvalidQuery(f"Unknown operator {value!r}") from None


def _subtree_prefix(path: str) -> str:
    # "/1/2/11" must not match "/1/2/110/"
    return path if path.endswith("/") else f"{path}/"


def _bucket_key(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return _value_text(value) if isinstance(value, (list, tuple, set)) else str(value)
    return value


def _value_text(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return " ".join(_value_text(v) for v in value)
    if value is None:
        return ""
    return str(value)


def _value_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if value is None:
        return []
    return [value]


def _info_to_dict(info: ContentInfo) -> Dict[str, Any]:
    return {
        "id": info.id,
        "content_type": info.content_type,
        "name": info.name,
        "main_language": info.main_language,
        "always_available": info.always_available,
        "published": info.published,
        "modified": info.modified.isoformat(),
        "main_location_id": info.main_location_id,
    }


def _info_from_dict(data: Dict[str, Any]) -> ContentInfo:
    values = dict(data)
    values["modified"] = datetime.fromisoformat(values["modified"])
    return ContentInfo(**values)


def _location_to_dict(location: Location) -> Dict[str, Any]:
    return {
        "id": location.id,
        "content_id": location.content_id,
        "parent_id": location.parent_id,
        "path": list(location.path),
        "priority": location.priority,
        "hidden": location.hidden,
        "is_main": location.is_main,
    }


def _location_from_dict(data: Dict[str, Any]) -> Location:
    values = dict(data)
    values["path"] = tuple(values["path"])
    return Location(**values)


def _content_document(content: Content, locations: Sequence[Location]) -> Dict[str, Any]:
    info = content.info
    texts: List[str] = []
    per_field: Dict[str, List[Any]] = {}
    for translation in content.fields.values():
        for identifier, value in translation.items():
            per_field.setdefault(identifier, []).extend(_value_list(value))
            texts.append(_value_text(value))

    text = " ".join(t for t in texts if t)
    doc: Dict[str, Any] = {
        "doc_id": str(info.id),
        "content_id": str(info.id),
        "content_id_sort": info.id,
        "content_type": info.content_type,
        "name": info.name,
        "text": text,
        "words": f"{info.name} {text}",
        "languages": ",".join(content.languages),
        "always_available": _flag(info.always_available),
        "modified": int(info.modified.timestamp()),
        "location_ids": ",".join(str(loc.id) for loc in locations),
        "parent_location_ids": ",".join(
            str(loc.parent_id) for loc in locations if loc.parent_id is not None
        ),
        "path_strings": ",".join(loc.path_string for loc in locations),
        # Content without locations counts as visible
        "visible": _flag(not locations or any(not loc.hidden for loc in locations)),
        "info": _info_to_dict(info),
        "field_values": {ident: values for ident, values in per_field.items()},
    }
    if info.name:
        doc["name_sort"] = info.name.lower()
    for identifier, values in per_field.items():
        doc[f"fx_{identifier}"] = ",".join(_exact_token(v) for v in values)
        doc[f"ft_{identifier}"] = _value_text(values)
        doc[f"fw_{identifier}"] = _value_text(values)
    return doc


def _location_document(content_doc: Dict[str, Any], location: Location) -> Dict[str, Any]:
    doc = dict(content_doc)
    doc.update(
        {
            "doc_id": str(location.id),
            "location_ids": str(location.id),
            "parent_location_ids": "" if location.parent_id is None else str(location.parent_id),
            "path_strings": location.path_string,
            "visible": _flag(not location.hidden),
            "depth": location.depth,
            "priority": location.priority,
            "is_main": _flag(location.is_main),
            "location": _location_to_dict(location),
        }
    )
    return doc


def _to_bucket_keys(aggregation: TermAggregation, stored: Dict[str, Any]) -> Iterable[Any]:
    if isinstance(aggregation, ContentTypeTermAggregation):
        return [stored["info"]["content_type"]]
    if isinstance(aggregation, LanguageTermAggregation):
        return [code for code in (stored.get("languages") or "").split(",") if code]
    if isinstance(aggregation, FieldTermAggregation):
        values = (stored.get("field_values") or {}).get(aggregation.field_identifier, [])
        # Count each distinct value once per document
        seen: List[Any] = []
        for value in values:
            key = _bucket_key(value)
            if key not in seen:
                seen.append(key)
        return seen
    raise InvalidQuery(f"Unsupported aggregation {type(aggregation).__name__}")


class WhooshSearchEngine(SearchHandler):
    """Search handler backed by Whoosh RAM indexes."""

    def __init__(
        self,
        *,
        capabilities: Capability = DEFAULT_CAPABILITIES,
        highlight_char_limit: int = 300,
    ) -> None:
        # Never advertise more than the engine implements
        self.capabilities = capabilities & DEFAULT_CAPABILITIES
        self.highlight_char_limit = highlight_char_limit
        self._create_indexes()

    def _create_indexes(self) -> None:
        storage = RamStorage()
        self._content_ix = storage.create_index(_make_schema(), indexname="content")
        self._location_ix = storage.create_index(_make_schema(), indexname="location")

    # ----- Capabilities -----

    def supports(self, capability_flag: int) -> bool:
        try:
            flag = Capability(capability_flag)
        except (TypeError, ValueError):
            return False
        return bool(flag) and (self.capabilities & flag) == flag

    # ----- Indexing -----

    def index_content(self, content: Content, locations: Iterable[Location] = ()) -> None:
        locations = list(locations)
        doc = _content_document(content, locations)

        def write_locations(writer: Any) -> None:
            writer.delete_by_term("content_id", str(content.id))
            for location in locations:
                writer.add_document(**_location_document(doc, location))

        self._write(self._content_ix, lambda writer: writer.update_document(**doc), content.id)
        self._write(self._location_ix, write_locations, content.id)
        logger.debug("Indexed content %s with %d location(s)", content.id, len(locations))

    def delete_content(self, content_id: int) -> None:
        for ix in (self._content_ix, self._location_ix):
            self._write(ix, lambda writer: writer.delete_by_term("content_id", str(content_id)), content_id)
        logger.debug("Removed content %s from index", content_id)

    def purge_index(self) -> None:
        self._create_indexes()
        logger.info("Search index purged")

    @staticmethod
    def _write(ix: Any, apply: Callable[[Any], None], content_id: int) -> None:
        writer = ix.writer()
        try:
            apply(writer)
        except Exception as exc:
            writer.cancel()
            raise SearchError(f"Indexing content {content_id} failed: {exc}") from exc
        writer.commit()

    # ----- Queries -----

    def find_content(self, query: Query, language_filter: LanguageFilter) -> SearchResult:
        return self._search(
            self._content_ix, query, language_filter, lambda stored: _info_from_dict(stored["info"])
        )

    def find_locations(self, query: LocationQuery, language_filter: LanguageFilter) -> SearchResult:
        return self._search(
            self._location_ix,
            query,
            language_filter,
            lambda stored: _location_from_dict(stored["location"]),
        )

    def find_single(self, filter: c.Criterion, language_filter: LanguageFilter) -> ContentInfo:
        wquery = self._translate(filter)
        with self._content_ix.searcher() as searcher:
            results = searcher.search(
                wquery, filter=self._language_query(language_filter), limit=None
            )
            found = len(results)
            if found == 0:
                raise NotFound("Content", repr(filter))
            if found > 1:
                raise AmbiguousResult(found)
            return _info_from_dict(results[0]["info"])

    def suggest(
        self,
        prefix: str,
        field_paths: Sequence[str],
        limit: int,
        filter: Optional[c.Criterion] = None,
    ) -> List[str]:
        words = prefix.strip().lower().split()
        if not words:
            return []
        head, stem = words[:-1], words[-1]
        fieldnames = [f"fw_{path}" for path in field_paths] or ["words"]
        wfilter = self._translate(filter) if filter is not None else None

        frequencies: Counter[str] = Counter()
        with self._content_ix.searcher() as searcher:
            reader = searcher.reader()
            indexed = set(reader.indexed_field_names())
            for fieldname in fieldnames:
                if fieldname not in indexed:
                    continue
                for term in reader.expand_prefix(fieldname, stem):
                    text = term.decode("utf-8") if isinstance(term, bytes) else term
                    if wfilter is not None:
                        matches = searcher.search(
                            wq.And([wq.Term(fieldname, text), wfilter]), limit=1
                        )
                        if matches.is_empty():
                            continue
                    frequencies[text] += reader.doc_frequency(fieldname, text)

        ranked = sorted(frequencies.items(), key=lambda item: (-item[1], item[0]))
        return [" ".join(head + [term]) for term, _ in ranked[:limit]]

    # ----- Helpers -----

    def _search(
        self,
        ix: Any,
        query: Query,
        language_filter: LanguageFilter,
        build: Callable[[Dict[str, Any]], Any],
    ) -> SearchResult:
        started = time.perf_counter()
        wquery = self._translate(query.query) if query.query is not None else wq.Every()
        filters = [self._translate(query.filter)] if query.filter is not None else []
        language_query = self._language_query(language_filter)
        if language_query is not None:
            filters.append(language_query)
        wfilter = wq.And(filters) if filters else None
        sortedby = self._sorting(query.sort_clauses)
        fulltext = query.query is not None and any(
            isinstance(node, c.FullText) for node in c.walk(query.query)
        )

        with ix.searcher(weighting=scoring.BM25F()) as searcher:
            results = searcher.search(wquery, filter=wfilter, limit=None, sortedby=sortedby)
            total = len(results)
            scored = sortedby is None
            max_score = None
            # Unsorted results come back in descending score order
            if scored and total and results[0].score is not None:
                max_score = float(results[0].score)

            highlighting = fulltext and self.supports(Capability.HIGHLIGHT)
            if highlighting:
                results.formatter = _MarkFormatter()
                results.fragmenter.charlimit = self.highlight_char_limit

            page = results[query.offset : query.offset + query.limit] if query.limit else []
            hits: List[SearchHit] = []
            for hit in page:
                stored = hit.fields()
                highlight = None
                if highlighting:
                    try:
                        highlight = hit.highlights("text", top=2) or None
                    except Exception:
                        # Highlighting is best effort
                        logger.debug("Highlighting failed for %s", stored.get("doc_id"), exc_info=True)
                hits.append(
                    SearchHit(
                        value_object=build(stored),
                        score=float(hit.score) if scored and hit.score is not None else None,
                        index=self._matched_language(stored, language_filter),
                        highlight=highlight,
                    )
                )

            aggregations = self._aggregate(query.aggregations, results)

        return SearchResult(
            hits=hits,
            total_count=total if query.perform_count else None,
            max_score=max_score,
            time=time.perf_counter() - started,
            aggregations=aggregations,
        )

    def _aggregate(self, aggregations: Sequence[Any], results: Any) -> AggregationResultCollection:
        collection = AggregationResultCollection()
        if not aggregations:
            return collection
        if not self.supports(Capability.AGGREGATIONS):
            raise InvalidQuery("Aggregations are disabled for this engine")

        counters: List[Tuple[TermAggregation, Counter[Any]]] = []
        for aggregation in aggregations:
            if not isinstance(aggregation, TermAggregation):
                raise InvalidQuery(f"Unsupported aggregation {type(aggregation).__name__}")
            counters.append((aggregation, Counter()))

        for hit in results:
            stored = hit.fields()
            for aggregation, counter in counters:
                counter.update(_to_bucket_keys(aggregation, stored))

        for aggregation, counter in counters:
            buckets = [(key, n) for key, n in counter.items() if n >= aggregation.min_count]
            buckets.sort(key=lambda item: (-item[1], str(item[0])))
            collection.results[aggregation.name] = TermAggregationResult.create(
                aggregation.name,
                (TermAggregationResultEntry(key, n) for key, n in buckets[: aggregation.limit]),
            )
        return collection

    @staticmethod
    def _matched_language(stored: Dict[str, Any], language_filter: LanguageFilter) -> str:
        languages = (stored.get("languages") or "").split(",")
        for code in language_filter.languages:
            if code in languages:
                return code
        return stored["info"]["main_language"]

    @staticmethod
    def _language_query(language_filter: LanguageFilter) -> Optional[wq.Query]:
        if not language_filter.languages:
            return None
        subqueries: List[wq.Query] = [wq.Term("languages", code) for code in language_filter.languages]
        if language_filter.use_always_available:
            subqueries.append(wq.Term("always_available", "1"))
        return wq.Or(subqueries)

    @staticmethod
    def _sorting(clauses: Sequence[c.SortClause]) -> Optional[Any]:
        facets: List[Any] = []
        for clause in clauses:
            if isinstance(clause, c.ScoreSort):
                if not clause.reverse:
                    raise InvalidQuery("Ascending score sorting is not supported")
                facets.append(sorting.ScoreFacet())
            elif isinstance(clause, c.ContentIdSort):
                facets.append(sorting.FieldFacet("content_id_sort", reverse=clause.reverse))
            elif isinstance(clause, c.ContentNameSort):
                facets.append(sorting.FieldFacet("name_sort", reverse=clause.reverse))
            elif isinstance(clause, c.DateModifiedSort):
                facets.append(sorting.FieldFacet("modified", reverse=clause.reverse))
            elif isinstance(clause, c.LocationDepthSort):
                facets.append(sorting.FieldFacet("depth", reverse=clause.reverse))
            elif isinstance(clause, c.LocationPrioritySort):
                facets.append(sorting.FieldFacet("priority", reverse=clause.reverse))
            else:
                raise InvalidQuery(f"Unsupported sort clause {type(clause).__name__}")

        # Plain relevance order needs no facet
        if not facets or (len(facets) == 1 and isinstance(facets[0], sorting.ScoreFacet)):
            return None
        if len(facets) == 1:
            return facets[0]
        return sorting.MultiFacet(items=facets)

    def _translate(self, criterion: c.Criterion) -> wq.Query:
        if isinstance(criterion, c.MatchAll):
            return wq.Every()
        if isinstance(criterion, c.MatchNone):
            return wq.NullQuery
        if isinstance(criterion, c.LogicalAnd):
            return wq.And([self._translate(child) for child in criterion.criteria])
        if isinstance(criterion, c.LogicalOr):
            return wq.Or([self._translate(child) for child in criterion.criteria])
        if isinstance(criterion, c.LogicalNot):
            return wq.And([wq.Every(), wq.Not(self._translate(criterion.criterion))])
        if isinstance(criterion, c.ContentId):
            return self._terms("content_id", criterion.values)
        if isinstance(criterion, c.ContentTypeIdentifier):
            return self._terms("content_type", criterion.values)
        if isinstance(criterion, c.LanguageCode):
            subqueries = [wq.Term("languages", code) for code in criterion.values]
            if criterion.match_always_available:
                subqueries.append(wq.Term("always_available", "1"))
            return wq.Or(subqueries)
        if isinstance(criterion, c.LocationId):
            return self._terms("location_ids", criterion.values)
        if isinstance(criterion, c.ParentLocationId):
            return self._terms("parent_location_ids", criterion.values)
        if isinstance(criterion, c.Subtree):
            return wq.Or(
                [wq.Prefix("path_strings", _subtree_prefix(path)) for path in criterion.values]
            )
        if isinstance(criterion, c.Visibility):
            return wq.Term("visible", _flag(criterion.visible))
        if isinstance(criterion, c.IsMainLocation):
            return wq.Term("is_main", _flag(criterion.value))
        if isinstance(criterion, c.Depth):
            return self._numeric("depth", _operator(criterion.operator), criterion.values)
        if isinstance(criterion, c.Field):
            return self._field(criterion)
        if isinstance(criterion, c.FullText):
            return self._fulltext(criterion)
        raise InvalidQuery(f"Unsupported criterion {type(criterion).__name__}")

    @staticmethod
    def _terms(fieldname: str, values: Iterable[Any]) -> wq.Query:
        return wq.Or([wq.Term(fieldname, str(value)) for value in values])

    @staticmethod
    def _numeric(fieldname: str, operator: c.Operator, values: Tuple[Any, ...]) -> wq.Query:
        if operator in (c.Operator.EQ, c.Operator.IN):
            return wq.Or([wq.NumericRange(fieldname, v, v) for v in values])
        if operator == c.Operator.GTE and len(values) == 1:
            return wq.NumericRange(fieldname, values[0], None)
        if operator == c.Operator.LTE and len(values) == 1:
            return wq.NumericRange(fieldname, None, values[0])
        if operator == c.Operator.BETWEEN and len(values) == 2:
            return wq.NumericRange(fieldname, values[0], values[1])
        raise InvalidQuery(f"Operator {operator.value!r} is not supported on '{fieldname}'")

    def _field(self, criterion: c.Field) -> wq.Query:
        exact = f"fx_{criterion.identifier}"
        operator = _operator(criterion.operator)
        if operator in (c.Operator.EQ, c.Operator.IN):
            return wq.Or([wq.Term(exact, _exact_token(v)) for v in criterion.values])
        if operator == c.Operator.LIKE:
            return wq.Wildcard(exact, _exact_token(criterion.value))
        if operator == c.Operator.CONTAINS:
            tokens = [token.text for token in _STEMMING(_value_text(criterion.value))]
            if not tokens:
                return wq.NullQuery
            return wq.And([wq.Term(f"ft_{criterion.identifier}", token) for token in tokens])
        raise InvalidQuery(
            f"Operator {operator.value!r} is not supported on field '{criterion.identifier}'"
        )

    def _fulltext(self, criterion: c.FullText) -> wq.Query:
        if not isinstance(criterion.value, str):
            raise InvalidQuery(f"FullText value must be a string, got {criterion.value!r}")
        fieldnames = [f"ft_{name}" for name in criterion.fields or []] or ["name", "text"]
        parser = MultifieldParser(fieldnames, schema=self._content_ix.schema, group=OrGroup)
        if not self.supports(Capability.ADVANCED_FULLTEXT):
            # Treat the whole value as a phrase without operators
            return parser.parse('"' + criterion.value.replace('"', " ") + '"')
        try:
            return parser.parse(criterion.value)
        except Exception:
            # On parse failure, fall back to raw string as a phrase query
            return parser.parse('"' + criterion.value.replace('"', " ") + '"')
